import re
from urllib.parse import urlsplit


_SECRET_PATTERNS = [
    re.compile(r"(Authorization\s*:\s*)([^\n\r]+)", re.IGNORECASE),
    re.compile(r"(Bearer\s+)\S+", re.IGNORECASE),
    re.compile(r"((?:access|api|id|refresh)?_?token=)[^&\s]+", re.IGNORECASE),
    re.compile(r"(password=)[^&\s]+", re.IGNORECASE),
    # Registry credentials travel inside the GraphQL variables.
    re.compile(r'("(?:password|token|apiToken)"\s*:\s*)"(?:[^"\\]|\\.)*"', re.IGNORECASE),
]
_SECRET_REPLACEMENTS = [r"\1[REDACTED]"] * 4 + [r'\1"[REDACTED]"']


def redact_url(value: str) -> str:
    if not value:
        return ""
    try:
        parsed = urlsplit(value)
    except ValueError:
        return "<redacted-url>"
    if not parsed.scheme or not parsed.netloc:
        return "<redacted-url>"
    return f"{parsed.scheme}://{parsed.netloc}/..."


def redact_text(value: str) -> str:
    if not value:
        return value
    redacted = value
    for pattern, replacement in zip(_SECRET_PATTERNS, _SECRET_REPLACEMENTS):
        redacted = pattern.sub(replacement, redacted)
    redacted = re.sub(r"https?://[^\s\"]+", lambda match: redact_url(match.group(0)), redacted)
    return redacted
