from typing import Iterable, List, Optional, Sequence, Tuple


def match_prefix(image: str, prefixes: Iterable[str]) -> Optional[str]:
    """Return the first prefix the image reference starts with, if any."""
    if not image:
        return None
    for prefix in prefixes:
        if image.startswith(prefix):
            return prefix
    return None


def matches_prefix(image: str, prefixes: Iterable[str]) -> bool:
    return match_prefix(image, prefixes) is not None


def rewrite_image(image: str, prefix: str, version: str) -> str:
    """Swap the tag of ``image`` for ``version``.

    Everything after the last ``:`` is replaced; an untagged image gets
    ``:<version>`` appended. When the rewritten reference no longer starts
    with the prefix that matched it, the result falls back to
    ``<prefix>:<version>``.
    """
    if ":" in image:
        repository = image.rsplit(":", 1)[0]
        rewritten = f"{repository}:{version}"
    else:
        rewritten = f"{image}:{version}"
    if not rewritten.startswith(prefix):
        rewritten = f"{prefix}:{version}"
    return rewritten


def select_services(services: Sequence, prefixes: Sequence[str], version: str) -> List[Tuple[object, str, str]]:
    """Pick the services whose image matches a prefix, keeping input order.

    Returns ``(service, matched_prefix, new_image)`` tuples.
    """
    selected = []
    for service in services:
        prefix = match_prefix(service.image, prefixes)
        if prefix is None:
            continue
        selected.append((service, prefix, rewrite_image(service.image, prefix, version)))
    return selected
