import json
import logging
import math
from typing import Any, Mapping, Optional


DEFAULT_REPLICAS = 1
_logger = logging.getLogger("imageupdater.railway")


def decode_deployment_meta(raw: Any) -> Optional[dict]:
    """Decode ``latestDeployment.meta`` into a dict.

    Railway hands the meta back either as a JSON object or as a string holding
    an encoded JSON document. Objects are used directly, strings get a second
    decode, and anything else yields None.
    """
    if raw is None:
        return None
    if isinstance(raw, Mapping):
        return dict(raw)
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError:
            return None
    if not isinstance(raw, str):
        return None
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError:
        return None
    if isinstance(decoded, str):
        # Double-encoded: the first decode produced the inner document text.
        try:
            decoded = json.loads(decoded)
        except json.JSONDecodeError:
            return None
    if isinstance(decoded, dict):
        return decoded
    return None


def _positive_count(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    count = int(value)
    if count > 0:
        return count
    return None


def resolve_replica_count(service_name: str, meta: Any) -> int:
    """Find the replica count in ``serviceManifest.deploy.multiRegionConfig``.

    Regions are scanned in name order and the first positive ``numReplicas``
    wins. Missing, malformed or zero-valued configuration means one replica.
    """
    decoded = decode_deployment_meta(meta)
    if decoded is None:
        reason = "no deployment meta" if meta is None else "unreadable deployment meta"
        _logger.info("railway.replicas service=%s reason=%s replicas=%d", service_name, reason, DEFAULT_REPLICAS)
        return DEFAULT_REPLICAS

    section: Any = decoded
    for key in ("serviceManifest", "deploy", "multiRegionConfig"):
        section = section.get(key) if isinstance(section, dict) else None
        if not isinstance(section, dict):
            _logger.info(
                "railway.replicas service=%s reason=missing_%s replicas=%d",
                service_name,
                key,
                DEFAULT_REPLICAS,
            )
            return DEFAULT_REPLICAS

    for region in sorted(section.keys()):
        region_config = section[region]
        if not isinstance(region_config, dict):
            continue
        count = _positive_count(region_config.get("numReplicas"))
        if count is not None:
            _logger.info("railway.replicas service=%s region=%s replicas=%d", service_name, region, count)
            return count

    _logger.info(
        "railway.replicas service=%s reason=no_positive_num_replicas replicas=%d",
        service_name,
        DEFAULT_REPLICAS,
    )
    return DEFAULT_REPLICAS
