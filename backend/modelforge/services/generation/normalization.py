"""
Normalization of raw generation status payloads

Status payloads reach us in several shapes: the Tripo envelope
(``{"code": 0, "data": {"status": ..., "output": {"model": ...}}}``), the flat
shape our own ``/task-status`` endpoint returns (``{"status", "progress",
"modelUrl", "baseModelUrl", "renderedImage"}``) and the generic
``{"status", "progress", "output": {"primaryUrl", "secondaryUrl",
"previewUrl"}}`` shape. ``normalize_status`` folds all of them into a single
``NormalizedStatus`` and never raises, because the poll loop must not be
interrupted by a malformed body.
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, Optional

logger = logging.getLogger(__name__)

SUCCESS_STATUS = "success"
TERMINAL_FAILURE_STATUSES = frozenset({"failed", "cancelled", "unknown"})

PRIMARY_URL_KEYS = ("model", "primaryUrl", "primary_url")
SECONDARY_URL_KEYS = ("base_model", "secondaryUrl", "secondary_url")
PREVIEW_URL_KEYS = ("rendered_image", "previewUrl", "preview_url")

CONFIG_ERROR_MARKERS = (
    "not configured",
    "api key",
    "api_key",
    "unauthorized",
    "credential",
    "authentication",
)


class StatusKind(str, Enum):
    """Variants a status payload can normalize to"""
    SUCCESS = "success"
    TERMINAL_FAILURE = "terminal_failure"
    IN_PROGRESS = "in_progress"
    CONFIG_ERROR = "config_error"
    UNRECOGNIZED = "unrecognized"


@dataclass(frozen=True)
class NormalizedStatus:
    kind: StatusKind
    status: Optional[str] = None
    progress: int = 0
    artifact_url: Optional[str] = None
    fallback_url: Optional[str] = None
    preview_url: Optional[str] = None
    http_status: int = 200
    error: Optional[str] = None

    @property
    def http_ok(self) -> bool:
        return 200 <= self.http_status < 300

    @property
    def usable(self) -> bool:
        """True when the payload carried a status we can act on"""
        return self.kind in (
            StatusKind.SUCCESS,
            StatusKind.TERMINAL_FAILURE,
            StatusKind.IN_PROGRESS,
        )


def normalize_status(payload: Any, http_status: int = 200) -> NormalizedStatus:
    """Map a raw status payload to a NormalizedStatus. Total over all inputs."""
    try:
        return _normalize(payload, http_status)
    except Exception as e:
        logger.warning(f"Could not normalize status payload ({type(e).__name__}: {e})")
        return NormalizedStatus(
            kind=StatusKind.UNRECOGNIZED,
            http_status=_coerce_http_status(http_status),
            error=f"Malformed status payload: {e}",
        )


def coerce_progress(value: Any) -> int:
    """Progress as an int in [0, 100]; 0 when absent or non-numeric."""
    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, str):
        try:
            value = float(value.strip().rstrip("%"))
        except ValueError:
            return 0
    if not isinstance(value, (int, float)):
        return 0
    if isinstance(value, float) and not math.isfinite(value):
        return 0
    return max(0, min(100, int(value)))


def _normalize(payload: Any, http_status: Any) -> NormalizedStatus:
    http_status = _coerce_http_status(http_status)
    body = _unwrap(payload)
    status = _status_of(body)

    if status is None:
        error = _error_message(payload)
        if _is_config_problem(http_status, error):
            return NormalizedStatus(
                kind=StatusKind.CONFIG_ERROR,
                http_status=http_status,
                error=error or f"HTTP {http_status}",
            )
        return NormalizedStatus(
            kind=StatusKind.UNRECOGNIZED,
            http_status=http_status,
            error=error or f"No status in response (HTTP {http_status})",
        )

    progress = coerce_progress(body.get("progress"))
    output = body.get("output") if isinstance(body.get("output"), dict) else {}

    if status == SUCCESS_STATUS:
        primary = _first_url(output, PRIMARY_URL_KEYS) or _first_url(body, ("modelUrl",))
        secondary = _first_url(output, SECONDARY_URL_KEYS) or _first_url(body, ("baseModelUrl",))
        preview = _first_url(output, PREVIEW_URL_KEYS) or _first_url(body, ("renderedImage",))
        return NormalizedStatus(
            kind=StatusKind.SUCCESS,
            status=status,
            progress=progress,
            artifact_url=primary or secondary,
            fallback_url=secondary,
            preview_url=preview,
            http_status=http_status,
        )

    if status in TERMINAL_FAILURE_STATUSES:
        return NormalizedStatus(
            kind=StatusKind.TERMINAL_FAILURE,
            status=status,
            progress=progress,
            http_status=http_status,
            error=_error_message(body) or _error_message(payload) or f"Generation {status}",
        )

    return NormalizedStatus(
        kind=StatusKind.IN_PROGRESS,
        status=status,
        progress=progress,
        http_status=http_status,
        error=None if 200 <= http_status < 300 else _error_message(payload),
    )


def _coerce_http_status(value: Any) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _unwrap(payload: Any) -> Dict[str, Any]:
    """Return the dict that carries ``status``, looking inside a ``data`` envelope."""
    if not isinstance(payload, dict):
        return {}
    data = payload.get("data")
    if isinstance(data, dict) and "status" in data:
        return data
    return payload


def _status_of(body: Dict[str, Any]) -> Optional[str]:
    status = body.get("status")
    if not isinstance(status, str):
        return None
    status = status.strip().lower()
    return status or None


def _first_url(source: Dict[str, Any], keys: Iterable[str]) -> Optional[str]:
    for key in keys:
        value = source.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _error_message(payload: Any) -> Optional[str]:
    if not isinstance(payload, dict):
        return None
    for key in ("error", "message", "detail", "failure_reason"):
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
        if isinstance(value, dict):
            nested = value.get("message") or value.get("description")
            if isinstance(nested, str) and nested.strip():
                return nested.strip()
    return None


def _is_config_problem(http_status: int, error: Optional[str]) -> bool:
    if http_status in (401, 403):
        return True
    if error:
        lowered = error.lower()
        return any(marker in lowered for marker in CONFIG_ERROR_MARKERS)
    return False
