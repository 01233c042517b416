"""Lightweight metrics helpers."""
from __future__ import annotations

from typing import Any, Dict, Optional

from app.observability import tracing


def log_metric(name: str, value: float | int, metadata: Optional[Dict[str, Any]] = None) -> None:
    """Record a metric as a short-lived Opik trace when tracing is enabled."""
    payload: Dict[str, Any] = {"value": value}
    if metadata:
        payload.update(metadata)

    with tracing.trace(f"metric:{name}", metadata=payload):
        pass
