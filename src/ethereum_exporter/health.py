"""Health and sync reporting derived from the poll engine state."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Tuple

from fastapi import status

from .models import SyncState
from .poller.engine import PollEngine


def _isoformat(timestamp: float | None) -> str | None:
    if timestamp is None:
        return None

    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


def generate_synced_report(engine: PollEngine) -> Tuple[int, Dict[str, Any]]:
    """Report whether the node is connected and level with the reference oracle.

    This is the target of the service directory health check, so anything
    other than ``connected-synced`` answers 503.
    """
    state = engine.state

    if state is SyncState.CONNECTED_SYNCED:
        return status.HTTP_200_OK, {"status": "synced", "chain": engine.chain}

    content: Dict[str, Any] = {"status": "not_synced", "state": state.value}

    if engine.chain:
        content["chain"] = engine.chain

    result = engine.last_result

    if result is not None and result.blocks_behind is not None:
        content["blocks_behind"] = result.blocks_behind

    return status.HTTP_503_SERVICE_UNAVAILABLE, content


def generate_health_report(engine: PollEngine) -> Tuple[str, int, Dict[str, Any]]:
    state = engine.state

    if state is SyncState.DISCONNECTED:
        overall_status = "disconnected"
        status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    elif engine.last_result is not None and not engine.last_result.ok:
        overall_status = "degraded"
        status_code = status.HTTP_200_OK
    else:
        overall_status = "ok"
        status_code = status.HTTP_200_OK

    details: Dict[str, Any] = {
        "state": state.value,
        "chain": engine.chain,
        "last_cycle_timestamp": _isoformat(engine.last_cycle_at),
        "last_success_timestamp": _isoformat(engine.last_success_at),
    }

    if engine.last_result is not None and engine.last_result.failures:
        details["failures"] = [
            {"metric": failure.metric, "error": str(failure.error)}
            for failure in engine.last_result.failures
        ]

    return overall_status, status_code, details


__all__ = ["generate_health_report", "generate_synced_report"]
