"""
Best-effort side effects (audit rows, initial history rows).

A side effect runs inside a SAVEPOINT: if it raises, only its own writes are
rolled back, the failure is logged with ``event_type=side_effect_failed``
and counted, and the caller's transaction carries on. Failures are never
surfaced to the caller.
"""

from __future__ import annotations

import logging
import time
from collections import Counter
from typing import Any

from portal.models import db

logger = logging.getLogger(__name__)

_FAILURES: Counter = Counter()
_RECENT: list[dict[str, Any]] = []
_MAX_RECENT = 500


def dispatch(name: str, fn, *args, **kwargs) -> bool:
    """Run ``fn(*args, **kwargs)`` best-effort. Returns True if it succeeded."""
    try:
        with db.session.begin_nested():
            fn(*args, **kwargs)
    except Exception as exc:
        _FAILURES[name] += 1
        _RECENT.append({"ts": time.time(), "name": name, "error": str(exc)})
        if len(_RECENT) > _MAX_RECENT:
            del _RECENT[: _MAX_RECENT // 2]
        logger.warning(
            "Side effect %s failed: %s", name, exc,
            extra={"event_type": "side_effect_failed", "side_effect": name},
        )
        return False
    return True


def failure_counts() -> dict[str, int]:
    return dict(_FAILURES)


def recent_failures(*, seconds: int = 3600) -> list[dict[str, Any]]:
    cutoff = time.time() - seconds
    return [e for e in _RECENT if e["ts"] >= cutoff]


def reset_side_effect_stats() -> None:
    _FAILURES.clear()
    _RECENT.clear()
