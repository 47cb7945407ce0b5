"""
Compensation list for multi-step provisioning.

Each step that creates something outside the database transaction (or that
must be undone explicitly) registers an undo callable. On failure the
compensations run in reverse order; a failing compensation is logged and the
remaining ones still run.

Usage:
    saga = Saga("registration.approve")
    account_id = identity.create_account(...)
    saga.add("delete_account", lambda: identity.delete_account(account_id))
    ...
    except Exception:
        saga.compensate()
        raise
"""

import logging

logger = logging.getLogger(__name__)


class Saga:

    def __init__(self, name: str):
        self.name = name
        self._steps: list[tuple[str, object]] = []

    def add(self, step: str, undo) -> None:
        self._steps.append((step, undo))

    def compensate(self) -> list[str]:
        """Run compensations newest-first. Returns the names of those that failed."""
        failed = []
        while self._steps:
            step, undo = self._steps.pop()
            try:
                undo()
            except Exception:
                logger.exception(
                    "Compensation failed",
                    extra={"saga": self.name, "step": step, "event_type": "compensation_failed"},
                )
                failed.append(step)
            else:
                logger.info("Compensation applied", extra={"saga": self.name, "step": step})
        return failed
