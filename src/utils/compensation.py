"""Compensating actions for multi-step writes that are not one transaction.

Each completed step registers how to undo it. When a later step fails the
registered actions run once, newest first. A failing undo is logged and the
remaining ones still run; the caller re-raises its own original error.
"""

import logging
from typing import Callable, List, Tuple

logger = logging.getLogger(__name__)


class CompensationStack:
    def __init__(self, operation: str):
        self.operation = operation
        self._actions: List[Tuple[str, Callable[[], None]]] = []

    def push(self, name: str, action: Callable[[], None]) -> None:
        self._actions.append((name, action))

    def unwind(self) -> List[str]:
        """Run every registered action in reverse order.

        Returns:
            Names of the actions that failed.
        """
        failed = []
        while self._actions:
            name, action = self._actions.pop()
            try:
                action()
                logger.info("%s: compensated step '%s'", self.operation, name)
            except Exception:
                failed.append(name)
                logger.error(
                    "%s: compensation '%s' failed", self.operation, name, exc_info=True
                )
        return failed
