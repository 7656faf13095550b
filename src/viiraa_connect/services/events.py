"""Session change observable shared by the session manager and its consumers."""

import inspect
import logging
from typing import Any, Callable, List

from ..models.session import SessionChange

logger = logging.getLogger(__name__)


SessionListener = Callable[[SessionChange], Any]


class SessionEvents:
    """
    Explicit publish/subscribe channel for session changes.

    Subscribers run in subscription order. Async subscribers are awaited
    before the next one runs. A failing subscriber is logged and skipped.
    """

    def __init__(self) -> None:
        self._listeners: List[SessionListener] = []

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Add a listener; returns a callable that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    async def publish(self, change: SessionChange) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(change)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(
                    f"Session listener {getattr(listener, '__qualname__', listener)!s} "
                    f"failed on {change.event.value}: {e}",
                    exc_info=True,
                )
