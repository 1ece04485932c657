"""Status stream — the normalized PENDING / SUCCESS / ERROR feed.

At most one event is active per stream. Publishing replaces the active
event. Terminal events (SUCCESS, ERROR) clear themselves after the
display window the policy assigns to their kind; PENDING stays until
replaced. Auto-clearing is a display affordance only. Nothing in the
lifecycle depends on it.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from sealedreview.models.status import StatusEvent, StatusKind
from sealedreview.policy.resolver import PolicyResolver

logger = logging.getLogger(__name__)

StatusListener = Callable[[StatusEvent], None]


class StatusStream:
    """Observer-style publisher of lifecycle status events."""

    def __init__(self, resolver: PolicyResolver) -> None:
        self._resolver = resolver
        self._current: Optional[StatusEvent] = None
        self._listeners: list[StatusListener] = []
        self._clear_handle: Optional[asyncio.TimerHandle] = None

    @property
    def current(self) -> Optional[StatusEvent]:
        return self._current

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        """Register a listener. Returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def pending(self, message: str) -> StatusEvent:
        return self.publish(StatusEvent(StatusKind.PENDING, message))

    def success(self, message: str) -> StatusEvent:
        return self.publish(StatusEvent(StatusKind.SUCCESS, message))

    def error(self, message: str) -> StatusEvent:
        return self.publish(StatusEvent(StatusKind.ERROR, message))

    def publish(self, event: StatusEvent) -> StatusEvent:
        self._cancel_clear()
        self._current = event
        log = logger.warning if event.kind == StatusKind.ERROR else logger.info
        log("[%s] %s", event.kind.value, event.message)

        for listener in list(self._listeners):
            listener(event)

        delay = self._resolver.display_seconds(event.kind)
        if delay is not None:
            self._schedule_clear(event, delay)
        return event

    def clear(self) -> None:
        self._cancel_clear()
        self._current = None

    def _schedule_clear(self, event: StatusEvent, delay: float) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return  # no loop, event stays until replaced or cleared
        self._clear_handle = loop.call_later(delay, self._expire, event)

    def _expire(self, event: StatusEvent) -> None:
        self._clear_handle = None
        if self._current is event:
            self._current = None

    def _cancel_clear(self) -> None:
        if self._clear_handle is not None:
            self._clear_handle.cancel()
            self._clear_handle = None
