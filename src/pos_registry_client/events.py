from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Callable

logger = logging.getLogger(__name__)

SESSION_EXPIRED = "auth:session-expired"

SignalHandler = Callable[..., None]


class SignalBus:
    """Process-local named signals; a failing listener never breaks the emitter."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[SignalHandler]] = defaultdict(list)

    def subscribe(self, name: str, handler: SignalHandler) -> Callable[[], None]:
        self._handlers[name].append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers[name]:
                self._handlers[name].remove(handler)

        return unsubscribe

    def emit(self, name: str, **payload: Any) -> int:
        delivered = 0
        for handler in list(self._handlers.get(name, ())):
            try:
                handler(**payload)
            except Exception:
                logger.exception("signal_handler_failed", extra={"signal": name})
                continue
            delivered += 1
        return delivered
