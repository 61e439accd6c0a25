"""Fire-and-forget event fan-out for wager transitions."""

import logging
from typing import Callable

from .models import WagerEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[WagerEvent], None]


class EventBus:
    def __init__(self) -> None:
        self._handlers: list[EventHandler] = []

    def subscribe(self, handler: EventHandler) -> None:
        self._handlers.append(handler)

    def unsubscribe(self, handler: EventHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    def emit(self, event: WagerEvent) -> None:
        """Deliver to every handler; a failing handler never blocks the others."""
        logger.info(f"{event.name}: account={event.account} commitment={event.commitment_id}")

        for handler in list(self._handlers):
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Event handler failed for {event.name}: {e}", exc_info=True)
