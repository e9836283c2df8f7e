"""
Lightweight Event System for Local Effects

Provides a simple event emitter for hooks the engine fires but does not
depend on: celebrations after a check-in, the penalty banner, plan resets.
These are local-only; nothing here goes over the team channel.
"""
import logging
from typing import Callable, Dict, List

logger = logging.getLogger(__name__)


class EventBus:
    """Per-engine registry: event_name -> list of handlers."""

    def __init__(self):
        self._handlers: Dict[str, List[Callable]] = {}

    def subscribe(self, event_name: str, handler: Callable):
        """
        Subscribe a handler function to an event.

        Example:
            bus.subscribe(EVENT_CHECKIN_CELEBRATE, lambda date, weight: ...)
        """
        self._handlers.setdefault(event_name, []).append(handler)
        logger.debug(f"Subscribed handler to event: {event_name}")

    def unsubscribe(self, event_name: str, handler: Callable):
        handlers = self._handlers.get(event_name, [])
        if handler in handlers:
            handlers.remove(handler)

    def emit(self, event_name: str, **kwargs):
        """
        Emit an event, calling all subscribed handlers.

        A failing handler is logged and skipped; it never aborts the
        operation that emitted the event.
        """
        for handler in list(self._handlers.get(event_name, [])):
            try:
                handler(**kwargs)
            except Exception as e:
                logger.error(f"Error in event handler for {event_name}: {e}", exc_info=True)


# Common event names
EVENT_CHECKIN_SUBMITTED = 'checkin.submitted'
EVENT_CHECKIN_CELEBRATE = 'checkin.celebrate'
EVENT_PENALTY_ASSESSED = 'penalty.assessed'
EVENT_PLAN_RESET = 'plan.reset'
EVENT_TEAM_CHANGED = 'team.changed'
