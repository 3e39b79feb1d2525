"""User interaction events that count as session activity."""
import sys
from typing import Callable, Dict, List, Optional


TRACKED_EVENTS = ("mousedown", "keydown", "scroll", "touchstart", "click")

Handler = Callable[[str], None]


class Subscription:
    """Handle returned by :meth:`ActivityEvents.subscribe`."""
    
    def __init__(self, source: "ActivityEvents", event: str, handler: Handler):
        self._source = source
        self.event = event
        self.handler = handler
        self.active = True
    
    def unsubscribe(self) -> None:
        """Stop receiving events. Safe to call more than once."""
        if self.active:
            self._source._remove(self)
            self.active = False


class ActivityEvents:
    """Minimal event hub standing in for window-level interaction listeners."""
    
    def __init__(self) -> None:
        self._handlers: Dict[str, List[Subscription]] = {}
    
    def subscribe(self, event: str, handler: Handler) -> Subscription:
        subscription = Subscription(self, event, handler)
        self._handlers.setdefault(event, []).append(subscription)
        return subscription
    
    def listener_count(self, event: Optional[str] = None) -> int:
        if event is not None:
            return len(self._handlers.get(event, []))
        return sum(len(subs) for subs in self._handlers.values())
    
    def emit(self, event: str) -> None:
        """Deliver ``event`` to every subscribed handler."""
        for subscription in list(self._handlers.get(event, [])):
            try:
                subscription.handler(event)
            except Exception as e:
                print(f"[ActivityEvents] Handler for '{event}' failed: {e}", file=sys.stderr)
    
    def _remove(self, subscription: Subscription) -> None:
        subs = self._handlers.get(subscription.event, [])
        if subscription in subs:
            subs.remove(subscription)
