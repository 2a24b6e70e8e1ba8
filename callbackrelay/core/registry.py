"""Registry of push-channel subscribers keyed by actionId."""
from typing import Dict, List, Optional, Tuple
import structlog
from .subscriber import Subscriber

log = structlog.get_logger()


class Registry:
    """
    Maps each actionId to the single subscriber waiting on it.

    Not synchronized on its own; the delivery engine serializes access.
    """

    def __init__(self):
        self._subscribers: Dict[str, Subscriber] = {}

    def register(self, action_id: str, handle: Subscriber) -> Optional[Subscriber]:
        """
        Register a subscriber for an actionId, replacing any earlier one.

        Returns:
            The displaced subscriber, if there was one (it is not notified)
        """
        previous = self._subscribers.get(action_id)
        self._subscribers[action_id] = handle
        if previous is not None and previous is not handle:
            log.info(
                "subscriber.superseded",
                action_id=action_id,
                previous_handle=previous.handle_id,
                handle=handle.handle_id,
            )
        return previous

    def unregister(self, action_id: str) -> Optional[Subscriber]:
        return self._subscribers.pop(action_id, None)

    def unregister_by_handle(self, handle: Subscriber) -> Optional[str]:
        """
        Remove the first entry pointing at ``handle``.

        Returns:
            The actionId that was removed, or None if the handle was not registered
        """
        for action_id, registered in self._subscribers.items():
            if registered is handle:
                del self._subscribers[action_id]
                return action_id
        return None

    def lookup(self, action_id: str) -> Optional[Subscriber]:
        return self._subscribers.get(action_id)

    def keys(self) -> List[str]:
        return list(self._subscribers.keys())

    def items(self) -> List[Tuple[str, Subscriber]]:
        return list(self._subscribers.items())

    def clear(self) -> int:
        count = len(self._subscribers)
        self._subscribers.clear()
        return count

    def __len__(self) -> int:
        return len(self._subscribers)

    def __contains__(self, action_id: str) -> bool:
        return action_id in self._subscribers

