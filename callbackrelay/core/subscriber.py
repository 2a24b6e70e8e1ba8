"""Push-channel subscriber interface."""
from abc import ABC, abstractmethod
from typing import Any, Dict


class Subscriber(ABC):
    """
    One live push-channel connection.

    Implementations must make ``push`` non-blocking: the delivery engine calls
    it while holding its lock, so it may only enqueue the payload for later
    transmission.
    """

    handle_id: str

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """True while the underlying channel can still accept messages."""

    @abstractmethod
    def push(self, payload: Dict[str, Any]) -> None:
        """
        Queue a callback payload for delivery to the client.

        Args:
            payload: The callback payload exactly as it was ingested
        """

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.handle_id}>"
