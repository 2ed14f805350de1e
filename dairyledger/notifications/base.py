from abc import ABC, abstractmethod

from dairyledger.models.user import User


class NotificationChannel(ABC):
    name: str = ""

    @abstractmethod
    def can_reach(self, user: User) -> bool:
        """Whether this channel has an address for ``user``."""
        ...

    @abstractmethod
    def send(self, user: User, title: str, message: str) -> None:
        """Deliver one message. Raises on transport failure."""
        ...
