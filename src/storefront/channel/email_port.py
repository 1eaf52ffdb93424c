"""Email channel port.

Adapters never raise for a message that could not be delivered; they return a
``Delivery`` carrying the error instead, so callers decide whether it matters.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class Delivery:
    message_id: str | None = None
    error: str | None = None

    @property
    def sent(self) -> bool:
        return self.error is None


class EmailPort(ABC):
    @abstractmethod
    def send(self, to: str, subject: str, body: str, html_body: str | None = None) -> Delivery: ...
