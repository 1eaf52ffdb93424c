"""Carrier port: shipping rates and label purchase.

Adapters raise ``GatewayUnavailable`` when the provider cannot be reached or
refuses the request.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class Parcel:
    length: float
    width: float
    height: float
    weight: float
    distance_unit: str = "in"
    mass_unit: str = "lb"


# One pack ships in a 6 x 4 x 2 inch box at half a pound
DEFAULT_PARCEL = Parcel(length=6, width=4, height=2, weight=0.5)


@dataclass(frozen=True)
class Rate:
    rate_id: str
    carrier: str
    amount: float
    service_name: str | None = None
    eta_days: int | None = None


@dataclass(frozen=True)
class Shipment:
    tracking_number: str
    tracking_url: str | None = None
    label_cost: float | None = None
    label_url: str | None = None


class CarrierPort(ABC):
    """Abstract interface for carrier adapters."""

    @abstractmethod
    def get_rates(self, address: dict, parcels: list[Parcel]) -> list[Rate]:
        """Quote shipping from the warehouse to ``address``, cheapest first."""
        ...

    @abstractmethod
    def create_shipment(self, rate_id: str) -> Shipment:
        """Buy the label for a quoted rate."""
        ...
