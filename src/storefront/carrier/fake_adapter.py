"""Fake carrier adapter: deterministic rates and labels for tests and development."""

from uuid import uuid4

from storefront.carrier.port import CarrierPort, Parcel, Rate, Shipment
from storefront.exceptions import GatewayUnavailable

_FAKE_SERVICES = [
    ("USPS", "Ground Advantage", 5.25, 5),
    ("USPS", "Priority Mail", 9.10, 2),
    ("UPS", "Next Day Air", 28.40, 1),
]


class FakeCarrier(CarrierPort):
    """Fake carrier that always succeeds by default."""

    def __init__(self) -> None:
        self.should_succeed = True
        self.failure_reason = "Carrier unavailable"
        self.calls: list[dict] = []
        self._rates: dict[str, Rate] = {}

    def configure(self, should_succeed: bool = True, failure_reason: str = "Carrier unavailable") -> None:
        """Configure the fake carrier behavior for testing."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def get_rates(self, address: dict, parcels: list[Parcel]) -> list[Rate]:
        self.calls.append({"method": "get_rates", "address": address, "parcels": parcels})
        if not self.should_succeed:
            raise GatewayUnavailable("carrier", self.failure_reason)

        rates = [
            Rate(
                rate_id=f"rate_{uuid4().hex[:10]}",
                carrier=carrier,
                amount=amount * len(parcels),
                service_name=service,
                eta_days=days,
            )
            for carrier, service, amount, days in _FAKE_SERVICES
        ]
        self._rates.update({rate.rate_id: rate for rate in rates})
        return rates

    def create_shipment(self, rate_id: str) -> Shipment:
        self.calls.append({"method": "create_shipment", "rate_id": rate_id})
        if not self.should_succeed:
            raise GatewayUnavailable("carrier", self.failure_reason)

        tracking_number = f"FAKE-{uuid4().hex[:12].upper()}"
        rate = self._rates.get(rate_id)
        return Shipment(
            tracking_number=tracking_number,
            tracking_url=f"https://fake-carrier.example.com/track/{tracking_number}",
            label_cost=rate.amount if rate else 5.25,
            label_url=f"https://fake-carrier.example.com/labels/{tracking_number}.pdf",
        )
