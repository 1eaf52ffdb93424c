"""Shippo carrier adapter over the Shippo REST API.

Configured from the environment:
    SHIPPO_API_TOKEN
    SHIP_FROM_NAME, SHIP_FROM_STREET, SHIP_FROM_CITY, SHIP_FROM_STATE,
    SHIP_FROM_ZIP, SHIP_FROM_COUNTRY
"""

import os
from dataclasses import asdict

import requests

from storefront.carrier.port import CarrierPort, Parcel, Rate, Shipment
from storefront.domain import logger
from storefront.exceptions import GatewayUnavailable

SHIPPO_API_URL = "https://api.goshippo.com"
REQUEST_TIMEOUT = 5


def _ship_from() -> dict:
    return {
        "name": os.getenv("SHIP_FROM_NAME", "Storefront Warehouse"),
        "street1": os.getenv("SHIP_FROM_STREET", ""),
        "city": os.getenv("SHIP_FROM_CITY", ""),
        "state": os.getenv("SHIP_FROM_STATE", ""),
        "zip": os.getenv("SHIP_FROM_ZIP", ""),
        "country": os.getenv("SHIP_FROM_COUNTRY", "US"),
    }


def _ship_to(address: dict) -> dict:
    return {
        "name": address.get("name") or "Customer",
        "street1": address.get("street"),
        "street2": address.get("street2") or "",
        "city": address.get("city"),
        "state": address.get("state") or "",
        "zip": address.get("postal_code"),
        "country": address.get("country"),
        "phone": address.get("phone") or "",
    }


class ShippoCarrier(CarrierPort):
    def __init__(self, api_token: str | None = None, timeout: float = REQUEST_TIMEOUT) -> None:
        self.api_token = api_token or os.getenv("SHIPPO_API_TOKEN", "")
        self.timeout = timeout

    def _request(self, method: str, path: str, payload: dict | None = None) -> dict:
        try:
            response = requests.request(
                method,
                f"{SHIPPO_API_URL}{path}",
                json=payload,
                headers={"Authorization": f"ShippoToken {self.api_token}"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            return response.json()
        except requests.exceptions.RequestException as exc:
            logger.error("Shippo request failed", path=path, error=str(exc))
            raise GatewayUnavailable("carrier", str(exc)) from exc

    def get_rates(self, address: dict, parcels: list[Parcel]) -> list[Rate]:
        shipment = self._request(
            "POST",
            "/shipments/",
            {
                "address_from": _ship_from(),
                "address_to": _ship_to(address),
                "parcels": [{key: str(value) for key, value in asdict(parcel).items()} for parcel in parcels],
                "async": False,
            },
        )
        rates = [
            Rate(
                rate_id=rate["object_id"],
                carrier=rate.get("provider") or "USPS",
                amount=float(rate.get("amount") or 0),
                service_name=(rate.get("servicelevel") or {}).get("name"),
                eta_days=rate.get("estimated_days"),
            )
            for rate in shipment.get("rates") or []
        ]
        return sorted(rates, key=lambda rate: rate.amount)

    def create_shipment(self, rate_id: str) -> Shipment:
        transaction = self._request(
            "POST",
            "/transactions/",
            {"rate": rate_id, "label_file_type": "PDF", "async": False},
        )
        if transaction.get("status") != "SUCCESS":
            messages = "; ".join(m.get("text", "") for m in transaction.get("messages") or [])
            raise GatewayUnavailable("carrier", messages or f"label purchase {transaction.get('status')}")

        rate = self._request("GET", f"/rates/{rate_id}")
        return Shipment(
            tracking_number=transaction["tracking_number"],
            tracking_url=transaction.get("tracking_url_provider"),
            label_cost=float(rate.get("amount") or 0),
            label_url=transaction.get("label_url"),
        )
