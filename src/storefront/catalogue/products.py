"""Supported pack types and their default prices.

Both are environment-driven:

- ``SUPPORTED_PRODUCT_TYPES``: comma separated, default ``3-pack,5-pack``
- ``DEFAULT_<TYPE>_PRICE``: e.g. ``DEFAULT_3_PACK_PRICE=27.00``
"""

import os

from protean.exceptions import ValidationError

PACK_SIZE = 3

_FALLBACK_PRICES = {
    "3-pack": 27.0,
    "5-pack": 45.0,
}


def supported_product_types() -> list[str]:
    raw = os.getenv("SUPPORTED_PRODUCT_TYPES", "3-pack,5-pack")
    return [value.strip() for value in raw.split(",") if value.strip()]


def ensure_supported(product_type: str) -> None:
    if product_type not in supported_product_types():
        raise ValidationError({"product_type": [f"Unsupported product type: {product_type}"]})


def default_price(product_type: str) -> float:
    env_key = f"DEFAULT_{product_type.upper().replace('-', '_')}_PRICE"
    env_price = os.getenv(env_key)
    if env_price:
        try:
            return float(env_price)
        except ValueError as exc:
            raise ValidationError({"price": [f"{env_key} is not a number: {env_price}"]}) from exc
    return _FALLBACK_PRICES.get(product_type, 0.0)
