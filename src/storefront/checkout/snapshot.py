"""CheckoutSnapshot: the frozen order handed to the gateway as metadata.

When checkout does not create an order up front, the gateway carries this
snapshot and hands it back on payment confirmation. It is parsed strictly on
the way back in: anything that does not match the schema is rejected rather
than turned into a half-built order.
"""

from protean.exceptions import ValidationError
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic import ValidationError as SchemaError


class SnapshotItem(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    product_id: str | None = None
    recipe_id: str | None = None
    sku: str | None = None
    quantity: int = Field(ge=1)
    price: float = Field(ge=0)
    units: list[str] = Field(default_factory=list)
    custom_name: str | None = None
    cart_line_id: str | None = None

    @model_validator(mode="after")
    def must_reference_stock(self):
        if not self.units and not self.product_id:
            raise ValueError("item must carry flavor units or a product id")
        return self


class SnapshotAddress(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str | None = None
    street: str
    street2: str | None = None
    city: str
    state: str | None = None
    postal_code: str
    country: str
    phone: str | None = None


class SnapshotRate(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    rate_id: str
    carrier: str | None = None
    service_name: str | None = None
    amount: float = Field(ge=0)
    eta_days: int | None = None


class CheckoutSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    owner_key: str
    is_guest: bool = False
    guest_email: str | None = None
    total: float = Field(ge=0)
    notes: str | None = None
    items: list[SnapshotItem] = Field(min_length=1)
    address: SnapshotAddress | None = None
    shipping_rate: SnapshotRate | None = None

    def to_metadata(self) -> str:
        return self.model_dump_json(exclude_none=True, exclude_defaults=True)

    @classmethod
    def build(cls, **data) -> "CheckoutSnapshot":
        try:
            return cls.model_validate(data)
        except SchemaError as exc:
            raise ValidationError({"snapshot": _problems(exc)}) from exc

    @classmethod
    def from_metadata(cls, raw: str) -> "CheckoutSnapshot":
        try:
            return cls.model_validate_json(raw)
        except SchemaError as exc:
            raise ValidationError({"snapshot": _problems(exc)}) from exc


def _problems(exc: SchemaError) -> list[str]:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"]) or "snapshot"
        problems.append(f"{location}: {error['msg']}")
    return problems
