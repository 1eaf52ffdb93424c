"""Flavor aggregate: the smallest stock-tracked unit, three per pack."""

from datetime import UTC, datetime

from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, String

from storefront.catalogue.events import FlavorActivated, FlavorCreated, FlavorDeactivated
from storefront.domain import storefront


@storefront.aggregate
class Flavor:
    name = String(required=True, max_length=100)
    kind = String(max_length=50, default="Traditional")
    description = String(max_length=500)
    is_active = Boolean(default=True)
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def create(cls, name, kind=None, description=None):
        if not name or not name.strip():
            raise ValidationError({"name": ["Flavor name is required"]})
        now = datetime.now(UTC)
        flavor = cls(
            name=name.strip(),
            kind=kind or "Traditional",
            description=description,
            is_active=True,
            created_at=now,
            updated_at=now,
        )
        flavor.raise_(FlavorCreated(flavor_id=str(flavor.id), name=flavor.name, kind=flavor.kind))
        return flavor

    def deactivate(self):
        if not self.is_active:
            raise ValidationError({"is_active": ["Flavor is already inactive"]})
        self.is_active = False
        self.updated_at = datetime.now(UTC)
        self.raise_(FlavorDeactivated(flavor_id=str(self.id)))

    def activate(self):
        if self.is_active:
            raise ValidationError({"is_active": ["Flavor is already active"]})
        self.is_active = True
        self.updated_at = datetime.now(UTC)
        self.raise_(FlavorActivated(flavor_id=str(self.id)))
