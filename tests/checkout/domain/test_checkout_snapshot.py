import json

import pytest
from protean.exceptions import ValidationError

from storefront.checkout.snapshot import CheckoutSnapshot


def _snapshot(**overrides):
    data = {
        "owner_key": "guest-1",
        "is_guest": True,
        "guest_email": "guest@example.com",
        "total": 27.0,
        "items": [
            {
                "sku": "3P-CUST-CHE-LIM-GRA",
                "quantity": 1,
                "price": 27.0,
                "units": ["cherry", "lime", "grape"],
                "cart_line_id": "line-1",
            }
        ],
    }
    data.update(overrides)
    return CheckoutSnapshot.build(**data)


class TestBuild:
    def test_valid_snapshot(self):
        snapshot = _snapshot()
        assert snapshot.items[0].units == ["cherry", "lime", "grape"]
        assert snapshot.address is None

    def test_items_required(self):
        with pytest.raises(ValidationError) as exc:
            _snapshot(items=[])
        assert "items" in str(exc.value.messages["snapshot"])

    def test_item_must_reference_stock(self):
        with pytest.raises(ValidationError) as exc:
            _snapshot(items=[{"sku": "X", "quantity": 1, "price": 1.0}])
        assert "flavor units or a product id" in str(exc.value.messages["snapshot"])

    def test_unknown_fields_rejected(self):
        with pytest.raises(ValidationError):
            _snapshot(coupon="FREE")

    def test_negative_total_rejected(self):
        with pytest.raises(ValidationError):
            _snapshot(total=-1)

    def test_address_and_rate(self):
        snapshot = _snapshot(
            address={"street": "1 Main St", "city": "Austin", "postal_code": "78701", "country": "US"},
            shipping_rate={"rate_id": "rate_1", "carrier": "USPS", "amount": 5.25},
        )
        assert snapshot.address.city == "Austin"
        assert snapshot.shipping_rate.amount == 5.25


class TestMetadata:
    def test_metadata_is_compact_json(self):
        raw = _snapshot().to_metadata()
        data = json.loads(raw)
        assert data["owner_key"] == "guest-1"
        assert "notes" not in data

    def test_from_metadata_restores_snapshot(self):
        snapshot = _snapshot(notes="Gift wrap")
        assert CheckoutSnapshot.from_metadata(snapshot.to_metadata()) == snapshot

    @pytest.mark.parametrize(
        "raw",
        [
            "not json",
            json.dumps({"owner_key": "guest-1"}),
            json.dumps({"owner_key": "guest-1", "total": 1, "items": [{"quantity": 0, "price": 1, "units": ["a"]}]}),
        ],
    )
    def test_malformed_metadata_rejected(self, raw):
        with pytest.raises(ValidationError) as exc:
            CheckoutSnapshot.from_metadata(raw)
        assert exc.value.messages["snapshot"]
