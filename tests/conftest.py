import os
from pathlib import Path

import pytest


def pytest_addoption(parser):
    parser.addoption(
        "--env",
        action="store",
        default="test",
        help="Config environment to run tests on",
    )


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their directory location."""
    for item in items:
        test_path = str(Path(item.fspath))

        if "/domain/" in test_path:
            item.add_marker(pytest.mark.domain)
        elif "/application/" in test_path:
            item.add_marker(pytest.mark.application)
        elif "/integration/" in test_path:
            item.add_marker(pytest.mark.integration)
            if not any(m.name == "fast" for m in item.iter_markers()):
                item.add_marker(pytest.mark.slow)
        elif "/bdd/" in test_path:
            item.add_marker(pytest.mark.bdd)


@pytest.fixture(scope="session")
def _storefront_domain(request):
    """Initialize the storefront domain once per session."""
    os.environ["PROTEAN_ENV"] = request.config.option.env

    from storefront.domain import storefront

    storefront.init()
    return storefront


@pytest.fixture(scope="session", autouse=True)
def setup_db(_storefront_domain):
    from storefront.utils.db import drop_db, setup_db

    setup_db(_storefront_domain)

    yield

    drop_db(_storefront_domain)


@pytest.fixture(autouse=True)
def run_around_tests(_storefront_domain):
    """Push domain context before each test, cleanup after."""
    ctx = _storefront_domain.domain_context()
    ctx.push()

    yield

    from protean import current_domain

    from storefront.carrier import reset_carrier
    from storefront.channel import reset_email_channel
    from storefront.gateway import reset_gateway
    from storefront.identity import reset_directory

    for _, provider in current_domain.providers.items():
        provider._data_reset()

    for _, broker in current_domain.brokers.items():
        broker._data_reset()

    current_domain.event_store.store._data_reset()

    reset_gateway()
    reset_carrier()
    reset_email_channel()
    reset_directory()
    ctx.pop()


# ---------------------------------------------------------------------------
# Adapters
# ---------------------------------------------------------------------------
@pytest.fixture()
def gateway():
    from storefront.gateway import set_gateway
    from storefront.gateway.fake_adapter import FakeGateway

    fake = FakeGateway()
    set_gateway(fake)
    return fake


@pytest.fixture()
def carrier():
    from storefront.carrier import set_carrier
    from storefront.carrier.fake_adapter import FakeCarrier

    fake = FakeCarrier()
    set_carrier(fake)
    return fake


@pytest.fixture()
def mailbox():
    from storefront.channel import get_email_channel

    return get_email_channel()


# ---------------------------------------------------------------------------
# Catalogue and stock
# ---------------------------------------------------------------------------
@pytest.fixture()
def make_flavor():
    """Create a flavor with its stock counter set to the given levels."""
    from protean import current_domain

    from storefront.catalogue.management import CreateFlavor
    from storefront.stock.ledger import process_stock_command
    from storefront.stock.management import ReceiveStock, SetSafetyStock

    def _make(name, on_hand=10, safety_stock=0, kind="Traditional"):
        flavor_id = current_domain.process(CreateFlavor(name=name, kind=kind), asynchronous=False)
        if on_hand:
            process_stock_command(ReceiveStock(stock_id=flavor_id, quantity=on_hand))
        if safety_stock:
            process_stock_command(SetSafetyStock(stock_id=flavor_id, safety_stock=safety_stock))
        return flavor_id

    return _make


@pytest.fixture()
def three_flavors(make_flavor):
    return [make_flavor("Cherry"), make_flavor("Lime"), make_flavor("Grape")]


@pytest.fixture()
def counter():
    """Read a stock counter fresh from the repository."""
    from protean import current_domain

    from storefront.stock.counter import StockCounter

    def _counter(stock_id):
        return current_domain.repository_for(StockCounter).get(str(stock_id))

    return _counter
