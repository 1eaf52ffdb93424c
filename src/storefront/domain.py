"""Storefront domain: pack catalogue, stock ledger, carts, checkout and orders.

Everything that touches stock counters lives in this single domain so that an
order's payment flip and the matching stock commit share one unit of work.
"""

from protean.domain import Domain

from storefront.utils.logging import configure_logging, get_logger

configure_logging()

logger = get_logger(__name__)

storefront = Domain(name="storefront")
