"""Marketplace bounded context: multi-party order fulfillment.

Splits a checkout into an admin unit and per-vendor units, drives each unit
through its own status lifecycle, derives the customer-visible order status,
and keeps an immutable ledger of vendor commission liabilities.
"""

from protean.domain import Domain

from marketplace.utils.logging import configure_logging

configure_logging()

marketplace = Domain(name="marketplace")
