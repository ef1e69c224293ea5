"""Cache key layout and post-commit invalidation."""

import hashlib
import json

from marketplace.cache import get_cache
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)


def order_detail_key(order_id) -> str:
    return f"orders:detail:{order_id}"


def _digest(params: dict) -> str:
    encoded = json.dumps(params, sort_keys=True, default=str).encode()
    return hashlib.sha1(encoded, usedforsecurity=False).hexdigest()[:16]


def order_list_key(scope: str, scope_id: str | None, params: dict) -> str:
    """Key for one page of a listing. ``scope`` is customer, vendor or admin."""
    if scope == "admin":
        return f"orders:admin:{_digest(params)}"
    return f"orders:{scope}:{scope_id}:{_digest(params)}"


def commission_report_key(params: dict) -> str:
    return f"commissions:report:{_digest(params)}"


def order_patterns(order_id, customer_id, vendor_ids) -> list[str]:
    patterns = [
        order_detail_key(order_id),
        f"orders:customer:{customer_id}:*",
        "orders:admin:*",
    ]
    patterns.extend(f"orders:vendor:{vendor_id}:*" for vendor_id in vendor_ids if vendor_id)
    return patterns


def invalidate_patterns(patterns) -> None:
    """Invalidate each pattern; failures are logged and never raised."""
    for pattern in patterns:
        try:
            get_cache().invalidate(pattern)
        except Exception as exc:
            logger.warning("cache_invalidation_failed", pattern=pattern, error=str(exc))


def invalidate_order(order_id, customer_id, vendor_ids) -> None:
    invalidate_patterns([*order_patterns(order_id, customer_id, vendor_ids), "commissions:*"])
