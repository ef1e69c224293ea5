"""Commission settings: the global default rate and per-vendor overrides.

There is exactly one settings aggregate, stored under ``SETTINGS_ID``. Until
an admin saves it, the default rate comes from ``DEFAULT_COMMISSION_RATE``
(0.20 when unset). Changing a rate never touches existing commission
records; they keep the rate snapshot taken when they were computed.
"""

import os
from datetime import UTC, datetime

from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import DateTime, Float, HasMany, Identifier, String
from protean.utils.globals import current_domain

from marketplace.commission.calculator import validate_rate
from marketplace.commission.events import DefaultCommissionRateChanged, VendorCommissionRateChanged
from marketplace.domain import marketplace
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)

SETTINGS_ID = "global"
FALLBACK_DEFAULT_RATE = 0.20


def configured_default_rate() -> float:
    return float(validate_rate(os.environ.get("DEFAULT_COMMISSION_RATE", FALLBACK_DEFAULT_RATE)))


@marketplace.entity(part_of="CommissionSettings")
class VendorRate:
    vendor_id = String(required=True, max_length=255)
    rate = Float(required=True, min_value=0.0, max_value=1.0)


@marketplace.aggregate
class CommissionSettings:
    default_rate = Float(required=True, min_value=0.0, max_value=1.0)
    vendor_rates = HasMany(VendorRate)
    updated_at = DateTime()

    @classmethod
    def initial(cls):
        return cls(id=SETTINGS_ID, default_rate=configured_default_rate(), updated_at=datetime.now(UTC))

    def _override_for(self, vendor_id: str):
        return next((vr for vr in (self.vendor_rates or []) if vr.vendor_id == vendor_id), None)

    def rate_for(self, vendor_id: str) -> float:
        """The vendor's override, or the global default."""
        override = self._override_for(vendor_id)
        return override.rate if override else self.default_rate

    def change_default_rate(self, rate) -> None:
        new_rate = float(validate_rate(rate))
        now = datetime.now(UTC)
        previous = self.default_rate
        self.default_rate = new_rate
        self.updated_at = now
        self.raise_(DefaultCommissionRateChanged(previous_rate=previous, new_rate=new_rate, changed_at=now))

    def set_vendor_rate(self, vendor_id: str, rate) -> None:
        new_rate = float(validate_rate(rate))
        now = datetime.now(UTC)
        override = self._override_for(vendor_id)
        previous = override.rate if override else None
        if override:
            override.rate = new_rate
        else:
            self.add_vendor_rates(VendorRate(vendor_id=vendor_id, rate=new_rate))
        self.updated_at = now
        self.raise_(
            VendorCommissionRateChanged(
                vendor_id=vendor_id,
                previous_rate=previous,
                new_rate=new_rate,
                changed_at=now,
            )
        )

    def clear_vendor_rate(self, vendor_id: str) -> None:
        override = self._override_for(vendor_id)
        if override is None:
            return
        now = datetime.now(UTC)
        self.remove_vendor_rates(override)
        self.updated_at = now
        self.raise_(VendorCommissionRateChanged(vendor_id=vendor_id, previous_rate=override.rate, changed_at=now))


def load_settings() -> CommissionSettings:
    """Return the stored settings, or unsaved defaults if none exist yet."""
    try:
        return current_domain.repository_for(CommissionSettings).get(SETTINGS_ID)
    except ObjectNotFoundError:
        return CommissionSettings.initial()


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------
@marketplace.command(part_of="CommissionSettings")
class UpdateDefaultCommissionRate:
    rate = Float(required=True)
    changed_by = Identifier(required=True)


@marketplace.command(part_of="CommissionSettings")
class SetVendorCommissionRate:
    vendor_id = String(required=True, max_length=255)
    rate = Float(required=True)
    changed_by = Identifier(required=True)


@marketplace.command(part_of="CommissionSettings")
class ClearVendorCommissionRate:
    vendor_id = String(required=True, max_length=255)
    changed_by = Identifier(required=True)


@marketplace.command_handler(part_of=CommissionSettings)
class CommissionSettingsHandler:
    @handle(UpdateDefaultCommissionRate)
    def update_default_rate(self, command):
        settings = load_settings()
        settings.change_default_rate(command.rate)
        current_domain.repository_for(CommissionSettings).add(settings)
        logger.info("default_commission_rate_changed", rate=settings.default_rate, changed_by=command.changed_by)
        return settings

    @handle(SetVendorCommissionRate)
    def set_vendor_rate(self, command):
        settings = load_settings()
        settings.set_vendor_rate(command.vendor_id, command.rate)
        current_domain.repository_for(CommissionSettings).add(settings)
        logger.info(
            "vendor_commission_rate_changed",
            vendor_id=command.vendor_id,
            rate=command.rate,
            changed_by=command.changed_by,
        )
        return settings

    @handle(ClearVendorCommissionRate)
    def clear_vendor_rate(self, command):
        settings = load_settings()
        settings.clear_vendor_rate(command.vendor_id)
        current_domain.repository_for(CommissionSettings).add(settings)
        logger.info("vendor_commission_rate_cleared", vendor_id=command.vendor_id, changed_by=command.changed_by)
        return settings
