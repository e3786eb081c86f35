"""
Platform commission on provider income.
"""
from decimal import ROUND_HALF_UP, Decimal

from billing import config


def commission_rate_for(provider_user) -> Decimal:
    """Provider override if set, otherwise the platform rate from billing config."""
    profile = getattr(provider_user, "provider_profile", None)
    if profile is not None and profile.commission_rate is not None:
        return Decimal(profile.commission_rate)
    return Decimal(str(config.PLATFORM_COMMISSION_PERCENT))


def calculate_commission(provider_user, amount: int) -> int:
    if amount <= 0:
        return 0
    commission = (Decimal(amount) * commission_rate_for(provider_user)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return min(int(commission), amount)


def split_amount(provider_user, amount: int):
    """Return (provider_earning, platform_commission) for ``amount``; the two always add up to it."""
    commission = calculate_commission(provider_user, amount)
    return amount - commission, commission
