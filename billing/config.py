"""
Billing configuration: single source of truth for platform fees and money windows.

All monetary amounts are integers in the platform billing unit unless otherwise noted.
"""

# Platform commission taken from each settled booking (0.5 = 50%).
# ProviderProfile.commission_rate overrides it per provider.
PLATFORM_COMMISSION_PERCENT = 0.5

# Currency sent to the payment gateway
CURRENCY = "INR"

# Wallet top-up limits (Stripe)
WALLET_TOPUP_MIN_AMOUNT = 100
WALLET_TOPUP_MAX_AMOUNT = 100000
