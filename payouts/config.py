"""
Payout and bank verification limits. Amounts in the billing unit.
"""

PAYOUT_MIN_AMOUNT = 1000
PAYOUT_MAX_AMOUNT = 100000

# Fee an approver may deduct from a payout
PAYOUT_MAX_TRANSACTION_FEE = 100

PENNY_TEST_MAX_ATTEMPTS = 3

# Penny test deposit in paise (1.00 to 9.99 rupees)
PENNY_TEST_MIN_PAISE = 100
PENNY_TEST_MAX_PAISE = 999
