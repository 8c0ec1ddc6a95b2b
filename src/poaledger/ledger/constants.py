# src/poaledger/ledger/constants.py
from __future__ import annotations

"""Protocol constants for Proof-of-Asset tokens.

Amounts are integers throughout: wei for native value, cents for fiat,
smallest token units for token balances. Rates are fiat cents per whole
ether (a rate of 5000 means 50.00 units of fiat per ether).
"""

# Fixed-point scale for the per-token payout accumulators.
SCALE = 10**18

WEI_PER_ETHER = 10**18

DECIMALS = 18

# Fees are expressed in permille of the amount.
PERMILLE = 1000
FEE_RATE_PERMILLE = 5

# Activation fee may deviate this much (permille) from the quoted total fee.
ACTIVATION_FEE_TOLERANCE_PERMILLE = 5

# Access tokens minted per wei of fee paid into the fee share.
ACT_RATE = 1000

DAY_SECONDS = 24 * 60 * 60

MIN_TOTAL_SUPPLY = 10**18
MIN_FUNDING_GOAL_IN_CENTS = 1
MIN_DURATION_FOR_FUNDING_PERIOD = DAY_SECONDS
MIN_DURATION_FOR_ACTIVATION_PERIOD = 7 * DAY_SECONDS

# Well-known registry names used when wiring contracts together.
REG_POA_MANAGER = "PoaManager"
REG_POA_TOKEN_MASTER = "PoaTokenMaster"
REG_FEE_MANAGER = "FeeManager"
REG_WHITELIST = "Whitelist"
REG_EXCHANGE_RATES = "ExchangeRates"
REG_BBK = "BrickblockToken"
REG_COMPANY_ACCOUNT = "BrickblockAccount"

# Company BBK stays in the company account at least this long after genesis.
COMPANY_BBK_LOCK_SECONDS = 365 * DAY_SECONDS
