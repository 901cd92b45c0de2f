# src/annuity/ledger/constants.py
from __future__ import annotations

"""Annuity ledger constants.

Anchors:
- Fixed-point values are unsigned integers scaled by 1e18 (18 decimal digits)
- All values are bounded by the 256-bit unsigned range
- Staking yields 100% APY, continuously compounded (r = ln 2)
- Payout releases the pre-payout snapshot linearly over one year
- Forced payouts forfeit half of the penalized debit
"""

# Fixed-point precision (1.0 == UNIT)
FIXED_DECIMALS: int = 18
UNIT: int = 10**FIXED_DECIMALS
HALF_UNIT: int = UNIT // 2

# Unsigned 256-bit range
MAX_UINT256: int = 2**256 - 1

# log2(e) and ln(2) at 18 decimals (truncated)
LOG2_E: int = 1_442695040888963407
LN_2: int = 693147180559945309

# 365 days
SECONDS_PER_YEAR: int = 31_536_000

# e^r for r = ln 2, i.e. the yearly growth factor at 100% APY
GROWTH_BASE: int = 2 * UNIT

# Forced payout: amount delivered per unit debited beyond normal release
PENALTY_DIVISOR: int = 2

# Canonical id of the annuity contract in the token ledger
CONTRACT_ACCOUNT_ID: str = "ANNUITY"
