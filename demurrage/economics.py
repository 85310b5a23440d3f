from demurrage.config import (
    DECIMALS,
    FEE_YEAR_SECONDS,
)
from demurrage.token.errors import (
    FeeChangeTooSoon,
    MaxFeeExceeded,
    MintingLimitExceeded,
)


def fee_precision(fee_year_seconds: int = None, decimals: int = None) -> int:
    """
    Denominator of the fee formula: one fee year expressed at full token precision.
    """
    year = FEE_YEAR_SECONDS if fee_year_seconds is None else fee_year_seconds
    places = DECIMALS if decimals is None else decimals
    return year * 10 ** places


def calculate_fee(balance: int, last_paid: int, now: int, fee_rate: int, fee_year_seconds: int = None, decimals: int = None) -> int:
    """
    Fee a settlement at `now` would deduct from `balance`.

    The fee is floor(balance * rate * elapsed / (fee_year * 10 ** decimals)) and is
    clamped to the balance. A zero checkpoint means nothing is owed.
    """
    if last_paid == 0 or balance <= 0 or fee_rate <= 0:
        return 0

    # Clock going backwards is treated as no time passing.
    elapsed = max(0, now - last_paid)
    if elapsed == 0:
        return 0

    fee = (balance * fee_rate * elapsed) // fee_precision(fee_year_seconds, decimals)

    return min(fee, balance)


def settle(balance: int, last_paid: int, now: int, fee_rate: int, fee_year_seconds: int = None, is_exempt: bool = False, decimals: int = None):
    """
    Apply the accrued fee to a nominal balance.

    Returns (new_balance, fee_amount). Calling it again with the same `now`
    against the refreshed checkpoint yields no further fee.
    """
    if is_exempt:
        return balance, 0

    fee = calculate_fee(balance, last_paid, now, fee_rate, fee_year_seconds, decimals)

    return balance - fee, fee


def check_fee_rate_change(new_rate: int, max_fee: int, last_fee_change: int, min_delay: int, now: int):
    """
    Validate a fee rate update against the ceiling and the change cooldown.
    """
    if new_rate > max_fee:
        raise MaxFeeExceeded()

    if now - last_fee_change < min_delay:
        raise FeeChangeTooSoon(
            f"{FeeChangeTooSoon.message}: "
            f"{min_delay - (now - last_fee_change)} seconds remaining"
        )


def check_mint_ceiling(total_supply: int, amount: int, locked_value: int):
    """
    Supply after a mint may reach the reserve reported by the oracle, never exceed it.
    """
    if total_supply + amount > locked_value:
        raise MintingLimitExceeded(
            f"{MintingLimitExceeded.message}: "
            f"supply {total_supply} + {amount} > locked value {locked_value}"
        )
