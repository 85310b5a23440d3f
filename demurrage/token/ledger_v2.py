from demurrage.token.errors import FeeIncreaseNotAllowed
from demurrage.token.ledger import TokenWithFees, mutates


class TokenWithFeesV2(TokenWithFees):
    """
    Second implementation: the owner may lower the fee rate without waiting for
    the change cooldown. Storage layout is unchanged.
    """
    VERSION = 2

    @mutates
    def reduce_fee_rate(self, caller, new_rate, now):
        self._only_owner(caller)
        self._check_amount(new_rate)
        if new_rate > self.state.fee_rate:
            raise FeeIncreaseNotAllowed(
                f"{FeeIncreaseNotAllowed.message}: {new_rate} > current {self.state.fee_rate}"
            )
        self._change_fee_rate(new_rate, now)
