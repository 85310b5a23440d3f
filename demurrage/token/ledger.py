import re

from demurrage.config import (
    DECIMALS,
    FEE_YEAR_SECONDS,
    ZERO_ADDRESS,
)
from demurrage.economics import (
    calculate_fee,
    check_fee_rate_change,
    check_mint_ceiling,
    settle,
)
from demurrage.token.errors import (
    AllowanceBelowZero,
    AlreadyInitialized,
    InsufficientAllowance,
    InsufficientBalance,
    InvalidAmount,
    InvalidFeeCollector,
    InvalidMiner,
    InvalidOracle,
    InvalidOwner,
    InvalidRecipient,
    MaxFeeExceeded,
    NotMinter,
    NotOwner,
)
from demurrage.token.oracle import is_unset
from demurrage.token.state import STORAGE_LAYOUT
from demurrage.util.log import log_debug, log_info, short


def mutates(method):
    """
    Mark a ledger method as state-changing so the proxy runs it transactionally.
    """
    method.mutates = True
    return method


ADDRESS_PATTERN = re.compile(r"0x[0-9a-fA-F]{40}")


def _is_zero(address) -> bool:
    return not address or address == ZERO_ADDRESS


def _is_address(address) -> bool:
    return isinstance(address, str) and ADDRESS_PATTERN.fullmatch(address) is not None


class TokenWithFees:
    """
    Token logic with a lazily settled holding fee.

    The instance is bound to a TokenState for the duration of one call and keeps
    no state of its own apart from the events raised during that call. Every
    balance-affecting operation settles the accounts it touches before applying
    its own effect; settled fees are moved to the fee collection address, so the
    nominal balances always add up to the total supply.
    """
    VERSION = 1
    STORAGE_LAYOUT = STORAGE_LAYOUT

    def __init__(self, state):
        self.state = state
        self.events = []

    # Setup

    @mutates
    def initialize(self, owner, name, symbol, fee_rate, max_fee, fee_change_min_delay,
                   fee_collection_address, minter_address, now,
                   decimals=DECIMALS, fee_year_seconds=FEE_YEAR_SECONDS):
        if self.state.initialized:
            raise AlreadyInitialized()
        self._check_address(owner, InvalidOwner)
        self._check_address(fee_collection_address, InvalidFeeCollector)
        self._check_address(minter_address, InvalidMiner)
        self._check_amount(fee_rate)
        self._check_amount(max_fee)
        if fee_rate > max_fee:
            raise MaxFeeExceeded()
        if fee_year_seconds <= 0:
            raise Exception("Fee year must be positive")
        if fee_change_min_delay < 0:
            raise Exception("Fee change delay cannot be negative")

        state = self.state
        state.initialized = True
        state.owner = owner
        state.name = name
        state.symbol = symbol
        state.decimals = decimals
        state.fee_rate = fee_rate
        state.max_fee = max_fee
        state.fee_change_min_delay = fee_change_min_delay
        state.fee_year_seconds = fee_year_seconds
        state.last_fee_change = now
        state.fee_collection_address = fee_collection_address
        state.minter_address = minter_address

        for address in (fee_collection_address, minter_address):
            state.fee_exempt.add(address)
            state.account(address).fee_last_paid = now

        self._emit("Initialized", now, owner=owner, version=self.VERSION)
        log_info(
            f"[TOKEN] Initialized {symbol} v{self.VERSION} owner={short(owner)} "
            f"fee_rate={fee_rate} max_fee={max_fee} delay={fee_change_min_delay}s"
        )

    # Reads

    def version(self):
        return self.VERSION

    def name(self):
        return self.state.name

    def symbol(self):
        return self.state.symbol

    def decimals(self):
        return self.state.decimals

    def owner(self):
        return self.state.owner

    def total_supply(self):
        return self.state.total_supply

    def minter(self):
        return self.state.minter_address

    def fee_collection_address(self):
        return self.state.fee_collection_address

    def fee_rate(self):
        return self.state.fee_rate

    def max_fee(self):
        return self.state.max_fee

    def last_fee_change(self):
        return self.state.last_fee_change

    def fee_change_min_delay(self):
        return self.state.fee_change_min_delay

    def fee_year_seconds(self):
        return self.state.fee_year_seconds

    def oracle(self):
        return self.state.oracle_address()

    def fee_exempt(self, address):
        return address in self.state.fee_exempt

    def fee_last_paid(self, address):
        return self.state.peek(address).fee_last_paid

    def balance_of_with_fee(self, address):
        """
        Nominal balance as last credited, before any accrued fee.
        """
        return self.state.peek(address).balance

    def calculate_fee(self, address, now):
        """
        Fee the account would pay if it were settled at `now`.
        """
        if self.fee_exempt(address):
            return 0
        account = self.state.peek(address)
        return calculate_fee(
            account.balance,
            account.fee_last_paid,
            now,
            self.state.fee_rate,
            self.state.fee_year_seconds,
            self.state.decimals,
        )

    def balance_of(self, address, now):
        """
        Spendable balance: nominal balance minus the fee accrued up to `now`.
        """
        return self.balance_of_with_fee(address) - self.calculate_fee(address, now)

    def allowance(self, holder, spender):
        return self.state.allowances.get(holder, {}).get(spender, 0)

    # Transfers

    @mutates
    def transfer(self, sender, recipient, amount, now):
        self._check_positive(amount)
        self._check_recipient(recipient)

        self._settle(sender, now)
        self._settle(recipient, now)
        self._move(sender, recipient, amount, now)
        return True

    @mutates
    def transfer_all(self, sender, recipient, now):
        """
        Move the whole settled balance, leaving the sender at exactly zero.
        Returns the amount moved.
        """
        self._check_recipient(recipient)
        if sender not in self.state.accounts:
            return 0

        self._settle(sender, now)
        amount = self.state.account(sender).balance
        if amount == 0:
            self._touch(sender, now, exempt_too=True)
            return 0

        self._settle(recipient, now)
        self._move(sender, recipient, amount, now)
        return amount

    @mutates
    def transfer_from(self, spender, holder, recipient, amount, now):
        self._check_positive(amount)
        self._check_address(holder)
        self._check_recipient(recipient)

        self._spend_allowance(holder, spender, amount)
        self._settle(holder, now)
        self._settle(recipient, now)
        self._move(holder, recipient, amount, now)
        return True

    # Allowances

    @mutates
    def approve(self, holder, spender, amount, now=None):
        self._check_amount(amount)
        self._check_spender(spender)
        self._set_allowance(holder, spender, amount, now)
        return True

    @mutates
    def increase_allowance(self, holder, spender, added_value, now=None):
        self._check_amount(added_value)
        self._check_spender(spender)
        self._set_allowance(holder, spender, self.allowance(holder, spender) + added_value, now)
        return True

    @mutates
    def decrease_allowance(self, holder, spender, subtracted_value, now=None):
        self._check_amount(subtracted_value)
        self._check_spender(spender)
        current = self.allowance(holder, spender)
        if current < subtracted_value:
            raise AllowanceBelowZero()
        self._set_allowance(holder, spender, current - subtracted_value, now)
        return True

    # Fees

    @mutates
    def collect_fees(self, addresses, now):
        """
        Settle every listed account and sweep its fee to the collector.

        Anyone may call this, so inactive holders cannot postpone their fee forever.
        Addresses that were never credited are skipped. Returns the total amount
        collected.
        """
        for address in addresses:
            self._check_address(address)

        total = 0
        for address in addresses:
            if address in self.state.accounts:
                total += self._settle(address, now)

        log_info(f"[FEE] Collected {total} from {len(addresses)} account(s) to {short(self.state.fee_collection_address)}")
        return total

    # Supply

    @mutates
    def mint(self, caller, amount, now):
        self._only_minter(caller)
        self._check_amount(amount)

        oracle = self.state.oracle
        if not is_unset(oracle):
            check_mint_ceiling(self.state.total_supply, amount, oracle.locked_value())

        self._settle(caller, now)
        self.state.account(caller).balance += amount
        self.state.total_supply += amount
        self._touch(caller, now, exempt_too=True)

        self._emit("Transfer", now, sender=ZERO_ADDRESS, recipient=caller, value=amount)
        log_info(f"[TOKEN] Minted {amount} to {short(caller)} supply={self.state.total_supply}")
        return True

    @mutates
    def burn(self, caller, holder, amount, now):
        """
        Destroy tokens of `holder`, spending the allowance it granted to the minter.
        """
        self._only_minter(caller)
        self._check_amount(amount)
        self._check_address(holder)

        self._settle(holder, now)
        self._spend_allowance(holder, caller, amount)

        account = self.state.account(holder)
        if account.balance < amount:
            raise InsufficientBalance(
                f"ERC20: burn amount exceeds balance: balance {account.balance} < {amount}"
            )
        account.balance -= amount
        self.state.total_supply -= amount
        self._touch(holder, now, exempt_too=True)

        self._emit("Transfer", now, sender=holder, recipient=ZERO_ADDRESS, value=amount)
        log_info(f"[TOKEN] Burned {amount} from {short(holder)} supply={self.state.total_supply}")
        return True

    # Administration

    @mutates
    def set_fee_rate(self, caller, new_rate, now):
        """
        Change the fee rate, subject to the ceiling and the change cooldown.

        Accounts are not re-settled: whoever is settled next pays its whole
        outstanding window at the new rate.
        """
        self._only_owner(caller)
        self._check_amount(new_rate)
        check_fee_rate_change(
            new_rate,
            self.state.max_fee,
            self.state.last_fee_change,
            self.state.fee_change_min_delay,
            now,
        )
        self._change_fee_rate(new_rate, now)

    @mutates
    def set_fee_exempt(self, caller, address, now):
        self._only_owner(caller)
        self._check_address(address)
        # Debt accrued before the exemption is still owed.
        self._settle(address, now)
        self.state.fee_exempt.add(address)

        self._emit("FeeExemptionSet", now, account=address, exempt=True)
        log_info(f"[FEE] Exempted {short(address)}")

    @mutates
    def unset_fee_exempt(self, caller, address, now):
        self._only_owner(caller)
        self._check_address(address)
        if address not in self.state.fee_exempt:
            return
        self.state.fee_exempt.discard(address)
        # Decay starts when the exemption ends.
        self._touch(address, now)

        self._emit("FeeExemptionSet", now, account=address, exempt=False)
        log_info(f"[FEE] Removed exemption of {short(address)}")

    @mutates
    def set_fee_collection_address(self, caller, address, now):
        self._only_owner(caller)
        self._check_address(address, InvalidFeeCollector)
        self._hand_over_role("fee_collection_address", address, now)

    @mutates
    def set_minter_role(self, caller, address, now):
        self._only_owner(caller)
        self._check_address(address, InvalidMiner)
        self._hand_over_role("minter_address", address, now)

    @mutates
    def set_oracle_address(self, caller, oracle, now=None):
        self._only_owner(caller)
        if is_unset(oracle):
            raise InvalidOracle()
        self.state.oracle = oracle

        self._emit("OracleSet", now, oracle=oracle.address)
        log_info(f"[TOKEN] Oracle set to {short(oracle.address)}")

    @mutates
    def transfer_ownership(self, caller, new_owner, now=None):
        self._only_owner(caller)
        self._check_address(new_owner, InvalidOwner)
        previous = self.state.owner
        self.state.owner = new_owner

        self._emit("OwnershipTransferred", now, previous_owner=previous, new_owner=new_owner)
        log_info(f"[TOKEN] Ownership {short(previous)} -> {short(new_owner)}")

    # Internals

    def _settle(self, address, now):
        """
        Deduct the fee accrued since the account's checkpoint and pay it to the
        collector. Returns the fee.
        """
        state = self.state
        account = state.account(address)
        balance, fee = settle(
            account.balance,
            account.fee_last_paid,
            now,
            state.fee_rate,
            state.fee_year_seconds,
            address in state.fee_exempt,
            state.decimals,
        )
        account.balance = balance
        if fee:
            self._pay_fee(address, fee, now)
        self._touch(address, now)
        return fee

    def _pay_fee(self, payer, fee, now):
        collector = self.state.fee_collection_address
        if collector == payer:
            self.state.account(payer).balance += fee
        else:
            self._settle(collector, now)
            self.state.account(collector).balance += fee
            self._touch(collector, now)

        self._emit("FeeCollected", now, account=payer, collector=collector, fee=fee)
        log_debug(f"[FEE] {short(payer)} paid {fee} to {short(collector)}")

    def _touch(self, address, now, exempt_too=False):
        """
        Refresh the settlement checkpoint: `now` while the account holds a balance,
        0 once it is empty.

        Exempt accounts are left alone unless `exempt_too` is set, which is the case
        for the account whose own balance the operation debited or minted into.
        """
        if address in self.state.fee_exempt and not exempt_too:
            return
        account = self.state.account(address)
        account.fee_last_paid = now if account.balance > 0 else 0

    def _move(self, sender, recipient, amount, now):
        source = self.state.account(sender)
        if source.balance < amount:
            raise InsufficientBalance(
                f"{InsufficientBalance.message}: balance {source.balance} < {amount}"
            )
        source.balance -= amount
        self.state.account(recipient).balance += amount
        self._touch(sender, now, exempt_too=True)
        self._touch(recipient, now)

        self._emit("Transfer", now, sender=sender, recipient=recipient, value=amount)

    def _set_allowance(self, holder, spender, amount, now):
        self.state.allowances.setdefault(holder, {})[spender] = amount
        self._emit("Approval", now, holder=holder, spender=spender, value=amount)

    def _spend_allowance(self, holder, spender, amount):
        current = self.allowance(holder, spender)
        if current < amount:
            raise InsufficientAllowance()
        self.state.allowances.setdefault(holder, {})[spender] = current - amount

    def _change_fee_rate(self, new_rate, now):
        previous = self.state.fee_rate
        self.state.fee_rate = new_rate
        self.state.last_fee_change = now

        self._emit("FeeRateChanged", now, previous_rate=previous, new_rate=new_rate)
        log_info(f"[FEE] Fee rate {previous} -> {new_rate}")

    def _hand_over_role(self, field, new_address, now):
        """
        Move a role and its fee exemption to a new address.

        The new holder settles what it owes as a regular account and starts with
        a fresh checkpoint; the previous holder starts decaying from now.
        """
        state = self.state
        old_address = getattr(state, field)
        if old_address == new_address:
            return

        self._settle(new_address, now)
        setattr(state, field, new_address)
        state.fee_exempt.add(new_address)
        state.account(new_address).fee_last_paid = now

        still_in_role = old_address in (state.fee_collection_address, state.minter_address)
        if not _is_zero(old_address) and not still_in_role:
            state.fee_exempt.discard(old_address)
            self._touch(old_address, now)

        self._emit("RoleChanged", now, role=field, previous=old_address, current=new_address)
        log_info(f"[TOKEN] {field} {short(old_address)} -> {short(new_address)}")

    def _only_owner(self, caller):
        if caller != self.state.owner:
            raise NotOwner()

    def _only_minter(self, caller):
        if caller != self.state.minter_address:
            raise NotMinter()

    @staticmethod
    def _check_amount(amount):
        if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
            raise InvalidAmount(f"Amount must be a non-negative integer, got {amount!r}")

    @staticmethod
    def _check_positive(amount):
        TokenWithFees._check_amount(amount)
        if amount == 0:
            raise InvalidAmount()

    @staticmethod
    def _check_address(address, error=InvalidRecipient, zero_message=None):
        if _is_zero(address):
            raise error(zero_message)
        if not _is_address(address):
            raise error(f"Invalid address: {address!r}")

    @staticmethod
    def _check_recipient(recipient):
        TokenWithFees._check_address(recipient)

    @staticmethod
    def _check_spender(spender):
        TokenWithFees._check_address(spender, zero_message="ERC20: approve to the zero address")

    def _emit(self, event, now, **fields):
        self.events.append({"event": event, "timestamp": now, **fields})
