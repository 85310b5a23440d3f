import copy

from demurrage.config import (
    DECIMALS,
    FEE_YEAR_SECONDS,
    ZERO_ADDRESS,
)


class Account:
    def __init__(self, balance=0, fee_last_paid=0):
        self.balance = balance
        self.fee_last_paid = fee_last_paid

    def __repr__(self):
        return f'Account(balance={self.balance}, fee_last_paid={self.fee_last_paid})'

    def __eq__(self, other):
        return isinstance(other, Account) and self.__dict__ == other.__dict__

    def to_json(self):
        return dict(self.__dict__)

    @staticmethod
    def from_json(account_json):
        return Account(**account_json)


# Order matters: implementations may only append to this layout.
STORAGE_LAYOUT = (
    "initialized",
    "name",
    "symbol",
    "decimals",
    "owner",
    "total_supply",
    "accounts",
    "allowances",
    "fee_rate",
    "max_fee",
    "last_fee_change",
    "fee_change_min_delay",
    "fee_year_seconds",
    "fee_exempt",
    "fee_collection_address",
    "minter_address",
    "oracle",
)


class TokenState:
    """
    Storage of the token: everything that must survive an implementation swap.
    """
    def __init__(self):
        self.initialized = False
        self.name = ""
        self.symbol = ""
        self.decimals = DECIMALS
        self.owner = ZERO_ADDRESS
        self.total_supply = 0
        self.accounts = {}
        self.allowances = {}
        self.fee_rate = 0
        self.max_fee = 0
        self.last_fee_change = 0
        self.fee_change_min_delay = 0
        self.fee_year_seconds = FEE_YEAR_SECONDS
        self.fee_exempt = set()
        self.fee_collection_address = ZERO_ADDRESS
        self.minter_address = ZERO_ADDRESS
        self.oracle = None

    def account(self, address):
        """
        Return the account record for the address, creating an empty one on first use.
        """
        if address not in self.accounts:
            self.accounts[address] = Account()
        return self.accounts[address]

    def peek(self, address):
        """
        Read-only lookup that does not create a record.
        """
        return self.accounts.get(address) or Account()

    def snapshot(self):
        """
        Working copy for a single operation. Maps are copied, the oracle is shared.
        """
        clone = copy.copy(self)
        clone.accounts = {
            address: Account(account.balance, account.fee_last_paid)
            for address, account in self.accounts.items()
        }
        clone.allowances = {
            holder: dict(spenders)
            for holder, spenders in self.allowances.items()
        }
        clone.fee_exempt = set(self.fee_exempt)
        return clone

    def oracle_address(self):
        return self.oracle.address if self.oracle is not None else ZERO_ADDRESS

    def to_json(self):
        """
        Serialize the state into a flat ledger of balances, checkpoints and configuration.
        The oracle is recorded by address only.
        """
        return {
            "initialized": self.initialized,
            "name": self.name,
            "symbol": self.symbol,
            "decimals": self.decimals,
            "owner": self.owner,
            "total_supply": self.total_supply,
            "accounts": {
                address: account.to_json()
                for address, account in sorted(self.accounts.items())
            },
            "allowances": {
                holder: dict(spenders)
                for holder, spenders in sorted(self.allowances.items())
            },
            "fee_rate": self.fee_rate,
            "max_fee": self.max_fee,
            "last_fee_change": self.last_fee_change,
            "fee_change_min_delay": self.fee_change_min_delay,
            "fee_year_seconds": self.fee_year_seconds,
            "fee_exempt": sorted(self.fee_exempt),
            "fee_collection_address": self.fee_collection_address,
            "minter_address": self.minter_address,
            "oracle": self.oracle_address(),
        }

    @staticmethod
    def from_json(state_json, oracle=None):
        """
        Rebuild state from a ledger dump. Missing fields keep their defaults so older
        dumps load under newer layouts. The oracle object has to be supplied by the caller.
        """
        state = TokenState()
        for field in STORAGE_LAYOUT:
            if field not in state_json or field in ("accounts", "allowances", "fee_exempt", "oracle"):
                continue
            setattr(state, field, state_json[field])

        state.accounts = {
            address: Account.from_json(account_json)
            for address, account_json in state_json.get("accounts", {}).items()
        }
        state.allowances = {
            holder: dict(spenders)
            for holder, spenders in state_json.get("allowances", {}).items()
        }
        state.fee_exempt = set(state_json.get("fee_exempt", []))

        recorded_oracle = state_json.get("oracle", ZERO_ADDRESS)
        if oracle is None and recorded_oracle != ZERO_ADDRESS:
            raise Exception(
                f"Recorded oracle {recorded_oracle} has to be supplied to restore the state"
            )
        if oracle is not None and oracle.address != recorded_oracle:
            raise Exception(
                f"Oracle {oracle.address} does not match recorded oracle {recorded_oracle}"
            )
        state.oracle = oracle
        return state
