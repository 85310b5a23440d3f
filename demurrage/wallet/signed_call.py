import time
import uuid

from demurrage.wallet.wallet import Wallet


class SignedCallError(Exception):
    pass


# method -> (expected params, how to invoke it on the token as the signer)
CALLABLE_METHODS = {
    "transfer": (
        ("recipient", "amount"),
        lambda token, caller, p, now: token.transfer(caller, p["recipient"], p["amount"], now),
    ),
    "transfer_all": (
        ("recipient",),
        lambda token, caller, p, now: token.transfer_all(caller, p["recipient"], now),
    ),
    "transfer_from": (
        ("holder", "recipient", "amount"),
        lambda token, caller, p, now: token.transfer_from(caller, p["holder"], p["recipient"], p["amount"], now),
    ),
    "approve": (
        ("spender", "amount"),
        lambda token, caller, p, now: token.approve(caller, p["spender"], p["amount"], now),
    ),
    "increase_allowance": (
        ("spender", "amount"),
        lambda token, caller, p, now: token.increase_allowance(caller, p["spender"], p["amount"], now),
    ),
    "decrease_allowance": (
        ("spender", "amount"),
        lambda token, caller, p, now: token.decrease_allowance(caller, p["spender"], p["amount"], now),
    ),
    "mint": (
        ("amount",),
        lambda token, caller, p, now: token.mint(caller, p["amount"], now),
    ),
    "burn": (
        ("holder", "amount"),
        lambda token, caller, p, now: token.burn(caller, p["holder"], p["amount"], now),
    ),
    "set_fee_rate": (
        ("rate",),
        lambda token, caller, p, now: token.set_fee_rate(caller, p["rate"], now),
    ),
    "reduce_fee_rate": (
        ("rate",),
        lambda token, caller, p, now: token.reduce_fee_rate(caller, p["rate"], now),
    ),
    "set_fee_exempt": (
        ("address",),
        lambda token, caller, p, now: token.set_fee_exempt(caller, p["address"], now),
    ),
    "unset_fee_exempt": (
        ("address",),
        lambda token, caller, p, now: token.unset_fee_exempt(caller, p["address"], now),
    ),
    "set_fee_collection_address": (
        ("address",),
        lambda token, caller, p, now: token.set_fee_collection_address(caller, p["address"], now),
    ),
    "set_minter_role": (
        ("address",),
        lambda token, caller, p, now: token.set_minter_role(caller, p["address"], now),
    ),
    "transfer_ownership": (
        ("address",),
        lambda token, caller, p, now: token.transfer_ownership(caller, p["address"], now),
    ),
}

# Operations that only move the signer's own funds or allowances
HOLDER_METHODS = (
    "transfer",
    "transfer_all",
    "transfer_from",
    "approve",
    "increase_allowance",
    "decrease_allowance",
)


class SignedCall:
    """
    A token operation signed by the holder it acts for. The signer's address is
    the caller the ledger sees.
    """
    def __init__(self, sender_wallet=None, method=None, params=None, id=None, input=None):
        if method not in CALLABLE_METHODS:
            raise SignedCallError(f"Unknown method: {method}")
        if id is not None and not isinstance(id, str):
            raise SignedCallError("Call id must be a string")
        self.id = id or str(uuid.uuid4())
        self.method = method
        if params is not None and not isinstance(params, dict):
            raise SignedCallError("Params must be an object")
        self.params = dict(params or {})

        if input is None and sender_wallet is None:
            raise SignedCallError("A wallet is required to sign the call")
        if input is not None and not isinstance(input, dict):
            raise SignedCallError("Input must be an object")
        self.input = input if input is not None else self.create_input(sender_wallet)

    def payload(self, timestamp=None):
        """
        The signed part of the call. The timestamp comes from the input unless given.
        """
        return {
            "id": self.id,
            "method": self.method,
            "params": self.params,
            "timestamp": self.input.get("timestamp") if timestamp is None else timestamp,
        }

    def create_input(self, sender_wallet):
        timestamp = time.time_ns()
        return {
            "timestamp": timestamp,
            "address": sender_wallet.address,
            "public_key": sender_wallet.public_key,
            "signature": sender_wallet.sign(self.payload(timestamp)),
        }

    @property
    def issued_at(self):
        """
        Timestamp of the call in seconds.
        """
        return self.input["timestamp"] // 1_000_000_000

    @property
    def caller(self):
        return self.input["address"]

    def apply(self, token, now):
        """
        Run the call against the token on behalf of the signer.
        """
        _, invoke = CALLABLE_METHODS[self.method]
        return invoke(token, self.caller, self.params, now)

    def to_json(self):
        """
        Serialize the call.
        """
        return {
            "id": self.id,
            "method": self.method,
            "params": self.params,
            "input": self.input,
        }

    @staticmethod
    def from_json(call_json):
        try:
            return SignedCall(**call_json)
        except TypeError as exc:
            raise SignedCallError(f"Malformed call: {exc}")

    @staticmethod
    def is_valid_call(call):
        """
        Validate a signed call:
        - params must be exactly the ones the method takes
        - the address must belong to the public key
        - the signature must cover id, method, params and timestamp
        """
        expected, _ = CALLABLE_METHODS[call.method]
        if set(call.params) != set(expected):
            raise SignedCallError(
                f"Invalid params for {call.method}: expected {sorted(expected)}, got {sorted(call.params)}"
            )

        for field in ("address", "public_key", "signature", "timestamp"):
            if field not in call.input:
                raise SignedCallError(f"Missing {field} in call input")

        timestamp = call.input["timestamp"]
        if isinstance(timestamp, bool) or not isinstance(timestamp, int):
            raise SignedCallError("Call timestamp must be an integer")

        try:
            derived = Wallet.derive_address(call.input["public_key"])
        except (ValueError, TypeError):
            raise SignedCallError("Invalid public key")
        if derived != call.input["address"]:
            raise SignedCallError("Address does not match public key")

        if not Wallet.verify(
            call.input["public_key"],
            call.payload(),
            call.input["signature"]
        ):
            raise SignedCallError("Invalid signature")
