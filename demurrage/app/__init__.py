import os
import time

from flask import Flask, jsonify, request

from demurrage.config import (
    API_PORT,
    CALL_MAX_AGE,
    DECIMALS,
    DEFAULT_FEE_RATE,
    FEE_CHANGE_MIN_DELAY,
    FEE_COLLECTION_ADDRESS,
    FEE_YEAR_SECONDS,
    MAX_EVENTS_RETURNED,
    MAX_FEE_RATE,
    MINTER_ADDRESS,
    OWNER_ADDRESS,
    TOKEN_NAME,
    TOKEN_SYMBOL,
    UNITS_PER_COIN,
)
from demurrage.token.errors import TokenError
from demurrage.token.ledger import TokenWithFees
from demurrage.token.ledger_v2 import TokenWithFeesV2
from demurrage.token.proxy import TokenProxy
from demurrage.wallet.signed_call import HOLDER_METHODS, SignedCall, SignedCallError
from demurrage.wallet.wallet import Wallet
from demurrage.util.log import log_info, log_success, log_warn, short

IMPLEMENTATIONS = {
    TokenWithFees.VERSION: TokenWithFees,
    TokenWithFeesV2.VERSION: TokenWithFeesV2,
}

app = Flask(__name__)
PORT = int(os.environ.get('API_PORT', API_PORT))
token_version = int(os.environ.get('TOKEN_VERSION', TokenWithFeesV2.VERSION))

_last_now = 0


def clock():
    """
    Current time in seconds for the ledger, never going backwards.
    """
    global _last_now
    _last_now = max(_last_now, int(time.time()))
    return _last_now


node_private_key = os.environ.get('NODE_PRIVATE_KEY')
wallet = Wallet.from_private_key(node_private_key) if node_private_key else Wallet()

token = TokenProxy(IMPLEMENTATIONS.get(token_version, TokenWithFeesV2))
wallet.token = token
token.initialize(
    owner=os.environ.get('OWNER_ADDRESS') or OWNER_ADDRESS or wallet.address,
    name=os.environ.get('TOKEN_NAME', TOKEN_NAME),
    symbol=os.environ.get('TOKEN_SYMBOL', TOKEN_SYMBOL),
    fee_rate=int(os.environ.get('FEE_RATE', DEFAULT_FEE_RATE)),
    max_fee=int(os.environ.get('MAX_FEE_RATE', MAX_FEE_RATE)),
    fee_change_min_delay=int(os.environ.get('FEE_CHANGE_MIN_DELAY', FEE_CHANGE_MIN_DELAY)),
    fee_collection_address=os.environ.get('FEE_COLLECTION_ADDRESS') or FEE_COLLECTION_ADDRESS,
    minter_address=os.environ.get('MINTER_ADDRESS') or MINTER_ADDRESS or wallet.address,
    now=clock(),
    decimals=DECIMALS,
    fee_year_seconds=int(os.environ.get('FEE_YEAR_SECONDS', FEE_YEAR_SECONDS)),
)
# call id -> issue time (seconds) of calls applied within the last CALL_MAX_AGE
processed_calls = {}

log_info(f"[HTTP] API port={PORT} token_version={token.version()}")
log_success(f"[NODE] Node online | wallet={short(wallet.address)} | symbol={token.symbol()}")


def _error(exc, status=400):
    return jsonify({"error": str(exc), "kind": type(exc).__name__}), status


def _request_body():
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def _forget_expired_calls(now):
    for call_id, issued_at in list(processed_calls.items()):
        if now - issued_at > CALL_MAX_AGE:
            del processed_calls[call_id]


def _execute(call):
    """
    Validate a signed call and apply it to the token once.

    Calls older or newer than CALL_MAX_AGE are refused, so remembering the ids
    of that window is enough to stop replays.
    """
    SignedCall.is_valid_call(call)

    now = clock()
    if abs(now - call.issued_at) > CALL_MAX_AGE:
        raise SignedCallError(f"Call {call.id} expired")
    _forget_expired_calls(now)
    if call.id in processed_calls:
        raise SignedCallError(f"Call {call.id} already processed")

    result = call.apply(token, now)
    processed_calls[call.id] = call.issued_at
    log_success(f"[TX] {call.method} by {short(call.caller)} at {now}")
    return {"id": call.id, "method": call.method, "result": result, "timestamp": now}


@app.route("/token/info")
def route_token_info():
    return jsonify({
        "name": token.name(),
        "symbol": token.symbol(),
        "decimals": token.decimals(),
        "units_per_coin": UNITS_PER_COIN,
        "version": token.version(),
        "owner": token.owner(),
        "minter": token.minter(),
        "fee_collection_address": token.fee_collection_address(),
        "total_supply": token.total_supply(),
        "fee_rate": token.fee_rate(),
        "max_fee": token.max_fee(),
        "last_fee_change": token.last_fee_change(),
        "fee_change_min_delay": token.fee_change_min_delay(),
        "fee_year_seconds": token.fee_year_seconds(),
        "oracle": token.oracle(),
    })


@app.route("/token/balance")
def route_token_balance():
    address = request.args.get("address")
    if not address:
        return jsonify({"error": "address is required"}), 400

    now = clock()
    return jsonify({
        "address": address,
        "balance": token.balance_of(address, now),
        "balance_with_fee": token.balance_of_with_fee(address),
        "fee": token.calculate_fee(address, now),
        "fee_last_paid": token.fee_last_paid(address),
        "fee_exempt": token.fee_exempt(address),
        "timestamp": now,
    })


@app.route("/token/allowance")
def route_token_allowance():
    holder = request.args.get("holder")
    spender = request.args.get("spender")
    if not holder or not spender:
        return jsonify({"error": "holder and spender are required"}), 400
    return jsonify({
        "holder": holder,
        "spender": spender,
        "allowance": token.allowance(holder, spender),
    })


@app.route("/token/state")
def route_token_state():
    return jsonify(token.state.to_json())


@app.route("/token/events")
def route_token_events():
    try:
        limit = max(1, min(MAX_EVENTS_RETURNED, int(request.args.get("limit", 50))))
    except (TypeError, ValueError):
        limit = 50
    return jsonify(token.recent_events(limit))


@app.route("/token/collect_fees", methods=["POST"])
def route_token_collect_fees():
    """
    Permissionless fee sweep over the given addresses.
    """
    body = _request_body()
    addresses = body.get("addresses")
    if not isinstance(addresses, list) or not addresses:
        return jsonify({"error": "addresses must be a non-empty list"}), 400

    now = clock()
    try:
        collected = token.collect_fees(addresses, now)
    except TokenError as exc:
        log_warn(f"[FEE] Collection rejected: {exc}")
        return _error(exc)

    return jsonify({"collected": collected, "timestamp": now})


@app.route("/token/call", methods=["POST"])
def route_token_call():
    """
    Execute a call signed by an external wallet.
    """
    body = _request_body()
    try:
        call = SignedCall.from_json(body)
        outcome = _execute(call)
    except SignedCallError as exc:
        log_warn(f"[TX] Call refused: {exc}")
        return _error(exc, 401)
    except TokenError as exc:
        log_warn(f"[TX] Call rejected: {exc}")
        return _error(exc)

    return jsonify(outcome)


@app.route("/wallet/call", methods=["POST"])
def route_wallet_call():
    """
    Sign a holder operation with the node wallet and execute it. Owner and minter
    operations have to come in through /token/call.
    """
    body = _request_body()
    method = body.get("method")
    if method not in HOLDER_METHODS:
        log_warn(f"[TX] Node wallet refused to sign {method!r}")
        return jsonify({
            "error": f"Node wallet only signs {', '.join(HOLDER_METHODS)}",
            "kind": "SignedCallError",
        }), 403

    try:
        call = SignedCall(wallet, method, body.get("params"))
        outcome = _execute(call)
    except SignedCallError as exc:
        log_warn(f"[TX] Call refused: {exc}")
        return _error(exc)
    except TokenError as exc:
        log_warn(f"[TX] Call rejected: {exc}")
        return _error(exc)

    return jsonify(outcome)


@app.route("/wallet/info")
def route_wallet_info():
    now = clock()
    log_info(f"[WALLET] Info requested addr={short(wallet.address)}")
    return jsonify({
        **wallet.to_json(),
        "balance": wallet.balance(now),
    })


@app.route("/wallet/create", methods=["POST"])
def route_wallet_create():
    """
    Create a standalone key pair. The private key is returned once and not kept.
    """
    new_wallet = Wallet()
    log_info(f"[WALLET] Created standalone wallet {short(new_wallet.address)}")
    return jsonify({
        **new_wallet.to_json(),
        "private_key": new_wallet.private_key_hex(),
    })


if __name__ == '__main__':
    app.run(port=PORT)
