import pytest

import demurrage.app as node
from demurrage.config import CALL_MAX_AGE
from demurrage.wallet.signed_call import SignedCall
from demurrage.wallet.wallet import Wallet


@pytest.fixture
def client():
    node.app.config["TESTING"] = True
    return node.app.test_client()


def node_call(method, params):
    return SignedCall(node.wallet, method, params).to_json()


def balance_of(client, address):
    return client.get("/token/balance", query_string={"address": address}).get_json()


def test_token_info(client):
    info = client.get("/token/info").get_json()

    assert info["version"] == node.token.version()
    assert info["minter"] == node.wallet.address
    assert info["fee_rate"] <= info["max_fee"]
    assert info["units_per_coin"] == 10 ** info["decimals"]


def test_balance_requires_address(client):
    assert client.get("/token/balance").status_code == 400


def test_allowance_requires_both_parties(client):
    assert client.get("/token/allowance", query_string={"holder": "0x1"}).status_code == 400


def test_node_wallet_mints_and_transfers(client):
    recipient = Wallet().address
    supply_before = client.get("/token/info").get_json()["total_supply"]

    res = client.post("/token/call", json=node_call("mint", {"amount": 5_000}))
    assert res.status_code == 200
    assert res.get_json()["method"] == "mint"

    res = client.post("/wallet/call", json={
        "method": "transfer",
        "params": {"recipient": recipient, "amount": 2_000},
    })
    assert res.status_code == 200

    balance = balance_of(client, recipient)
    assert balance["balance_with_fee"] == 2_000
    assert balance["balance"] <= 2_000
    assert balance["fee"] == balance["balance_with_fee"] - balance["balance"]
    assert client.get("/token/info").get_json()["total_supply"] == supply_before + 5_000


def test_wallet_call_rejected_by_ledger(client):
    res = client.post("/wallet/call", json={
        "method": "transfer",
        "params": {"recipient": Wallet().address, "amount": 0},
    })

    assert res.status_code == 400
    assert res.get_json()["kind"] == "InvalidAmount"


def test_wallet_call_unknown_method(client):
    res = client.post("/wallet/call", json={"method": "steal", "params": {}})

    assert res.status_code == 403
    assert res.get_json()["kind"] == "SignedCallError"


@pytest.mark.parametrize("method, params", [
    ("mint", {"amount": 1}),
    ("set_fee_rate", {"rate": 0}),
    ("set_minter_role", {"address": "0x" + "a1" * 20}),
    ("transfer_ownership", {"address": "0x" + "a1" * 20}),
])
def test_wallet_call_refuses_admin_methods(client, method, params):
    owner_before = node.token.owner()
    rate_before = node.token.fee_rate()
    supply_before = node.token.total_supply()

    res = client.post("/wallet/call", json={"method": method, "params": params})

    assert res.status_code == 403
    assert node.token.owner() == owner_before
    assert node.token.fee_rate() == rate_before
    assert node.token.total_supply() == supply_before


def test_wallet_call_ignores_non_object_body(client):
    res = client.post("/wallet/call", json=["transfer"])

    assert res.status_code == 403


def test_external_signed_call(client):
    holder = Wallet()
    spender = Wallet().address
    call = SignedCall(holder, "approve", {"spender": spender, "amount": 42})

    res = client.post("/token/call", json=call.to_json())

    assert res.status_code == 200
    allowance = client.get("/token/allowance", query_string={
        "holder": holder.address,
        "spender": spender,
    }).get_json()
    assert allowance["allowance"] == 42


def test_replayed_call_refused(client):
    call = SignedCall(Wallet(), "approve", {"spender": Wallet().address, "amount": 1})

    assert client.post("/token/call", json=call.to_json()).status_code == 200

    res = client.post("/token/call", json=call.to_json())
    assert res.status_code == 401
    assert "already processed" in res.get_json()["error"]


def test_tampered_call_refused(client):
    call = SignedCall(Wallet(), "approve", {"spender": Wallet().address, "amount": 1})
    call_json = call.to_json()
    call_json["params"]["amount"] = 10 ** 12

    res = client.post("/token/call", json=call_json)

    assert res.status_code == 401
    assert res.get_json()["error"] == "Invalid signature"


def test_external_caller_cannot_mint(client):
    call = SignedCall(Wallet(), "mint", {"amount": 1})

    res = client.post("/token/call", json=call.to_json())

    assert res.status_code == 400
    assert res.get_json()["kind"] == "NotMinter"


def test_collect_fees_requires_addresses(client):
    assert client.post("/token/collect_fees", json={}).status_code == 400
    assert client.post("/token/collect_fees", json={"addresses": []}).status_code == 400


def test_collect_fees_rejects_malformed_addresses(client):
    for addresses in ([1], [{"a": 1}], ["nobody"]):
        res = client.post("/token/collect_fees", json={"addresses": addresses})
        assert res.status_code == 400
        assert res.get_json()["kind"] == "InvalidRecipient"

    assert client.get("/token/state").status_code == 200


def test_collect_fees_does_not_grow_state(client):
    accounts_before = len(node.token.state.accounts)

    res = client.post("/token/collect_fees", json={"addresses": [Wallet().address for _ in range(20)]})

    assert res.status_code == 200
    assert len(node.token.state.accounts) == accounts_before


def test_collect_fees(client):
    res = client.post("/token/collect_fees", json={"addresses": [Wallet().address]})

    assert res.status_code == 200
    assert res.get_json()["collected"] == 0


def test_events_limit(client):
    client.post("/token/call", json=node_call("mint", {"amount": 1}))

    events = client.get("/token/events", query_string={"limit": 1}).get_json()

    assert len(events) == 1
    assert events[0]["event"] == "Transfer"


def test_state_dump(client):
    state = client.get("/token/state").get_json()

    assert state["total_supply"] == node.token.total_supply()
    assert node.wallet.address in state["fee_exempt"]


def test_wallet_info(client):
    info = client.get("/wallet/info").get_json()

    assert info["address"] == node.wallet.address
    assert info["balance"] == node.token.balance_of(node.wallet.address, node.clock())


def test_wallet_create(client):
    created = client.post("/wallet/create").get_json()

    restored = Wallet.from_private_key(created["private_key"])
    assert restored.address == created["address"]
    assert created["address"] != node.wallet.address


def test_signed_transfer_to_malformed_recipient(client):
    res = client.post("/token/call", json=node_call("transfer", {"recipient": 12345, "amount": 1}))

    assert res.status_code == 400
    assert res.get_json()["kind"] == "InvalidRecipient"
    assert client.get("/token/state").status_code == 200


def test_expired_call_refused(client):
    holder = Wallet()
    call = SignedCall(holder, "approve", {"spender": Wallet().address, "amount": 1})
    call.input["timestamp"] -= (CALL_MAX_AGE + 60) * 1_000_000_000
    call.input["signature"] = holder.sign(call.payload())

    res = client.post("/token/call", json=call.to_json())

    assert res.status_code == 401
    assert "expired" in res.get_json()["error"]


def test_processed_calls_are_forgotten_after_expiry(client, monkeypatch):
    now = node.clock()
    monkeypatch.setitem(node.processed_calls, "stale-call", now - CALL_MAX_AGE - 1)
    call = SignedCall(Wallet(), "approve", {"spender": Wallet().address, "amount": 1})

    assert client.post("/token/call", json=call.to_json()).status_code == 200

    assert "stale-call" not in node.processed_calls
    assert call.id in node.processed_calls
