import pytest

from demurrage.config import DECIMALS, FEE_YEAR_SECONDS, ZERO_ADDRESS
from demurrage.token.oracle import StaticOracle, is_unset
from demurrage.token.state import Account, STORAGE_LAYOUT, TokenState

ALICE = "0x" + "a1" * 20
BOB = "0x" + "b2" * 20
ORACLE = "0x" + "0d" * 20


@pytest.fixture
def state():
    state = TokenState()
    state.initialized = True
    state.name = "Demurrage Test Gold"
    state.symbol = "DTG"
    state.total_supply = 150
    state.account(ALICE).balance = 100
    state.account(ALICE).fee_last_paid = 1_000
    state.account(BOB).balance = 50
    state.account(BOB).fee_last_paid = 2_000
    state.allowances[ALICE] = {BOB: 30}
    state.fee_exempt.add(BOB)
    state.oracle = StaticOracle(ORACLE, 1_000)
    return state


def test_default_state():
    state = TokenState()

    assert not state.initialized
    assert state.decimals == DECIMALS
    assert state.fee_year_seconds == FEE_YEAR_SECONDS
    assert state.owner == ZERO_ADDRESS
    assert state.oracle_address() == ZERO_ADDRESS


def test_layout_covers_state_fields():
    assert set(STORAGE_LAYOUT) == set(TokenState().__dict__)


def test_peek_does_not_create(state):
    assert state.peek("0x" + "ff" * 20) == Account()
    assert "0x" + "ff" * 20 not in state.accounts


def test_state_json_round_trip(state):
    state_json = state.to_json()
    restored = TokenState.from_json(state_json, state.oracle)

    assert restored.to_json() == state_json
    assert restored.account(ALICE) == Account(100, 1_000)
    assert restored.fee_exempt == {BOB}
    assert restored.oracle is state.oracle


def test_state_json_records_oracle_address(state):
    assert state.to_json()["oracle"] == ORACLE


def test_from_json_rejects_other_oracle(state):
    with pytest.raises(Exception, match="does not match recorded oracle"):
        TokenState.from_json(state.to_json(), StaticOracle(ALICE, 0))


def test_from_json_keeps_defaults_for_missing_fields():
    restored = TokenState.from_json({"name": "Old", "total_supply": 5})

    assert restored.name == "Old"
    assert restored.total_supply == 5
    assert restored.fee_year_seconds == FEE_YEAR_SECONDS
    assert restored.accounts == {}


def test_snapshot_is_independent(state):
    clone = state.snapshot()
    clone.account(ALICE).balance = 0
    clone.allowances[ALICE][BOB] = 0
    clone.fee_exempt.add(ALICE)
    clone.total_supply = 0

    assert state.account(ALICE).balance == 100
    assert state.allowances[ALICE][BOB] == 30
    assert state.fee_exempt == {BOB}
    assert state.total_supply == 150


def test_snapshot_shares_oracle(state):
    clone = state.snapshot()
    state.oracle.set_locked_value(5_000)

    assert clone.oracle.locked_value() == 5_000


def test_static_oracle_rejects_negative_value():
    with pytest.raises(Exception, match="cannot be negative"):
        StaticOracle(ORACLE, 0).set_locked_value(-1)


def test_unset_oracle():
    assert is_unset(None)
    assert is_unset(StaticOracle(ZERO_ADDRESS, 10))
    assert not is_unset(StaticOracle(ORACLE, 10))


def test_from_json_requires_recorded_oracle(state):
    with pytest.raises(Exception, match="has to be supplied"):
        TokenState.from_json(state.to_json())


def test_from_json_without_oracle():
    state = TokenState()
    state.account(ALICE).balance = 10

    assert TokenState.from_json(state.to_json()).oracle is None
