"""
Tests for the safety guard and mainnet confirm tokens
"""
import pytest

from intent_workflow.confirm import assert_execution_confirmed, create_confirm_token, requires_approval
from intent_workflow.errors import AuthorizationError, SafetyError
from intent_workflow.models import NativeTransferIntent
from intent_workflow.safety import SafetyGuard, floor_for_slippage

INTENT = NativeTransferIntent(to_account_id="alice.near", amount_raw="1000")


def test_slippage_ceiling_is_capped_at_hard_maximum():
    assert SafetyGuard(1000).slippage_ceiling == 1000
    assert SafetyGuard(20000).slippage_ceiling == 10000


def test_slippage_above_ceiling_rejected():
    guard = SafetyGuard(300)

    assert guard.enforce_slippage(300) == 300
    result = guard.check_slippage(301)
    assert not result.passed
    assert "exceeds the maximum allowed 300" in result.reason
    with pytest.raises(SafetyError):
        guard.enforce_slippage(301)


def test_floor_for_slippage():
    assert floor_for_slippage("1000", 50) == "995"
    assert floor_for_slippage("999", 100) == "989"
    assert floor_for_slippage("0", 50) == "0"


def test_min_amount_out_defaults_to_quoted_floor():
    assert SafetyGuard().resolve_min_amount_out(None, "995", "1000") == "995"


def test_min_amount_out_above_floor_kept():
    assert SafetyGuard().resolve_min_amount_out("999", "995", "1000") == "999"


def test_min_amount_out_below_floor_rejected_not_clamped():
    with pytest.raises(SafetyError, match="below the quoted safe minimum 995"):
        SafetyGuard().resolve_min_amount_out("900", "995", "1000")


def test_malformed_quote_rejected():
    with pytest.raises(SafetyError, match="Malformed quote"):
        SafetyGuard().resolve_min_amount_out(None, "1001", "1000")


@pytest.mark.parametrize("floor,amount_out", [
    ("abc", "1000"),
    ("995", "1000.5"),
    ("995", ""),
    ("0", "0"),
])
def test_unparseable_or_empty_quote_is_a_safety_failure(floor, amount_out):
    result = SafetyGuard().check_min_amount_out(None, floor, amount_out)
    assert result.passed is False
    assert result.reason.startswith("Malformed quote")

    with pytest.raises(SafetyError, match="Malformed quote"):
        SafetyGuard().resolve_min_amount_out("995", floor, amount_out)


def test_quoted_amount_out_must_be_positive_integer():
    guard = SafetyGuard()
    assert guard.require_quoted_amount_out(" 1000 ") == "1000"
    for value in (None, "", "0", "-5", "12.5"):
        with pytest.raises(SafetyError, match="positive integer output amount"):
            guard.require_quoted_amount_out(value)


def test_confirm_token_shape_and_stability():
    token = create_confirm_token("wf-near-0001", "mainnet", INTENT)

    assert token.startswith("NEAR-")
    assert len(token) == 15
    assert token == token.upper()
    assert token == create_confirm_token("wf-near-0001", "mainnet", INTENT)


def test_confirm_token_binds_run_network_and_intent():
    token = create_confirm_token("wf-near-0001", "mainnet", INTENT)
    other_intent = INTENT.model_copy(update={"amount_raw": "1001"})

    assert token != create_confirm_token("wf-near-0002", "mainnet", INTENT)
    assert token != create_confirm_token("wf-near-0001", "testnet", INTENT)
    assert token != create_confirm_token("wf-near-0001", "mainnet", other_intent)


def test_gate_does_not_apply_off_mainnet():
    assert not requires_approval("testnet")
    assert assert_execution_confirmed("wf-near-0001", "testnet", INTENT, None, None) is None


def test_gate_requires_flag_on_mainnet():
    expected = create_confirm_token("wf-near-0001", "mainnet", INTENT)

    with pytest.raises(AuthorizationError, match=f"confirmMainnet=true and confirmToken={expected}"):
        assert_execution_confirmed("wf-near-0001", "mainnet", INTENT, False, expected)


def test_gate_names_expected_and_provided_tokens():
    expected = create_confirm_token("wf-near-0001", "mainnet", INTENT)

    with pytest.raises(AuthorizationError) as excinfo:
        assert_execution_confirmed("wf-near-0001", "mainnet", INTENT, True, "NEAR-WRONG00000")
    assert f"expected={expected}" in str(excinfo.value)
    assert "provided=NEAR-WRONG00000" in str(excinfo.value)

    with pytest.raises(AuthorizationError, match="provided=<missing>"):
        assert_execution_confirmed("wf-near-0001", "mainnet", INTENT, True, None)


def test_gate_accepts_matching_token():
    expected = create_confirm_token("wf-near-0001", "mainnet", INTENT)
    assert assert_execution_confirmed("wf-near-0001", "mainnet", INTENT, True, f" {expected} ") is True
