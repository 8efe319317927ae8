"""
Tests for intent normalization and token scaling
"""
import asyncio

import pytest

from intent_workflow.errors import ResolutionError, ValidationError
from intent_workflow.hints import extract_intent_hints
from intent_workflow.models import IntentHints, IntentType, WorkflowRequest
from intent_workflow.normalizer import IntentNormalizer, normalize_account_id, parse_percent_as_bps
from intent_workflow.tokens import TokenRegistry, to_raw_amount


def normalize(normalizer, network="testnet", **fields):
    request = WorkflowRequest(**fields)
    hints = extract_intent_hints(request.intent_text)
    return asyncio.run(normalizer.normalize(request, hints, network))


@pytest.fixture
def normalizer(gateway):
    return IntentNormalizer(TokenRegistry(decimals_loader=gateway.get_token_decimals))


def test_swap_from_text_on_testnet(normalizer):
    intent = normalize(normalizer, intent_text="swap 0.1 SOL to USDC slippageBps=50")

    assert intent.type == IntentType.SWAP.value
    assert intent.token_in_id == "sol.fakes.testnet"
    assert intent.token_out_id == "usdc.fakes.testnet"
    assert intent.amount_raw == "100000000"
    assert intent.slippage_bps == 50


def test_normalization_is_deterministic(normalizer):
    first = normalize(normalizer, intent_text="swap 0.1 SOL to USDC slippageBps=50")
    second = normalize(normalizer, intent_text="swap 0.1 SOL to USDC slippageBps=50")
    assert first == second


def test_swap_default_slippage(normalizer):
    intent = normalize(
        normalizer, intent_type="swap", token_in_id="NEAR", token_out_id="USDC", amount_raw="1000"
    )
    assert intent.slippage_bps == 50


def test_explicit_raw_amount_overrides_text_amount(normalizer):
    intent = normalize(normalizer, intent_text="swap 0.1 SOL to USDC", amount_raw="5")
    assert intent.amount_raw == "5"


def test_raw_and_ui_amount_together_rejected(normalizer):
    with pytest.raises(ValidationError, match="amountRaw or amount"):
        normalize(
            normalizer, intent_type="swap", token_in_id="NEAR", token_out_id="USDC",
            amount_raw="1000", amount="1",
        )


def test_too_many_fractional_digits_rejected(normalizer):
    with pytest.raises(ValidationError, match="fractional digits"):
        normalize(
            normalizer, intent_type="transfer.ft", ft_contract_id="USDC",
            to_account_id="bob.testnet", amount="0.1234567",
        )


def test_native_transfer_account_is_trimmed(normalizer):
    intent = normalize(
        normalizer, intent_type="transfer.native", to_account_id="  @alice.testnet ", amount_near="1.5"
    )
    assert intent.to_account_id == "alice.testnet"
    assert intent.amount_raw == "15" + "0" * 23


def test_missing_account_names_the_field(normalizer):
    with pytest.raises(ValidationError, match="toAccountId is required"):
        normalize(normalizer, intent_type="transfer.native", to_account_id=" ", amount_raw="1")


def test_slippage_forms(normalizer):
    base = dict(intent_type="swap", token_in_id="NEAR", token_out_id="USDC", amount_raw="1000")

    assert normalize(normalizer, slippage_percent="0.5", **base).slippage_bps == 50
    assert normalize(normalizer, slippage_bps=75.9, **base).slippage_bps == 75
    with pytest.raises(ValidationError, match="not both"):
        normalize(normalizer, slippage_bps=50, slippage_percent="0.5", **base)
    with pytest.raises(ValidationError, match="between 0 and 10000"):
        normalize(normalizer, slippage_bps=10001, **base)


def test_same_token_on_both_sides_rejected(normalizer):
    with pytest.raises(ValidationError, match="must differ"):
        normalize(normalizer, intent_type="swap", token_in_id="USDC", token_out_id="usdc.fakes.testnet", amount_raw="1")


def test_unknown_symbol_is_a_resolution_error(normalizer):
    with pytest.raises(ResolutionError, match="Unknown token symbol 'DOGE'"):
        normalize(normalizer, intent_type="swap", token_in_id="DOGE", token_out_id="USDC", amount_raw="1")


def test_remove_liquidity_share_forms(normalizer):
    base = dict(intent_type="liquidity.remove", pool_id="12")

    intent = normalize(normalizer, share_percent="12.345", **base)
    assert intent.pool_id == 12
    assert intent.share_bps == 1234
    assert intent.shares_raw is None

    with pytest.raises(ValidationError, match="exactly one"):
        normalize(normalizer, **base)
    with pytest.raises(ValidationError, match="exactly one"):
        normalize(normalizer, shares_raw="10", share_bps=100, **base)
    with pytest.raises(ValidationError, match="shareBps must be between 1"):
        normalize(normalizer, share_bps=0, **base)
    with pytest.raises(ValidationError, match="sharePercent must be at least 0.01") as excinfo:
        normalize(normalizer, share_percent="0.001", **base)
    assert excinfo.value.field == "share_percent"
    assert normalize(normalizer, share_percent="0.01", **base).share_bps == 1


def test_remove_liquidity_requires_pool_or_pair(normalizer):
    with pytest.raises(ValidationError, match="poolId or both"):
        normalize(normalizer, intent_type="liquidity.remove", token_a_id="NEAR", shares_raw="10")


def test_cross_chain_assets_get_prefix(normalizer):
    intent = normalize(
        normalizer,
        intent_text="swap 1 NEAR to SOL recipient 7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU refund to alice.testnet",
    )

    assert intent.type == IntentType.SWAP_CROSS_CHAIN.value
    assert intent.origin_asset == "nep141:wrap.testnet"
    assert intent.destination_asset == "nep141:sol.fakes.testnet"
    assert intent.amount_raw == "1" + "0" * 24
    assert intent.slippage_bps == 100
    assert intent.refund_to == "alice.testnet"


def test_unknown_token_decimals_loaded_once(gateway):
    gateway.decimals["foo.testnet"] = 8
    normalizer = IntentNormalizer(TokenRegistry(decimals_loader=gateway.get_token_decimals))
    request = WorkflowRequest(
        intent_type="transfer.ft", ft_contract_id="foo.testnet", to_account_id="bob.testnet", amount="1.5"
    )

    async def run_twice():
        first = await normalizer.normalize(request, IntentHints(), "testnet")
        second = await normalizer.normalize(request, IntentHints(), "testnet")
        return first, second

    first, second = asyncio.run(run_twice())
    assert first.amount_raw == second.amount_raw == "150000000"
    assert gateway.decimals_calls == ["foo.testnet"]


def test_missing_intent_type(normalizer):
    with pytest.raises(ValidationError, match="intentType is required"):
        normalize(normalizer, intent_text="hello there")


def test_scaling_helpers():
    assert to_raw_amount("0.1", 9) == "100000000"
    assert to_raw_amount("12", 0) == "12"
    with pytest.raises(ValidationError):
        to_raw_amount("0", 6)
    with pytest.raises(ValidationError):
        to_raw_amount("-1", 6)
    assert parse_percent_as_bps("0.5", "slippage_percent") == 50
    assert normalize_account_id("@bob.near", "to_account_id") == "bob.near"
