"""
Data models for the intent workflow engine
"""
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing_extensions import Annotated


class RunMode(str, Enum):
    """Workflow phase selected per call"""
    ANALYSIS = "analysis"
    COMPOSE = "compose"
    SIMULATE = "simulate"
    EXECUTE = "execute"


class IntentType(str, Enum):
    """Operation kinds, one per Intent variant"""
    TRANSFER_NATIVE = "transfer.native"
    TRANSFER_FT = "transfer.ft"
    SWAP = "swap"
    SWAP_CROSS_CHAIN = "swap.cross_chain"
    LIQUIDITY_ADD = "liquidity.add"
    LIQUIDITY_REMOVE = "liquidity.remove"
    EXCHANGE_WITHDRAW = "exchange.withdraw"
    LEND_SUPPLY = "lend.supply"
    STAKE = "stake"
    STAKE_WITHDRAW = "stake.withdraw"


LIQUIDITY_INTENT_TYPES = (IntentType.LIQUIDITY_ADD, IntentType.LIQUIDITY_REMOVE)


class WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FrozenWireModel(WireModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


# ---------------------------------------------------------------------------
# Intent variants
# ---------------------------------------------------------------------------

class NativeTransferIntent(FrozenWireModel):
    type: Literal["transfer.native"] = "transfer.native"
    to_account_id: str
    amount_raw: str
    from_account_id: Optional[str] = None


class FtTransferIntent(FrozenWireModel):
    type: Literal["transfer.ft"] = "transfer.ft"
    to_account_id: str
    ft_contract_id: str
    amount_raw: str
    from_account_id: Optional[str] = None


class SwapIntent(FrozenWireModel):
    type: Literal["swap"] = "swap"
    token_in_id: str
    token_out_id: str
    amount_raw: str
    pool_id: Optional[int] = None
    slippage_bps: int = 50
    min_amount_out_raw: Optional[str] = None
    from_account_id: Optional[str] = None
    auto_register_output: bool = True


class CrossChainSwapIntent(FrozenWireModel):
    type: Literal["swap.cross_chain"] = "swap.cross_chain"
    origin_asset: str
    destination_asset: str
    amount_raw: str
    recipient: str
    refund_to: Optional[str] = None
    slippage_bps: int = 100
    deposit_address: Optional[str] = None
    wait_for_final_status: bool = False
    from_account_id: Optional[str] = None


class AddLiquidityIntent(FrozenWireModel):
    type: Literal["liquidity.add"] = "liquidity.add"
    token_a_id: str
    token_b_id: str
    amount_a_raw: str
    amount_b_raw: str
    pool_id: Optional[int] = None
    from_account_id: Optional[str] = None


class RemoveLiquidityIntent(FrozenWireModel):
    type: Literal["liquidity.remove"] = "liquidity.remove"
    token_a_id: Optional[str] = None
    token_b_id: Optional[str] = None
    pool_id: Optional[int] = None
    shares_raw: Optional[str] = None
    share_bps: Optional[int] = None
    min_amounts_raw: Optional[Tuple[str, ...]] = None
    from_account_id: Optional[str] = None


class ExchangeWithdrawIntent(FrozenWireModel):
    type: Literal["exchange.withdraw"] = "exchange.withdraw"
    token_id: str
    amount_raw: Optional[str] = None
    from_account_id: Optional[str] = None


class LendSupplyIntent(FrozenWireModel):
    type: Literal["lend.supply"] = "lend.supply"
    token_id: str
    amount_raw: str
    as_collateral: bool = False
    from_account_id: Optional[str] = None


class StakeIntent(FrozenWireModel):
    type: Literal["stake"] = "stake"
    validator_id: str
    amount_raw: str
    from_account_id: Optional[str] = None


class StakeWithdrawIntent(FrozenWireModel):
    type: Literal["stake.withdraw"] = "stake.withdraw"
    validator_id: str
    amount_raw: Optional[str] = None
    from_account_id: Optional[str] = None


Intent = Annotated[
    Union[
        NativeTransferIntent,
        FtTransferIntent,
        SwapIntent,
        CrossChainSwapIntent,
        AddLiquidityIntent,
        RemoveLiquidityIntent,
        ExchangeWithdrawIntent,
        LendSupplyIntent,
        StakeIntent,
        StakeWithdrawIntent,
    ],
    Field(discriminator="type"),
]


def intent_type_of(intent: Intent) -> IntentType:
    return IntentType(intent.type)


# ---------------------------------------------------------------------------
# Hints, pools, sessions
# ---------------------------------------------------------------------------

class IntentHints(BaseModel):
    """Sparse projection of request fields recovered from free text"""
    intent_type: Optional[IntentType] = None
    run_mode: Optional[RunMode] = None
    to_account_id: Optional[str] = None
    from_account_id: Optional[str] = None
    amount_near: Optional[str] = None
    amount: Optional[str] = None
    amount_raw: Optional[str] = None
    amount_token: Optional[str] = None
    ft_contract_id: Optional[str] = None
    token_in_id: Optional[str] = None
    token_out_id: Optional[str] = None
    pool_id: Optional[int] = None
    pool_candidate_index: Optional[int] = None
    slippage_bps: Optional[int] = None
    token_a_id: Optional[str] = None
    token_b_id: Optional[str] = None
    amount_a: Optional[str] = None
    amount_b: Optional[str] = None
    shares_raw: Optional[str] = None
    share_bps: Optional[int] = None
    share_percent: Optional[str] = None
    token_id: Optional[str] = None
    validator_id: Optional[str] = None
    as_collateral: Optional[bool] = None
    recipient: Optional[str] = None
    refund_to: Optional[str] = None
    deposit_address: Optional[str] = None

    def is_empty(self) -> bool:
        return not self.model_dump(exclude_none=True)


class PoolView(WireModel):
    """Read-only pool snapshot returned by the chain gateway"""
    pool_id: int
    pool_kind: Optional[str] = None
    token_ids: List[str]
    amounts: List[str] = Field(default_factory=list)


class PoolCandidate(FrozenWireModel):
    """One ranked option from pool auto-discovery"""
    pool_id: int
    pool_kind: Optional[str] = None
    token_a_id: str
    token_b_id: str
    liquidity_score: str


class PoolSelection(BaseModel):
    pool_id: int
    source: Literal["explicitPool", "bestLiquidityPool"]
    candidates: Tuple[PoolCandidate, ...] = ()


class SwapQuote(WireModel):
    """Quote produced by the swap protocol for one exact-input swap"""
    pool_id: Optional[int] = None
    token_in_id: str
    token_out_id: str
    amount_in_raw: str
    amount_out_raw: str
    min_amount_out_raw: str
    source: Optional[str] = None


class RunSession(BaseModel):
    """State carried between phase calls of one run"""
    model_config = ConfigDict(frozen=True)

    run_id: str
    network: str
    intent: Intent
    confirm_token: Optional[str] = None
    pool_candidates: Tuple[PoolCandidate, ...] = ()


# ---------------------------------------------------------------------------
# Request / response envelope
# ---------------------------------------------------------------------------

class WorkflowRequest(WireModel):
    """One workflow call, as received from the caller"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    run_id: Optional[str] = None
    run_mode: Optional[RunMode] = None
    intent_type: Optional[IntentType] = None
    intent_text: Optional[str] = None
    network: Optional[str] = None
    confirm_mainnet: Optional[bool] = None
    confirm_token: Optional[str] = None

    # follow-up selection
    pool_candidate_index: Optional[int] = None
    pool_id: Optional[Union[int, str]] = None

    # accounts
    from_account_id: Optional[str] = None
    to_account_id: Optional[str] = None
    recipient: Optional[str] = None
    refund_to: Optional[str] = None

    # amounts
    amount_raw: Optional[str] = None
    amount: Optional[Union[str, float]] = None
    amount_near: Optional[Union[str, float]] = None
    amount_a_raw: Optional[str] = None
    amount_a: Optional[Union[str, float]] = None
    amount_b_raw: Optional[str] = None
    amount_b: Optional[Union[str, float]] = None

    # tokens and resources
    ft_contract_id: Optional[str] = None
    token_in_id: Optional[str] = None
    token_out_id: Optional[str] = None
    token_a_id: Optional[str] = None
    token_b_id: Optional[str] = None
    token_id: Optional[str] = None
    origin_asset: Optional[str] = None
    destination_asset: Optional[str] = None
    validator_id: Optional[str] = None

    # safety bounds and behavior flags
    slippage_bps: Optional[float] = None
    slippage_percent: Optional[Union[str, float]] = None
    min_amount_out_raw: Optional[str] = None
    shares_raw: Optional[str] = None
    share_bps: Optional[float] = None
    share_percent: Optional[Union[str, float]] = None
    min_amounts_raw: Optional[List[str]] = None
    auto_register_output: Optional[bool] = None
    as_collateral: Optional[bool] = None
    wait_for_final_status: Optional[bool] = None


SELECTION_FIELDS = frozenset({"pool_candidate_index", "pool_id"})
CONTROL_FIELDS = frozenset({"run_id", "run_mode", "network", "confirm_mainnet", "confirm_token"})


def has_intent_inputs(request: WorkflowRequest) -> bool:
    """True when the request carries any field that describes a new intent"""
    ignored = SELECTION_FIELDS | CONTROL_FIELDS
    for name, value in request.model_dump(exclude_none=True).items():
        if name in ignored:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return True
    return False


class WorkflowDetails(WireModel):
    run_id: str
    run_mode: RunMode
    network: str
    intent_type: IntentType
    intent: Intent
    approval_required: bool
    confirm_token: Optional[str] = None
    confirm_token_matched: Optional[bool] = None
    artifacts: Dict[str, Any] = Field(default_factory=dict)


class WorkflowResult(BaseModel):
    """Uniform envelope returned by every phase"""
    content: List[Dict[str, str]]
    details: WorkflowDetails

    def to_dict(self) -> Dict[str, Any]:
        payload = self.model_dump(mode="json", by_alias=True)
        if payload["details"].get("confirmTokenMatched") is None:
            payload["details"].pop("confirmTokenMatched", None)
        return payload
