"""
Intent normalizer - merges structured fields and text hints into one
validated Intent variant, all-or-nothing
"""
import logging
import re
from decimal import ROUND_FLOOR, Decimal, InvalidOperation
from typing import Any, Dict, Iterable, Optional, Tuple

from pydantic.alias_generators import to_camel

from .errors import ValidationError
from .models import (
    AddLiquidityIntent, CrossChainSwapIntent, ExchangeWithdrawIntent, FtTransferIntent,
    Intent, IntentHints, IntentType, LendSupplyIntent, NativeTransferIntent,
    RemoveLiquidityIntent, StakeIntent, StakeWithdrawIntent, SwapIntent, WorkflowRequest,
)
from .tokens import NATIVE_DECIMALS, TokenRegistry, to_raw_amount

logger = logging.getLogger(__name__)

RAW_AMOUNT_PATTERN = re.compile(r"^\d+$")
MAX_BPS = 10000

DEFAULT_SLIPPAGE_BPS = {
    IntentType.SWAP: 50,
    IntentType.SWAP_CROSS_CHAIN: 100,
}


def _label(name: str) -> str:
    return to_camel(name)


def normalize_account_id(value: Any, field: str) -> str:
    """Trim and strip a leading '@'; empty is an error naming the field"""
    text = str(value or "").strip()
    if text.startswith("@"):
        text = text[1:].strip()
    if not text:
        raise ValidationError(f"{_label(field)} is required", field)
    return text


def parse_raw_amount(value: Any, field: str, allow_zero: bool = False) -> str:
    text = str(value).strip()
    if not RAW_AMOUNT_PATTERN.match(text):
        raise ValidationError(f"{_label(field)} must be an unsigned integer string, got '{value}'", field)
    if not allow_zero and int(text) == 0:
        raise ValidationError(f"{_label(field)} must be greater than 0", field)
    return str(int(text))


def _to_decimal(value: Any, field: str) -> Decimal:
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError(f"{_label(field)} must be a number, got '{value}'", field)
    if not number.is_finite():
        raise ValidationError(f"{_label(field)} must be a finite number", field)
    return number


def parse_bps(value: Any, field: str, minimum: int = 0, maximum: int = MAX_BPS) -> int:
    """Range-check and floor a basis-point value"""
    bps = int(_to_decimal(value, field).to_integral_value(rounding=ROUND_FLOOR))
    if bps < minimum or bps > maximum:
        raise ValidationError(f"{_label(field)} must be between {minimum} and {maximum}, got {value}", field)
    return bps


def parse_percent_as_bps(value: Any, field: str, allow_zero: bool = True) -> int:
    """Convert a percent (e.g. 0.5) to floored basis points"""
    percent = _to_decimal(value, field)
    if percent < 0 or percent > 100 or (not allow_zero and percent == 0):
        lower = "0" if allow_zero else "greater than 0"
        raise ValidationError(f"{_label(field)} must be between {lower} and 100, got {value}", field)
    bps = int((percent * 100).to_integral_value(rounding=ROUND_FLOOR))
    if not allow_zero and bps < 1:
        raise ValidationError(f"{_label(field)} must be at least 0.01, got {value}", field)
    return bps


def parse_pool_id(value: Any, field: str = "pool_id") -> int:
    text = str(value).strip()
    if not RAW_AMOUNT_PATTERN.match(text):
        raise ValidationError(f"{_label(field)} must be a non-negative integer, got '{value}'", field)
    return int(text)


class IntentNormalizer:
    """
    Builds a canonical Intent from a WorkflowRequest plus hints.
    Explicit request fields override hints group by group, so a raw amount
    supplied by the caller is never reported as conflicting with a UI amount
    that only came from the free text.
    """

    def __init__(self, tokens: TokenRegistry):
        self.tokens = tokens
        self._builders = {
            IntentType.TRANSFER_NATIVE: self._native_transfer,
            IntentType.TRANSFER_FT: self._ft_transfer,
            IntentType.SWAP: self._swap,
            IntentType.SWAP_CROSS_CHAIN: self._cross_chain_swap,
            IntentType.LIQUIDITY_ADD: self._add_liquidity,
            IntentType.LIQUIDITY_REMOVE: self._remove_liquidity,
            IntentType.EXCHANGE_WITHDRAW: self._exchange_withdraw,
            IntentType.LEND_SUPPLY: self._lend_supply,
            IntentType.STAKE: self._stake,
            IntentType.STAKE_WITHDRAW: self._stake_withdraw,
        }

    async def normalize(self, request: WorkflowRequest, hints: IntentHints, network: str) -> Intent:
        """
        Produce one fully validated Intent

        Args:
            request: Structured fields from the caller
            hints: Hints extracted from the request's free text
            network: Network used for symbol and decimals resolution

        Returns:
            An Intent variant; raises ValidationError/ResolutionError otherwise
        """
        intent_type = request.intent_type or hints.intent_type
        if intent_type is None:
            raise ValidationError(
                "intentType is required (it could not be inferred from intentText)", "intent_type"
            )
        intent_type = IntentType(intent_type)
        fields = _Fields(request, hints)
        intent = await self._builders[intent_type](fields, network)
        logger.debug(f"Normalized {intent_type.value} intent on {network}")
        return intent

    # ------------------------------------------------------------------
    # shared helpers
    # ------------------------------------------------------------------

    def _token(self, value: Any, field: str, network: str) -> str:
        if value is None or not str(value).strip():
            raise ValidationError(f"{_label(field)} is required", field)
        return self.tokens.resolve_token_id(str(value), network)

    def _optional_account(self, fields: "_Fields", name: str) -> Optional[str]:
        value = fields.get(name)
        if value is None:
            return None
        return normalize_account_id(value, name)

    async def _amount(
        self,
        fields: "_Fields",
        raw_key: str,
        ui_keys: Tuple[str, ...],
        network: str,
        token_id: Optional[str] = None,
        decimals: Optional[int] = None,
        required: bool = True,
    ) -> Optional[str]:
        group = fields.group((raw_key,) + ui_keys)
        raw = group.get(raw_key)
        ui_key = next((key for key in ui_keys if group.get(key) is not None), None)
        if raw is not None and ui_key is not None:
            raise ValidationError(
                f"Provide either {_label(raw_key)} or {_label(ui_key)}, not both", raw_key
            )
        if raw is not None:
            return parse_raw_amount(raw, raw_key)
        if ui_key is not None:
            if decimals is None:
                decimals = await self.tokens.get_decimals(token_id, network)
            return to_raw_amount(str(group[ui_key]), decimals, _label(ui_key))
        if required:
            raise ValidationError(f"{_label(raw_key)} is required", raw_key)
        return None

    def _slippage(self, fields: "_Fields", intent_type: IntentType) -> int:
        group = fields.group(("slippage_bps", "slippage_percent"))
        if "slippage_bps" in group and "slippage_percent" in group:
            raise ValidationError("Provide either slippageBps or slippagePercent, not both", "slippage_bps")
        if "slippage_bps" in group:
            return parse_bps(group["slippage_bps"], "slippage_bps")
        if "slippage_percent" in group:
            return parse_percent_as_bps(group["slippage_percent"], "slippage_percent")
        return DEFAULT_SLIPPAGE_BPS[intent_type]

    def _pool_id(self, fields: "_Fields") -> Optional[int]:
        value = fields.get("pool_id")
        return None if value is None else parse_pool_id(value)

    @staticmethod
    def _distinct(first: str, second: str, first_field: str, second_field: str):
        if first == second:
            raise ValidationError(
                f"{_label(first_field)} and {_label(second_field)} must differ, both are '{first}'",
                second_field,
            )

    # ------------------------------------------------------------------
    # per-type builders
    # ------------------------------------------------------------------

    async def _native_transfer(self, fields: "_Fields", network: str) -> Intent:
        return NativeTransferIntent(
            to_account_id=normalize_account_id(fields.get("to_account_id"), "to_account_id"),
            amount_raw=await self._amount(
                fields, "amount_raw", ("amount_near", "amount"), network, decimals=NATIVE_DECIMALS
            ),
            from_account_id=self._optional_account(fields, "from_account_id"),
        )

    async def _ft_transfer(self, fields: "_Fields", network: str) -> Intent:
        ft_contract_id = self._token(fields.get("ft_contract_id"), "ft_contract_id", network)
        return FtTransferIntent(
            to_account_id=normalize_account_id(fields.get("to_account_id"), "to_account_id"),
            ft_contract_id=ft_contract_id,
            amount_raw=await self._amount(fields, "amount_raw", ("amount",), network, token_id=ft_contract_id),
            from_account_id=self._optional_account(fields, "from_account_id"),
        )

    async def _swap(self, fields: "_Fields", network: str) -> Intent:
        token_in_id = self._token(fields.get("token_in_id"), "token_in_id", network)
        token_out_id = self._token(fields.get("token_out_id"), "token_out_id", network)
        self._distinct(token_in_id, token_out_id, "token_in_id", "token_out_id")
        min_amount_out = fields.get("min_amount_out_raw")
        return SwapIntent(
            token_in_id=token_in_id,
            token_out_id=token_out_id,
            amount_raw=await self._amount(fields, "amount_raw", ("amount",), network, token_id=token_in_id),
            pool_id=self._pool_id(fields),
            slippage_bps=self._slippage(fields, IntentType.SWAP),
            min_amount_out_raw=(
                parse_raw_amount(min_amount_out, "min_amount_out_raw", allow_zero=True)
                if min_amount_out is not None else None
            ),
            from_account_id=self._optional_account(fields, "from_account_id"),
            auto_register_output=fields.flag("auto_register_output", True),
        )

    async def _cross_chain_swap(self, fields: "_Fields", network: str) -> Intent:
        origin = fields.get("origin_asset") or fields.get("token_in_id")
        destination = fields.get("destination_asset") or fields.get("token_out_id")
        if not origin or not str(origin).strip():
            raise ValidationError("originAsset is required", "origin_asset")
        if not destination or not str(destination).strip():
            raise ValidationError("destinationAsset is required", "destination_asset")
        origin_asset = self.tokens.resolve_asset_id(str(origin), network)
        destination_asset = self.tokens.resolve_asset_id(str(destination), network)
        self._distinct(origin_asset, destination_asset, "origin_asset", "destination_asset")
        origin_token = origin_asset.split(":", 1)[1]
        refund_to = fields.get("refund_to")
        deposit_address = fields.get("deposit_address")
        return CrossChainSwapIntent(
            origin_asset=origin_asset,
            destination_asset=destination_asset,
            amount_raw=await self._amount(fields, "amount_raw", ("amount",), network, token_id=origin_token),
            recipient=normalize_account_id(fields.get("recipient"), "recipient"),
            refund_to=normalize_account_id(refund_to, "refund_to") if refund_to is not None else None,
            slippage_bps=self._slippage(fields, IntentType.SWAP_CROSS_CHAIN),
            deposit_address=str(deposit_address).strip() if deposit_address else None,
            wait_for_final_status=fields.flag("wait_for_final_status", False),
            from_account_id=self._optional_account(fields, "from_account_id"),
        )

    async def _add_liquidity(self, fields: "_Fields", network: str) -> Intent:
        token_a_id = self._token(fields.get("token_a_id"), "token_a_id", network)
        token_b_id = self._token(fields.get("token_b_id"), "token_b_id", network)
        self._distinct(token_a_id, token_b_id, "token_a_id", "token_b_id")
        return AddLiquidityIntent(
            token_a_id=token_a_id,
            token_b_id=token_b_id,
            amount_a_raw=await self._amount(fields, "amount_a_raw", ("amount_a",), network, token_id=token_a_id),
            amount_b_raw=await self._amount(fields, "amount_b_raw", ("amount_b",), network, token_id=token_b_id),
            pool_id=self._pool_id(fields),
            from_account_id=self._optional_account(fields, "from_account_id"),
        )

    async def _remove_liquidity(self, fields: "_Fields", network: str) -> Intent:
        pool_id = self._pool_id(fields)
        token_a = fields.get("token_a_id")
        token_b = fields.get("token_b_id")
        token_a_id = self._token(token_a, "token_a_id", network) if token_a else None
        token_b_id = self._token(token_b, "token_b_id", network) if token_b else None
        if pool_id is None and not (token_a_id and token_b_id):
            raise ValidationError("Provide poolId or both tokenAId and tokenBId", "pool_id")
        if token_a_id and token_b_id:
            self._distinct(token_a_id, token_b_id, "token_a_id", "token_b_id")

        group = fields.group(("shares_raw", "share_bps", "share_percent"))
        if len(group) != 1:
            raise ValidationError(
                "Provide exactly one of sharesRaw, shareBps or sharePercent", "shares_raw"
            )
        shares_raw = share_bps = None
        if "shares_raw" in group:
            shares_raw = parse_raw_amount(group["shares_raw"], "shares_raw")
        elif "share_bps" in group:
            share_bps = parse_bps(group["share_bps"], "share_bps", minimum=1)
        else:
            share_bps = parse_percent_as_bps(group["share_percent"], "share_percent", allow_zero=False)

        min_amounts = fields.get("min_amounts_raw")
        return RemoveLiquidityIntent(
            token_a_id=token_a_id,
            token_b_id=token_b_id,
            pool_id=pool_id,
            shares_raw=shares_raw,
            share_bps=share_bps,
            min_amounts_raw=(
                tuple(parse_raw_amount(value, "min_amounts_raw", allow_zero=True) for value in min_amounts)
                if min_amounts is not None else None
            ),
            from_account_id=self._optional_account(fields, "from_account_id"),
        )

    async def _exchange_withdraw(self, fields: "_Fields", network: str) -> Intent:
        token_id = self._token(fields.get("token_id"), "token_id", network)
        return ExchangeWithdrawIntent(
            token_id=token_id,
            amount_raw=await self._amount(
                fields, "amount_raw", ("amount",), network, token_id=token_id, required=False
            ),
            from_account_id=self._optional_account(fields, "from_account_id"),
        )

    async def _lend_supply(self, fields: "_Fields", network: str) -> Intent:
        token_id = self._token(fields.get("token_id"), "token_id", network)
        return LendSupplyIntent(
            token_id=token_id,
            amount_raw=await self._amount(fields, "amount_raw", ("amount",), network, token_id=token_id),
            as_collateral=fields.flag("as_collateral", False),
            from_account_id=self._optional_account(fields, "from_account_id"),
        )

    async def _stake(self, fields: "_Fields", network: str) -> Intent:
        return StakeIntent(
            validator_id=normalize_account_id(fields.get("validator_id"), "validator_id"),
            amount_raw=await self._amount(
                fields, "amount_raw", ("amount_near", "amount"), network, decimals=NATIVE_DECIMALS
            ),
            from_account_id=self._optional_account(fields, "from_account_id"),
        )

    async def _stake_withdraw(self, fields: "_Fields", network: str) -> Intent:
        return StakeWithdrawIntent(
            validator_id=normalize_account_id(fields.get("validator_id"), "validator_id"),
            amount_raw=await self._amount(
                fields, "amount_raw", ("amount_near", "amount"), network,
                decimals=NATIVE_DECIMALS, required=False,
            ),
            from_account_id=self._optional_account(fields, "from_account_id"),
        )


class _Fields:
    """Explicit request values layered over hints"""

    def __init__(self, request: WorkflowRequest, hints: IntentHints):
        self.explicit = {
            key: value for key, value in request.model_dump(exclude_none=True).items()
            if not (isinstance(value, str) and not value.strip())
        }
        self.hinted = hints.model_dump(exclude_none=True)

    def get(self, key: str) -> Any:
        if key in self.explicit:
            return self.explicit[key]
        return self.hinted.get(key)

    def flag(self, key: str, default: bool) -> bool:
        value = self.get(key)
        return default if value is None else bool(value)

    def group(self, keys: Iterable[str]) -> Dict[str, Any]:
        """All keys of a group from one source: the request if it sets any, else the hints"""
        keys = tuple(keys)
        source = self.explicit if any(key in self.explicit for key in keys) else self.hinted
        return {key: source[key] for key in keys if key in source}
