"""
Token symbol resolution and exact decimal scaling
"""
import logging
import re
from typing import Awaitable, Callable, Dict, Optional, Tuple

from .errors import ResolutionError, ValidationError
from .fanout import KeyedCache

logger = logging.getLogger(__name__)

NATIVE_DECIMALS = 24

# symbol -> (token contract id, decimals)
DEFAULT_TOKENS: Dict[str, Dict[str, Tuple[str, int]]] = {
    "mainnet": {
        "NEAR": ("wrap.near", 24),
        "WNEAR": ("wrap.near", 24),
        "USDC": ("17208628f84f5d6ad33f0da3bbbeb27ffcb398eac501a31bd6ad2011e36133a1", 6),
        "USDT": ("usdt.tether-token.near", 6),
        "SOL": ("sol.omft.near", 9),
        "ETH": ("eth.omft.near", 18),
        "BTC": ("btc.omft.near", 8),
    },
    "testnet": {
        "NEAR": ("wrap.testnet", 24),
        "WNEAR": ("wrap.testnet", 24),
        "USDC": ("usdc.fakes.testnet", 6),
        "USDT": ("usdt.fakes.testnet", 6),
        "SOL": ("sol.fakes.testnet", 9),
        "ETH": ("eth.fakes.testnet", 18),
        "BTC": ("btc.fakes.testnet", 8),
    },
}

UI_AMOUNT_PATTERN = re.compile(r"^\d+(\.\d+)?$")
IMPLICIT_ACCOUNT_PATTERN = re.compile(r"^[0-9a-f]{64}$")


def looks_like_token_id(value: str) -> bool:
    """Contract ids carry a dot, an asset prefix or are 64-hex implicit accounts"""
    return "." in value or ":" in value or bool(IMPLICIT_ACCOUNT_PATTERN.match(value.lower()))


def to_raw_amount(ui_amount: str, decimals: int, field: str = "amount") -> str:
    """
    Scale a UI decimal amount into smallest units without floating point

    Args:
        ui_amount: Decimal string such as "0.1"
        decimals: Token decimals
        field: Field name used in error messages

    Returns:
        Unsigned integer string
    """
    text = str(ui_amount).strip()
    if not UI_AMOUNT_PATTERN.match(text):
        raise ValidationError(f"{field} must be a positive decimal number, got '{ui_amount}'", field)
    whole, _, fraction = text.partition(".")
    if len(fraction) > decimals:
        raise ValidationError(
            f"{field} has {len(fraction)} fractional digits but the token supports {decimals}",
            field,
        )
    raw = int(whole + fraction.ljust(decimals, "0"))
    if raw <= 0:
        raise ValidationError(f"{field} must be greater than 0", field)
    return str(raw)


class TokenRegistry:
    """
    Resolves symbols like "USDC" to contract ids per network and looks up
    decimals, first from the built-in table and overrides, then from the chain
    """

    def __init__(
        self,
        decimals_loader: Optional[Callable[[str, str], Awaitable[int]]] = None,
        decimals_overrides: Optional[Dict[str, int]] = None,
        tokens: Optional[Dict[str, Dict[str, Tuple[str, int]]]] = None,
    ):
        self.decimals_loader = decimals_loader
        self.tokens = tokens or DEFAULT_TOKENS
        self.decimals_overrides = {k.lower(): int(v) for k, v in (decimals_overrides or {}).items()}
        self._cache: KeyedCache[int] = KeyedCache(normalize_key=str.lower)

    def resolve_token_id(self, value: str, network: str) -> str:
        """Map a symbol or contract id to a contract id on `network`"""
        text = (value or "").strip()
        if not text:
            raise ValidationError("token id is required")
        if looks_like_token_id(text):
            return text.lower()
        entry = self.tokens.get(network, {}).get(text.upper())
        if entry is None:
            raise ResolutionError(f"Unknown token symbol '{text}' on {network}; pass a token contract id")
        return entry[0]

    def resolve_asset_id(self, value: str, network: str) -> str:
        """Cross-chain asset ids keep their prefix; NEAR tokens get nep141:"""
        text = (value or "").strip()
        if ":" in text:
            return text
        return f"nep141:{self.resolve_token_id(text, network)}"

    def _known_decimals(self, token_id: str, network: str) -> Optional[int]:
        key = token_id.lower()
        if key in self.decimals_overrides:
            return self.decimals_overrides[key]
        for symbol, (contract_id, decimals) in self.tokens.get(network, {}).items():
            if contract_id == key or symbol.lower() == key:
                return decimals
        return None

    async def get_decimals(self, token_id: str, network: str) -> int:
        known = self._known_decimals(token_id, network)
        if known is not None:
            return known
        if self.decimals_loader is None:
            raise ResolutionError(f"Decimals for token '{token_id}' are unknown")

        async def load(key: str) -> int:
            logger.info(f"Fetching decimals for {key} on {network}")
            return int(await self.decimals_loader(key, network))

        return await self._cache.get(f"{network}/{token_id}", lambda _: load(token_id))
