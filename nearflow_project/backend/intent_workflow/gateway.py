"""
Chain gateway - the seam to external chain collaborators

Everything that touches RPC, signing or protocol-specific transaction
building lives behind this interface. The engine only orchestrates.
"""
import logging
from typing import Any, Dict, List, Optional

from .errors import CollaboratorError
from .models import CrossChainSwapIntent, Intent, PoolView, SwapIntent, intent_type_of

logger = logging.getLogger(__name__)


class ChainGateway:
    """
    Base gateway. Read-only queries must be provided by a subclass; the
    per-type simulate/build/submit hooks default to "not available".
    """

    # read-only queries ------------------------------------------------

    async def get_token_decimals(self, token_id: str, network: str) -> int:
        raise CollaboratorError(f"No token metadata collaborator available on {network}")

    async def count_pools(self, network: str) -> int:
        raise CollaboratorError(f"No pool collaborator available on {network}")

    async def get_pools(self, network: str, offset: int, limit: int) -> List[PoolView]:
        raise CollaboratorError(f"No pool collaborator available on {network}")

    async def get_pool(self, network: str, pool_id: int) -> Optional[PoolView]:
        raise CollaboratorError(f"No pool collaborator available on {network}")

    async def quote_swap(self, intent: SwapIntent, network: str) -> Dict[str, Any]:
        """
        Quote an exact-input swap

        Returns:
            Dict with poolId, amountOutRaw and optionally minAmountOutRaw
        """
        raise CollaboratorError(f"No swap quote collaborator available on {network}")

    def liquidity_score(self, pool: PoolView, token_a_id: str, token_b_id: str) -> int:
        """Product of both reserves; larger means deeper liquidity"""
        reserves = dict(zip(pool.token_ids, pool.amounts))
        try:
            return int(reserves.get(token_a_id, 0)) * int(reserves.get(token_b_id, 0))
        except (TypeError, ValueError):
            return 0

    # per-type hooks ---------------------------------------------------

    async def simulate(self, intent: Intent, network: str, context: Dict[str, Any]) -> Dict[str, Any]:
        return await self._dispatch("simulate", intent, network, context)

    async def build(self, intent: Intent, network: str, context: Dict[str, Any]) -> Dict[str, Any]:
        return await self._dispatch("build", intent, network, context)

    async def submit(self, intent: Intent, network: str, context: Dict[str, Any]) -> Dict[str, Any]:
        return await self._dispatch("submit", intent, network, context)

    async def _dispatch(self, action: str, intent: Intent, network: str, context: Dict[str, Any]) -> Dict[str, Any]:
        intent_type = intent_type_of(intent)
        handler = getattr(self, f"{action}_{intent_type.name.lower()}", None)
        if handler is None:
            raise CollaboratorError(f"No {action} collaborator available for {intent_type.value}")
        return await handler(intent, network, context)

    async def resolve_swap_quote(self, intent: CrossChainSwapIntent, network: str, dry: bool) -> Dict[str, Any]:
        """Cross-chain quote; subclasses backed by the intents API override this"""
        raise CollaboratorError(f"No cross-chain quote collaborator available on {network}")

    async def get_cross_chain_status(self, deposit_address: str) -> Dict[str, Any]:
        raise CollaboratorError("No cross-chain status collaborator available")

    async def notify_cross_chain_deposit(self, tx_hash: str, deposit_address: str, sender: Optional[str]) -> Optional[Dict[str, Any]]:
        """Optional hint to the settlement service that a deposit was sent"""
        return None


class IntentsChainGateway(ChainGateway):
    """
    Gateway that routes cross-chain quotes and status lookups through a
    NEAR Intents 1Click client
    """

    def __init__(self, intents_client: Any):
        self.intents_client = intents_client

    async def resolve_swap_quote(self, intent: CrossChainSwapIntent, network: str, dry: bool) -> Dict[str, Any]:
        refund_to = intent.refund_to or intent.from_account_id
        if not refund_to:
            raise CollaboratorError("refundTo or fromAccountId is required for a cross-chain quote")
        return await self.intents_client.get_quote(
            origin_asset=intent.origin_asset,
            destination_asset=intent.destination_asset,
            amount_raw=intent.amount_raw,
            recipient=intent.recipient,
            refund_to=refund_to,
            slippage_bps=intent.slippage_bps,
            dry=dry,
        )

    async def get_cross_chain_status(self, deposit_address: str) -> Dict[str, Any]:
        return await self.intents_client.get_status(deposit_address=deposit_address)

    async def notify_cross_chain_deposit(self, tx_hash: str, deposit_address: str, sender: Optional[str]) -> Optional[Dict[str, Any]]:
        return await self.intents_client.submit_deposit(tx_hash, deposit_address, near_sender_account=sender)

    async def simulate_swap_cross_chain(self, intent: CrossChainSwapIntent, network: str, context: Dict[str, Any]) -> Dict[str, Any]:
        response = await self.resolve_swap_quote(intent, network, dry=False)
        quote = response.get("quote", {})
        return {
            "quote": quote,
            "depositAddress": quote.get("depositAddress"),
            "amountOutRaw": quote.get("amountOut"),
            "minAmountOutRaw": quote.get("minAmountOut"),
            "deadline": quote.get("deadline"),
        }

    async def build_swap_cross_chain(self, intent: CrossChainSwapIntent, network: str, context: Dict[str, Any]) -> Dict[str, Any]:
        response = await self.resolve_swap_quote(intent, network, dry=True)
        return {"quote": response.get("quote", {}), "depositAsset": intent.origin_asset}

