"""
Pool resolution - direct lookup, ranked auto-discovery and follow-up
candidate selection
"""
import logging
from typing import List, Optional, Sequence, Tuple

from .errors import ConflictError, ResolutionError, ValidationError
from .fanout import run_bounded
from .gateway import ChainGateway
from .models import (
    LIQUIDITY_INTENT_TYPES, Intent, IntentType, PoolCandidate, PoolSelection, PoolView,
    intent_type_of,
)

logger = logging.getLogger(__name__)

POOL_INTENT_TYPES = (IntentType.SWAP,) + LIQUIDITY_INTENT_TYPES


def _pair(intent: Intent) -> Tuple[Optional[str], Optional[str]]:
    if intent_type_of(intent) == IntentType.SWAP:
        return intent.token_in_id, intent.token_out_id
    return getattr(intent, "token_a_id", None), getattr(intent, "token_b_id", None)


def select_candidate(
    candidates: Sequence[PoolCandidate],
    index: int,
    explicit_pool_id: Optional[int] = None,
) -> PoolCandidate:
    """
    Pick a 1-based candidate

    Args:
        candidates: Ranked candidates recorded by discovery
        index: 1-based position
        explicit_pool_id: Pool id also supplied by the caller, must agree

    Returns:
        The chosen PoolCandidate
    """
    if not candidates:
        raise ResolutionError("No pool candidates are recorded for this run; run simulate or compose first")
    if index < 1 or index > len(candidates):
        raise ResolutionError(
            f"poolCandidateIndex {index} is out of range, expected 1-{len(candidates)}"
        )
    chosen = candidates[index - 1]
    if explicit_pool_id is not None and int(explicit_pool_id) != chosen.pool_id:
        raise ConflictError(
            f"poolCandidateIndex {index} selects pool {chosen.pool_id} but poolId is {explicit_pool_id}"
        )
    return chosen


def apply_follow_up(
    intent: Intent,
    candidates: Sequence[PoolCandidate],
    candidate_index: Optional[int] = None,
    pool_id: Optional[int] = None,
) -> Intent:
    """Patch a reused intent with a follow-up pool selection"""
    if candidate_index is None and pool_id is None:
        return intent
    intent_type = intent_type_of(intent)
    if candidate_index is not None:
        if intent_type not in LIQUIDITY_INTENT_TYPES:
            raise ValidationError(
                f"poolCandidateIndex is only supported for liquidity.add and liquidity.remove, not {intent_type.value}",
                "pool_candidate_index",
            )
        chosen = select_candidate(candidates, candidate_index, pool_id)
        logger.info(f"Follow-up selected candidate {candidate_index} -> pool {chosen.pool_id}")
        return intent.model_copy(update={"pool_id": chosen.pool_id})
    if intent_type not in POOL_INTENT_TYPES:
        raise ValidationError(f"poolId does not apply to {intent_type.value}", "pool_id")
    return intent.model_copy(update={"pool_id": int(pool_id)})


class PoolResolver:
    """
    Resolves a token pair to a pool id using the chain gateway
    """

    def __init__(
        self,
        gateway: ChainGateway,
        workers: int = 4,
        page_size: int = 200,
        max_candidates: int = 5,
    ):
        self.gateway = gateway
        self.workers = workers
        self.page_size = page_size
        self.max_candidates = max_candidates

    async def lookup(
        self,
        pool_id: int,
        network: str,
        token_a_id: Optional[str] = None,
        token_b_id: Optional[str] = None,
    ) -> PoolView:
        """Direct lookup; the pool must exist and hold the requested pair"""
        pool = await self.gateway.get_pool(network, pool_id)
        if pool is None:
            raise ResolutionError(f"Pool {pool_id} not found on {network}")
        missing = [token for token in (token_a_id, token_b_id) if token and token not in pool.token_ids]
        if missing:
            raise ResolutionError(
                f"Pool {pool_id} does not contain {', '.join(missing)} (tokens: {', '.join(pool.token_ids)})"
            )
        return pool

    async def discover(self, token_a_id: str, token_b_id: str, network: str) -> Tuple[PoolCandidate, ...]:
        """
        Scan every pool page and rank the ones holding both tokens

        Args:
            token_a_id: First token contract id
            token_b_id: Second token contract id
            network: Network to scan

        Returns:
            Up to max_candidates candidates, deepest liquidity first
        """
        total = await self.gateway.count_pools(network)
        offsets = list(range(0, total, self.page_size))

        async def fetch_page(offset: int, index: int) -> List[PoolView]:
            return await self.gateway.get_pools(network, offset, self.page_size)

        pages = await run_bounded(offsets, fetch_page, self.workers)
        if offsets and len(pages.failures) == len(offsets):
            raise pages.failures[0].error
        if pages.failures:
            logger.warning(
                f"Pool discovery on {network} skipped {len(pages.failures)} of {len(offsets)} pages"
            )

        scored = []
        for page in pages.succeeded():
            for pool in page or []:
                if token_a_id in pool.token_ids and token_b_id in pool.token_ids:
                    score = self.gateway.liquidity_score(pool, token_a_id, token_b_id)
                    scored.append((score, pool))

        if not scored:
            raise ResolutionError(f"No pool found for {token_a_id}/{token_b_id} on {network}")

        scored.sort(key=lambda item: (-item[0], item[1].pool_id))
        candidates = tuple(
            PoolCandidate(
                pool_id=pool.pool_id,
                pool_kind=pool.pool_kind,
                token_a_id=token_a_id,
                token_b_id=token_b_id,
                liquidity_score=str(score),
            )
            for score, pool in scored[: self.max_candidates]
        )
        logger.info(
            f"Discovered {len(scored)} pools for {token_a_id}/{token_b_id} on {network}, "
            f"best pool {candidates[0].pool_id}"
        )
        return candidates

    async def resolve(self, intent: Intent, network: str) -> PoolSelection:
        """Resolve the pool of a pool-bearing intent, directly or by discovery"""
        token_a_id, token_b_id = _pair(intent)
        if intent.pool_id is not None:
            await self.lookup(intent.pool_id, network, token_a_id, token_b_id)
            return PoolSelection(pool_id=intent.pool_id, source="explicitPool")
        if not (token_a_id and token_b_id):
            raise ValidationError("Provide poolId or both tokenAId and tokenBId", "pool_id")
        candidates = await self.discover(token_a_id, token_b_id, network)
        return PoolSelection(
            pool_id=candidates[0].pool_id,
            source="bestLiquidityPool",
            candidates=candidates,
        )
