"""
Tests for pool lookup, discovery ranking and candidate selection
"""
import asyncio

import pytest

from intent_workflow.errors import ConflictError, ResolutionError, ValidationError
from intent_workflow.models import AddLiquidityIntent, PoolCandidate, SwapIntent
from intent_workflow.resolver import PoolResolver, apply_follow_up, select_candidate

NEAR = "wrap.testnet"
USDC = "usdc.fakes.testnet"


def candidates(*pool_ids):
    return tuple(
        PoolCandidate(pool_id=pool_id, token_a_id=NEAR, token_b_id=USDC, liquidity_score="1")
        for pool_id in pool_ids
    )


def add_liquidity(**updates):
    fields = dict(token_a_id=NEAR, token_b_id=USDC, amount_a_raw="10", amount_b_raw="20")
    fields.update(updates)
    return AddLiquidityIntent(**fields)


@pytest.fixture
def seeded(gateway, pool_factory):
    gateway.pools = [
        pool_factory(0, NEAR, "other.testnet", 10 ** 9, 10 ** 9),
        pool_factory(1, NEAR, USDC, 100, 100),
        pool_factory(2, USDC, NEAR, 50, 400),
        pool_factory(3, NEAR, USDC, 1000, 1000),
        pool_factory(4, NEAR, USDC, 200, 100),
    ]
    return gateway


def test_discovery_ranks_by_liquidity_then_pool_id(seeded):
    resolver = PoolResolver(seeded, workers=2, page_size=2, max_candidates=3)

    found = asyncio.run(resolver.discover(NEAR, USDC, "testnet"))

    # pools 2 and 4 tie at 20000
    assert [candidate.pool_id for candidate in found] == [3, 2, 4]
    assert found[0].liquidity_score == "1000000"


def test_discovery_tolerates_partial_page_failures(seeded):
    seeded.fail_offsets = {4}
    resolver = PoolResolver(seeded, workers=2, page_size=2)

    found = asyncio.run(resolver.discover(NEAR, USDC, "testnet"))
    assert [candidate.pool_id for candidate in found] == [3, 2, 1]


def test_discovery_fails_when_every_page_fails(seeded):
    seeded.fail_offsets = {0, 2, 4}
    resolver = PoolResolver(seeded, workers=2, page_size=2)

    with pytest.raises(RuntimeError, match="page 0 unavailable"):
        asyncio.run(resolver.discover(NEAR, USDC, "testnet"))


def test_discovery_without_matching_pool(seeded):
    resolver = PoolResolver(seeded)
    with pytest.raises(ResolutionError, match="No pool found"):
        asyncio.run(resolver.discover(NEAR, "eth.fakes.testnet", "testnet"))


def test_lookup_checks_existence_and_pair(seeded):
    resolver = PoolResolver(seeded)

    assert asyncio.run(resolver.lookup(3, "testnet", NEAR, USDC)).pool_id == 3
    with pytest.raises(ResolutionError, match="Pool 99 not found"):
        asyncio.run(resolver.lookup(99, "testnet"))
    with pytest.raises(ResolutionError, match="does not contain usdc.fakes.testnet"):
        asyncio.run(resolver.lookup(0, "testnet", NEAR, USDC))


def test_resolve_explicit_and_discovered(seeded):
    resolver = PoolResolver(seeded, page_size=2)

    explicit = asyncio.run(resolver.resolve(add_liquidity(pool_id=1), "testnet"))
    assert (explicit.pool_id, explicit.source) == (1, "explicitPool")

    discovered = asyncio.run(resolver.resolve(add_liquidity(), "testnet"))
    assert (discovered.pool_id, discovered.source) == (3, "bestLiquidityPool")
    assert len(discovered.candidates) == 4


def test_select_candidate_by_one_based_index():
    assert select_candidate(candidates(3, 9, 14), 2).pool_id == 9


def test_select_candidate_out_of_range_names_bounds():
    with pytest.raises(ResolutionError, match="poolCandidateIndex 4 is out of range, expected 1-3"):
        select_candidate(candidates(3, 9, 14), 4)
    with pytest.raises(ResolutionError, match="expected 1-3"):
        select_candidate(candidates(3, 9, 14), 0)


def test_select_candidate_conflicting_pool_id():
    with pytest.raises(ConflictError, match="selects pool 9 but poolId is 3"):
        select_candidate(candidates(3, 9, 14), 2, explicit_pool_id=3)
    assert select_candidate(candidates(3, 9, 14), 2, explicit_pool_id=9).pool_id == 9


def test_select_candidate_without_candidates():
    with pytest.raises(ResolutionError, match="No pool candidates"):
        select_candidate((), 1)


def test_follow_up_candidate_index_only_for_liquidity():
    swap = SwapIntent(token_in_id=NEAR, token_out_id=USDC, amount_raw="1")

    with pytest.raises(ValidationError, match="only supported for liquidity"):
        apply_follow_up(swap, candidates(3, 9), candidate_index=1)
    assert apply_follow_up(swap, (), pool_id=5).pool_id == 5
    assert apply_follow_up(add_liquidity(), candidates(3, 9, 14), candidate_index=3).pool_id == 14
    assert apply_follow_up(add_liquidity(), ()) == add_liquidity()
