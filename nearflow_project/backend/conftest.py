"""
Shared fixtures for the workflow tests
"""
import pytest

from intent_workflow import ChainGateway, PoolView, StatusPoller, WorkflowRunner


class FakeClock:
    """Monotonic clock advanced only by the fake sleep"""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.now += seconds


class FakeGateway(ChainGateway):
    """In-memory chain collaborator recording every call"""

    def __init__(self):
        self.pools = []
        self.decimals = {}
        self.decimals_calls = []
        self.quote = {"poolId": 11, "amountOutRaw": "1000", "minAmountOutRaw": "995"}
        self.cross_chain_quote = {"depositAddress": "deposit-1", "amountOut": "990", "minAmountOut": "980"}
        self.statuses = []
        self.fail_offsets = set()
        self.calls = []

    async def get_token_decimals(self, token_id, network):
        self.decimals_calls.append(token_id)
        return self.decimals[token_id]

    async def count_pools(self, network):
        return len(self.pools)

    async def get_pools(self, network, offset, limit):
        if offset in self.fail_offsets:
            raise RuntimeError(f"page {offset} unavailable")
        return self.pools[offset:offset + limit]

    async def get_pool(self, network, pool_id):
        return next((pool for pool in self.pools if pool.pool_id == pool_id), None)

    async def quote_swap(self, intent, network):
        self.calls.append(("quote", intent))
        return dict(self.quote)

    async def resolve_swap_quote(self, intent, network, dry):
        self.calls.append(("cross_chain_quote", dry))
        return {"quote": dict(self.cross_chain_quote)}

    async def get_cross_chain_status(self, deposit_address):
        status = self.statuses.pop(0)
        if isinstance(status, Exception):
            raise status
        return {"status": status, "depositAddress": deposit_address}

    async def notify_cross_chain_deposit(self, tx_hash, deposit_address, sender):
        self.calls.append(("notify", tx_hash, deposit_address))
        return {"status": "KNOWN_DEPOSIT_TX"}

    async def build_transfer_native(self, intent, network, context):
        self.calls.append(("build", intent))
        return {"receiverId": intent.to_account_id, "actions": [{"type": "Transfer", "deposit": intent.amount_raw}]}

    async def build_liquidity_add(self, intent, network, context):
        self.calls.append(("build", intent))
        return {"poolId": intent.pool_id}

    async def simulate_transfer_native(self, intent, network, context):
        self.calls.append(("simulate", intent))
        return {"balanceSufficient": True}

    async def simulate_liquidity_add(self, intent, network, context):
        self.calls.append(("simulate", intent))
        return {"poolId": intent.pool_id, "sharesEstimateRaw": "100"}

    async def simulate_swap_cross_chain(self, intent, network, context):
        response = await self.resolve_swap_quote(intent, network, dry=False)
        quote = response["quote"]
        return {
            "depositAddress": quote["depositAddress"],
            "amountOutRaw": quote["amountOut"],
            "minAmountOutRaw": quote["minAmountOut"],
        }

    async def submit_transfer_native(self, intent, network, context):
        self.calls.append(("submit", intent, context))
        return {"txHash": "tx-native"}

    async def submit_swap(self, intent, network, context):
        self.calls.append(("submit", intent, context))
        return {"txHash": "tx-swap"}

    async def submit_liquidity_add(self, intent, network, context):
        self.calls.append(("submit", intent, context))
        return {"txHash": "tx-add"}

    async def submit_liquidity_remove(self, intent, network, context):
        self.calls.append(("submit", intent, context))
        return {"txHash": "tx-remove"}

    async def submit_swap_cross_chain(self, intent, network, context):
        self.calls.append(("submit", intent, context))
        return {"txHash": "tx-deposit", "depositAddress": intent.deposit_address}

    def submitted(self):
        return [call for call in self.calls if call[0] == "submit"]


def make_pool(pool_id, token_a, token_b, amount_a, amount_b, pool_kind="SIMPLE_POOL"):
    return PoolView(
        pool_id=pool_id,
        pool_kind=pool_kind,
        token_ids=[token_a, token_b],
        amounts=[str(amount_a), str(amount_b)],
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def runner(gateway, clock):
    poller = StatusPoller(interval_seconds=5, timeout_seconds=60, clock=clock, sleep=clock.sleep)
    return WorkflowRunner(gateway, poller=poller, pool_page_size=2, max_pool_candidates=5)


@pytest.fixture
def pool_factory():
    return make_pool
