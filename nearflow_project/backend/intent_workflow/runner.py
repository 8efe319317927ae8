"""
Workflow Runner - four-phase state machine (analysis, compose, simulate,
execute) over normalized intents and cross-call sessions
"""
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Union

from .confirm import PRODUCTION_NETWORK, assert_execution_confirmed, create_confirm_token, requires_approval
from .errors import ValidationError
from .fanout import run_bounded
from .gateway import ChainGateway
from .hints import extract_intent_hints
from .models import (
    LIQUIDITY_INTENT_TYPES, CrossChainSwapIntent, Intent, IntentHints, IntentType,
    PoolCandidate, RunMode, RunSession, SwapIntent, SwapQuote, WorkflowDetails,
    WorkflowRequest, WorkflowResult, has_intent_inputs, intent_type_of,
)
from .normalizer import IntentNormalizer, parse_pool_id
from .poller import StatusPoller
from .resolver import PoolResolver, apply_follow_up
from .safety import SafetyGuard, floor_for_slippage
from .session import SessionStore
from .tokens import TokenRegistry

logger = logging.getLogger(__name__)

NETWORKS = ("mainnet", "testnet")
Collaborator = Callable[[Intent, str, Dict[str, Any]], Awaitable[Dict[str, Any]]]

# hint fields that select among prior results rather than describe an intent
FOLLOW_UP_HINT_FIELDS = {"run_mode", "pool_candidate_index", "pool_id"}


@dataclass
class PhaseContext:
    """Everything a phase handler needs for one call"""
    run_id: str
    network: str
    run_mode: RunMode
    intent: Intent
    request: WorkflowRequest
    session: Optional[RunSession] = None
    candidates: Tuple[PoolCandidate, ...] = ()
    confirm_token: Optional[str] = None
    confirm_token_matched: Optional[bool] = None
    artifacts: Dict[str, Any] = field(default_factory=dict)

    @property
    def intent_type(self) -> IntentType:
        return intent_type_of(self.intent)

    def collaborator_context(self, **extra) -> Dict[str, Any]:
        context = {"runId": self.run_id, "network": self.network, "runMode": self.run_mode.value}
        context.update(extra)
        return context


def generate_run_id() -> str:
    return f"wf-near-{uuid.uuid4().hex[:8]}"


def describe_intent(intent: Intent) -> str:
    """One-line human summary of an intent"""
    intent_type = intent_type_of(intent)
    if intent_type == IntentType.TRANSFER_NATIVE:
        return f"transfer {intent.amount_raw} yoctoNEAR to {intent.to_account_id}"
    if intent_type == IntentType.TRANSFER_FT:
        return f"transfer {intent.amount_raw} {intent.ft_contract_id} to {intent.to_account_id}"
    if intent_type == IntentType.SWAP:
        pool = f" via pool {intent.pool_id}" if intent.pool_id is not None else ""
        return (f"swap {intent.amount_raw} {intent.token_in_id} -> {intent.token_out_id}{pool} "
                f"(slippage {intent.slippage_bps} bps)")
    if intent_type == IntentType.SWAP_CROSS_CHAIN:
        return (f"cross-chain swap {intent.amount_raw} {intent.origin_asset} -> "
                f"{intent.destination_asset} for {intent.recipient}")
    if intent_type == IntentType.LIQUIDITY_ADD:
        pool = intent.pool_id if intent.pool_id is not None else "auto"
        return (f"add liquidity {intent.amount_a_raw} {intent.token_a_id} + "
                f"{intent.amount_b_raw} {intent.token_b_id} (pool {pool})")
    if intent_type == IntentType.LIQUIDITY_REMOVE:
        share = f"{intent.shares_raw} shares" if intent.shares_raw else f"{intent.share_bps} bps of shares"
        pool = intent.pool_id if intent.pool_id is not None else "auto"
        return f"remove {share} from pool {pool}"
    if intent_type == IntentType.EXCHANGE_WITHDRAW:
        return f"withdraw {intent.amount_raw or 'full balance of'} {intent.token_id} from the exchange"
    if intent_type == IntentType.LEND_SUPPLY:
        collateral = " as collateral" if intent.as_collateral else ""
        return f"supply {intent.amount_raw} {intent.token_id}{collateral}"
    if intent_type == IntentType.STAKE:
        return f"stake {intent.amount_raw} yoctoNEAR with {intent.validator_id}"
    return f"withdraw {intent.amount_raw or 'all unstaked'} yoctoNEAR from {intent.validator_id}"


class WorkflowRunner:
    """
    Central orchestrator for intent workflows.
    The caller sequences phases; each call is independent apart from the
    session recorded under its run id.
    """

    def __init__(
        self,
        gateway: ChainGateway,
        sessions: Optional[SessionStore] = None,
        tokens: Optional[TokenRegistry] = None,
        poller: Optional[StatusPoller] = None,
        default_network: str = "testnet",
        max_slippage_bps: int = 1000,
        fanout_workers: int = 4,
        pool_page_size: int = 200,
        max_pool_candidates: int = 5,
    ):
        """
        Initialize the runner

        Args:
            gateway: Chain collaborator used for reads, builds and submits
            sessions: Session store, a fresh one when omitted
            tokens: Token registry, backed by the gateway when omitted
            poller: Status poller for cross-chain settlement
            default_network: Network used when neither request nor session names one
            max_slippage_bps: Configured slippage ceiling
            fanout_workers: Worker budget for concurrent lookups
            pool_page_size: Page size for pool discovery
            max_pool_candidates: Ranked candidates kept in the session
        """
        if default_network not in NETWORKS:
            raise ValueError(f"default_network must be one of {NETWORKS}, got {default_network}")
        self.gateway = gateway
        self.sessions = sessions if sessions is not None else SessionStore()
        self.tokens = tokens or TokenRegistry(decimals_loader=gateway.get_token_decimals)
        self.poller = poller or StatusPoller()
        self.default_network = default_network
        self.fanout_workers = fanout_workers
        self.normalizer = IntentNormalizer(self.tokens)
        self.guard = SafetyGuard(max_slippage_bps)
        self.resolver = PoolResolver(
            gateway,
            workers=fanout_workers,
            page_size=pool_page_size,
            max_candidates=max_pool_candidates,
        )

        self.phase_handlers: Dict[RunMode, Callable[[PhaseContext], Awaitable[Dict[str, Any]]]] = {
            RunMode.ANALYSIS: self._run_analysis,
            RunMode.COMPOSE: self._run_compose,
            RunMode.SIMULATE: self._run_simulate,
            RunMode.EXECUTE: self._run_execute,
        }
        self.composers: Dict[IntentType, Collaborator] = {}
        self.simulators: Dict[IntentType, Collaborator] = {}
        self.submitters: Dict[IntentType, Collaborator] = {}
        self._register_default_collaborators()

    def _register_default_collaborators(self):
        """Delegate every intent type to the gateway's hooks"""
        for intent_type in IntentType:
            self.composers[intent_type] = self.gateway.build
            self.simulators[intent_type] = self.gateway.simulate
            self.submitters[intent_type] = self.gateway.submit
        self.simulators[IntentType.SWAP] = self._simulate_swap_quote

    def register_composer(self, intent_type: IntentType, composer: Collaborator):
        self.composers[IntentType(intent_type)] = composer

    def register_simulator(self, intent_type: IntentType, simulator: Collaborator):
        self.simulators[IntentType(intent_type)] = simulator

    def register_submitter(self, intent_type: IntentType, submitter: Collaborator):
        self.submitters[IntentType(intent_type)] = submitter

    # ------------------------------------------------------------------
    # entry point
    # ------------------------------------------------------------------

    async def run(self, request: Union[WorkflowRequest, Dict[str, Any]]) -> WorkflowResult:
        """
        Run one phase call

        Args:
            request: WorkflowRequest or its camelCase dict form

        Returns:
            WorkflowResult envelope
        """
        if not isinstance(request, WorkflowRequest):
            request = WorkflowRequest.model_validate(request)

        hints = extract_intent_hints(request.intent_text)
        run_mode = RunMode(request.run_mode or hints.run_mode or RunMode.ANALYSIS)
        context = await self._resolve_context(request, hints, run_mode)

        if getattr(context.intent, "slippage_bps", None) is not None:
            self.guard.enforce_slippage(context.intent.slippage_bps)

        logger.info(
            f"Run {context.run_id}: {run_mode.value} {context.intent_type.value} on {context.network}"
        )
        artifact = await self.phase_handlers[run_mode](context)
        context.artifacts[run_mode.value] = artifact
        return self._envelope(context)

    async def _resolve_context(self, request: WorkflowRequest, hints: IntentHints, run_mode: RunMode) -> PhaseContext:
        requested_run_id = (request.run_id or "").strip() or None
        follow_up = not self._has_new_intent_fields(request, hints)
        candidate_index = request.pool_candidate_index
        if candidate_index is None:
            candidate_index = hints.pool_candidate_index
        pool_id = request.pool_id
        if pool_id is None and follow_up:
            pool_id = hints.pool_id
        pool_id = parse_pool_id(pool_id) if pool_id is not None else None

        session = self.sessions.get(requested_run_id)
        if follow_up:
            if session is None:
                target = f"run {requested_run_id}" if requested_run_id else "any prior run"
                raise ValidationError(
                    f"No intent fields were provided and no session exists for {target}; "
                    f"run analysis or simulate with intent fields first"
                )
            run_id = session.run_id
        else:
            run_id = requested_run_id or generate_run_id()
            if requested_run_id is None:
                session = None

        network = self._resolve_network(request.network, session)

        if follow_up:
            if network != session.network:
                raise ValidationError(
                    f"Run {run_id} was resolved on {session.network}; provide intent fields "
                    f"to run it on {network}",
                    "network",
                )
            intent = apply_follow_up(session.intent, session.pool_candidates, candidate_index, pool_id)
            candidates = session.pool_candidates
        else:
            intent = await self.normalizer.normalize(request, hints, network)
            candidates = ()
            if candidate_index is not None:
                prior = session.pool_candidates if session else ()
                intent = apply_follow_up(intent, prior, candidate_index, pool_id)
                candidates = prior

        return PhaseContext(
            run_id=run_id,
            network=network,
            run_mode=run_mode,
            intent=intent,
            request=request,
            session=session,
            candidates=candidates,
        )

    @staticmethod
    def _has_new_intent_fields(request: WorkflowRequest, hints: IntentHints) -> bool:
        explicit = request.model_copy(update={"intent_text": None})
        if has_intent_inputs(explicit):
            return True
        hinted = hints.model_dump(exclude_none=True)
        return any(key not in FOLLOW_UP_HINT_FIELDS for key in hinted)

    def _resolve_network(self, requested: Optional[str], session: Optional[RunSession]) -> str:
        if requested and requested.strip():
            network = requested.strip().lower()
        elif session is not None:
            network = session.network
        else:
            network = self.default_network
        if network not in NETWORKS:
            raise ValidationError(f"network must be one of {', '.join(NETWORKS)}, got '{network}'", "network")
        return network

    # ------------------------------------------------------------------
    # phases
    # ------------------------------------------------------------------

    async def _run_analysis(self, context: PhaseContext) -> Dict[str, Any]:
        await self._record_session(context, always=True)
        return {
            "summary": describe_intent(context.intent),
            "approvalRequired": requires_approval(context.network),
            "nextSteps": ["compose", "simulate", "execute"],
        }

    async def _run_compose(self, context: PhaseContext) -> Dict[str, Any]:
        selection = await self._resolve_liquidity_pool(context)
        payload = await self._call(
            "compose", self.composers, context, context.collaborator_context()
        )
        await self._record_session(context)
        artifact = {"summary": describe_intent(context.intent), "unsignedTransactions": payload}
        if selection is not None:
            artifact["poolSelection"] = selection
        return artifact

    async def _run_simulate(self, context: PhaseContext) -> Dict[str, Any]:
        selection = await self._resolve_liquidity_pool(context)
        payload = await self._call(
            "simulate", self.simulators, context, context.collaborator_context()
        )
        artifact: Dict[str, Any] = {"summary": describe_intent(context.intent), "result": payload}

        if context.intent_type == IntentType.SWAP:
            artifact.update(self._guard_swap(context, payload))
        elif context.intent_type == IntentType.SWAP_CROSS_CHAIN:
            artifact.update(self._refine_cross_chain(context, payload))
        if selection is not None:
            artifact["poolSelection"] = selection

        artifact["tokenDecimals"] = await self._token_decimals(context)
        await self._record_session(context, always=True)
        return artifact

    async def _run_execute(self, context: PhaseContext) -> Dict[str, Any]:
        request = context.request
        matched = assert_execution_confirmed(
            context.run_id,
            context.network,
            context.intent,
            request.confirm_mainnet,
            request.confirm_token,
        )
        context.confirm_token = create_confirm_token(context.run_id, context.network, context.intent)
        if matched is None:
            matched = (request.confirm_token or "").strip() == context.confirm_token
        context.confirm_token_matched = matched

        selection = None
        if context.intent_type in LIQUIDITY_INTENT_TYPES and context.intent.pool_id is None:
            selection = await self._resolve_liquidity_pool(context)

        extra: Dict[str, Any] = {}
        if context.intent_type == IntentType.SWAP:
            quote = await self._quote_swap(context.intent, context.network)
            safe_min = self.guard.resolve_min_amount_out(
                context.intent.min_amount_out_raw, quote.min_amount_out_raw, quote.amount_out_raw
            )
            if context.intent.pool_id is None and quote.pool_id is not None:
                context.intent = context.intent.model_copy(update={"pool_id": quote.pool_id})
            extra = {"minAmountOutRaw": safe_min, "quote": quote.model_dump(by_alias=True)}
        elif context.intent_type == IntentType.SWAP_CROSS_CHAIN and not context.intent.deposit_address:
            quote = await self.gateway.resolve_swap_quote(context.intent, context.network, dry=False)
            deposit_address = (quote.get("quote") or {}).get("depositAddress")
            if not deposit_address:
                raise ValidationError("Cross-chain quote did not return a deposit address", "deposit_address")
            context.intent = context.intent.model_copy(update={"deposit_address": deposit_address})

        payload = await self._call(
            "submit", self.submitters, context, context.collaborator_context(**extra)
        )
        artifact: Dict[str, Any] = {"summary": describe_intent(context.intent), "result": payload}
        if selection is not None:
            artifact["poolSelection"] = selection
        if extra.get("minAmountOutRaw"):
            artifact["safeMinAmountOutRaw"] = extra["minAmountOutRaw"]

        if context.intent_type != IntentType.SWAP_CROSS_CHAIN:
            return artifact

        deposit_address = payload.get("depositAddress") or context.intent.deposit_address
        artifact["depositAddress"] = deposit_address
        tx_hash = payload.get("txHash")
        if tx_hash:
            artifact["depositSubmission"] = await self.gateway.notify_cross_chain_deposit(
                tx_hash, deposit_address, context.intent.from_account_id
            )
        if context.intent.wait_for_final_status:
            outcome = await self.poller.poll(lambda: self.gateway.get_cross_chain_status(deposit_address))
            artifact["status"] = outcome.to_dict()
        return artifact

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    async def _call(
        self,
        phase: str,
        registry: Dict[IntentType, Collaborator],
        context: PhaseContext,
        collaborator_context: Dict[str, Any],
    ) -> Dict[str, Any]:
        collaborator = registry[context.intent_type]
        try:
            return await collaborator(context.intent, context.network, collaborator_context) or {}
        except Exception as e:
            logger.error(f"Run {context.run_id}: {phase} collaborator for {context.intent_type.value} failed: {e}")
            raise

    async def _resolve_liquidity_pool(self, context: PhaseContext) -> Optional[Dict[str, Any]]:
        if context.intent_type not in LIQUIDITY_INTENT_TYPES:
            return None
        selection = await self.resolver.resolve(context.intent, context.network)
        if selection.candidates:
            context.candidates = selection.candidates
        context.intent = context.intent.model_copy(update={"pool_id": selection.pool_id})
        return {
            "poolId": selection.pool_id,
            "source": selection.source,
            "candidates": [candidate.model_dump(by_alias=True) for candidate in context.candidates],
        }

    async def _quote_swap(self, intent: SwapIntent, network: str) -> SwapQuote:
        raw = await self.gateway.quote_swap(intent, network)
        amount_out = self.guard.require_quoted_amount_out(raw.get("amountOutRaw") or raw.get("amountOut"))
        quoted_floor = raw.get("minAmountOutRaw") or raw.get("minAmountOut")
        if quoted_floor is None:
            quoted_floor = floor_for_slippage(amount_out, intent.slippage_bps)
        pool_id = raw.get("poolId")
        return SwapQuote(
            pool_id=int(pool_id) if pool_id is not None else intent.pool_id,
            token_in_id=intent.token_in_id,
            token_out_id=intent.token_out_id,
            amount_in_raw=intent.amount_raw,
            amount_out_raw=amount_out,
            min_amount_out_raw=str(quoted_floor),
            source=raw.get("source"),
        )

    async def _simulate_swap_quote(self, intent: SwapIntent, network: str, context: Dict[str, Any]) -> Dict[str, Any]:
        quote = await self._quote_swap(intent, network)
        return quote.model_dump(by_alias=True)

    def _guard_swap(self, context: PhaseContext, payload: Dict[str, Any]) -> Dict[str, Any]:
        intent: SwapIntent = context.intent
        amount_out = self.guard.require_quoted_amount_out(payload.get("amountOutRaw"))
        quoted_floor = payload.get("minAmountOutRaw") or floor_for_slippage(amount_out, intent.slippage_bps)
        safe_min = self.guard.resolve_min_amount_out(intent.min_amount_out_raw, str(quoted_floor), amount_out)
        pool_id = payload.get("poolId")
        if pool_id is not None and intent.pool_id is None:
            context.intent = intent.model_copy(update={"pool_id": int(pool_id)})
        return {
            "quotedAmountOutRaw": amount_out,
            "quotedMinAmountOutRaw": str(quoted_floor),
            "safeMinAmountOutRaw": safe_min,
        }

    def _refine_cross_chain(self, context: PhaseContext, payload: Dict[str, Any]) -> Dict[str, Any]:
        intent: CrossChainSwapIntent = context.intent
        refined: Dict[str, Any] = {}
        amount_out, quoted_floor = payload.get("amountOutRaw"), payload.get("minAmountOutRaw")
        if amount_out is not None and quoted_floor is not None:
            refined["safeMinAmountOutRaw"] = self.guard.resolve_min_amount_out(
                None, str(quoted_floor), str(amount_out)
            )
        deposit_address = payload.get("depositAddress")
        if deposit_address:
            context.intent = intent.model_copy(update={"deposit_address": deposit_address})
            refined["depositAddress"] = deposit_address
        return refined

    async def _token_decimals(self, context: PhaseContext) -> Dict[str, int]:
        token_ids = []
        for name in ("token_in_id", "token_out_id", "token_a_id", "token_b_id", "token_id", "ft_contract_id"):
            value = getattr(context.intent, name, None)
            if value and value not in token_ids:
                token_ids.append(value)
        if not token_ids:
            return {}

        async def load(token_id: str, index: int) -> int:
            return await self.tokens.get_decimals(token_id, context.network)

        result = await run_bounded(token_ids, load, self.fanout_workers)
        failed = {failure.index for failure in result.failures}
        return {
            token_id: decimals
            for index, (token_id, decimals) in enumerate(zip(token_ids, result.results))
            if index not in failed
        }

    async def _record_session(self, context: PhaseContext, always: bool = False):
        previous = context.session
        if (
            not always
            and previous is not None
            and previous.run_id == context.run_id
            and previous.network == context.network
            and previous.intent == context.intent
            and previous.pool_candidates == context.candidates
        ):
            return
        session = RunSession(
            run_id=context.run_id,
            network=context.network,
            intent=context.intent,
            confirm_token=create_confirm_token(context.run_id, context.network, context.intent),
            pool_candidates=context.candidates,
        )
        context.session = await self.sessions.save(session)

    def _envelope(self, context: PhaseContext) -> WorkflowResult:
        confirm_token = context.confirm_token or create_confirm_token(context.run_id, context.network, context.intent)
        approval_required = context.network == PRODUCTION_NETWORK

        lines = [
            f"{context.run_mode.value} {context.intent_type.value} on {context.network} (run {context.run_id})",
            describe_intent(context.intent),
        ]
        if approval_required and context.run_mode != RunMode.EXECUTE:
            lines.append(f"Mainnet execution requires confirmMainnet=true and confirmToken={confirm_token}")

        return WorkflowResult(
            content=[{"type": "text", "text": "\n".join(lines)}],
            details=WorkflowDetails(
                run_id=context.run_id,
                run_mode=context.run_mode,
                network=context.network,
                intent_type=context.intent_type,
                intent=context.intent,
                approval_required=approval_required,
                confirm_token=confirm_token,
                confirm_token_matched=context.confirm_token_matched,
                artifacts=context.artifacts,
            ),
        )
