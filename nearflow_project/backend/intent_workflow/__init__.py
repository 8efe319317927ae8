"""
Intent Workflow Engine
Carries NEAR intents from analysis through simulation to submission
"""
from .models import (
    RunMode,
    IntentType,
    Intent,
    IntentHints,
    PoolView,
    PoolCandidate,
    RunSession,
    SwapQuote,
    WorkflowRequest,
    WorkflowResult
)
from .errors import (
    WorkflowError,
    ValidationError,
    ResolutionError,
    ConflictError,
    SafetyError,
    AuthorizationError,
    CollaboratorError
)
from .hints import extract_intent_hints
from .normalizer import IntentNormalizer
from .fanout import run_bounded, KeyedCache, FanOutResult, FanOutFailure
from .tokens import TokenRegistry
from .resolver import PoolResolver
from .safety import SafetyGuard
from .confirm import create_confirm_token, assert_execution_confirmed
from .session import SessionStore
from .poller import StatusPoller, PollOutcome
from .gateway import ChainGateway, IntentsChainGateway
from .runner import WorkflowRunner

__all__ = [
    "RunMode",
    "IntentType",
    "Intent",
    "IntentHints",
    "PoolView",
    "PoolCandidate",
    "RunSession",
    "SwapQuote",
    "WorkflowRequest",
    "WorkflowResult",
    "WorkflowError",
    "ValidationError",
    "ResolutionError",
    "ConflictError",
    "SafetyError",
    "AuthorizationError",
    "CollaboratorError",
    "extract_intent_hints",
    "IntentNormalizer",
    "run_bounded",
    "KeyedCache",
    "FanOutResult",
    "FanOutFailure",
    "TokenRegistry",
    "PoolResolver",
    "SafetyGuard",
    "create_confirm_token",
    "assert_execution_confirmed",
    "SessionStore",
    "StatusPoller",
    "PollOutcome",
    "ChainGateway",
    "IntentsChainGateway",
    "WorkflowRunner"
]
