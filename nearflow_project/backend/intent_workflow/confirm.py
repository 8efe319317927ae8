"""
Confirm tokens gating execution on the production network
"""
import hashlib
import json
import logging
from typing import Any, Dict, Optional

from .errors import AuthorizationError
from .models import Intent

logger = logging.getLogger(__name__)

PRODUCTION_NETWORK = "mainnet"
CONFIRM_TOKEN_PREFIX = "NEAR-"


def serialize_intent(intent: Intent) -> str:
    """Compact camelCase JSON in field declaration order"""
    payload: Dict[str, Any] = intent.model_dump(mode="json", by_alias=True, exclude_none=True)
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


def create_confirm_token(run_id: str, network: str, intent: Intent) -> str:
    digest = hashlib.sha256()
    digest.update(run_id.encode("utf-8"))
    digest.update(b"|")
    digest.update(network.encode("utf-8"))
    digest.update(b"|")
    digest.update(serialize_intent(intent).encode("utf-8"))
    return f"{CONFIRM_TOKEN_PREFIX}{digest.hexdigest()[:10].upper()}"


def requires_approval(network: str) -> bool:
    return network == PRODUCTION_NETWORK


def assert_execution_confirmed(
    run_id: str,
    network: str,
    intent: Intent,
    confirm_mainnet: Optional[bool],
    provided_token: Optional[str],
) -> Optional[bool]:
    """
    Gate an execute call

    Args:
        run_id: Run identifier
        network: Target network
        intent: Resolved intent about to be executed
        confirm_mainnet: Caller's explicit confirmation flag
        provided_token: Confirm token supplied by the caller

    Returns:
        True when the token matched, None when no gate applies
    """
    if not requires_approval(network):
        return None
    expected = create_confirm_token(run_id, network, intent)
    if confirm_mainnet is not True:
        raise AuthorizationError(
            f"Execution on {network} requires confirmMainnet=true and confirmToken={expected}"
        )
    provided = (provided_token or "").strip()
    if provided != expected:
        logger.warning(f"Confirm token mismatch for run {run_id}")
        raise AuthorizationError(
            f"confirmToken mismatch for run {run_id}: expected={expected} provided={provided or '<missing>'}"
        )
    return True
