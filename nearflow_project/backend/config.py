"""
Environment-driven settings for the NearFlow backend
"""
import os
import json
import logging
from typing import Dict, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class WorkflowSettings(BaseModel):
    """Runtime settings for the workflow engine and its collaborators"""
    default_network: str = "testnet"
    max_slippage_bps: int = Field(default=1000, ge=0, le=10000)
    fanout_workers: int = Field(default=4, ge=1)
    pool_page_size: int = Field(default=200, ge=1)
    max_pool_candidates: int = Field(default=5, ge=1)
    intents_api_base_url: str = "https://1click.chaindefuser.com"
    intents_jwt: Optional[str] = None
    status_poll_interval_seconds: float = Field(default=5.0, gt=0)
    status_poll_timeout_seconds: float = Field(default=180.0, gt=0)
    token_decimals: Dict[str, int] = Field(default_factory=dict)


def _parse_token_decimals(raw: Optional[str]) -> Dict[str, int]:
    if not raw or not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except ValueError as e:
        raise ValueError(f"NEARFLOW_TOKEN_DECIMALS must be a JSON object: {e}")
    if not isinstance(parsed, dict):
        raise ValueError("NEARFLOW_TOKEN_DECIMALS must be a JSON object of token id -> decimals")
    return {str(token): int(decimals) for token, decimals in parsed.items()}


def load_settings(env_file: Optional[str] = None) -> WorkflowSettings:
    """
    Load settings from the environment (and a .env file when present)

    Args:
        env_file: Optional explicit .env path

    Returns:
        WorkflowSettings
    """
    load_dotenv(env_file)

    values = {
        "default_network": os.getenv("NEARFLOW_DEFAULT_NETWORK"),
        "max_slippage_bps": os.getenv("NEARFLOW_MAX_SLIPPAGE_BPS"),
        "fanout_workers": os.getenv("NEARFLOW_FANOUT_WORKERS"),
        "pool_page_size": os.getenv("NEARFLOW_POOL_PAGE_SIZE"),
        "max_pool_candidates": os.getenv("NEARFLOW_MAX_POOL_CANDIDATES"),
        "intents_api_base_url": os.getenv("NEAR_INTENTS_API_BASE_URL"),
        "intents_jwt": os.getenv("NEAR_INTENTS_JWT"),
        "status_poll_interval_seconds": os.getenv("NEARFLOW_STATUS_POLL_INTERVAL_SECONDS"),
        "status_poll_timeout_seconds": os.getenv("NEARFLOW_STATUS_POLL_TIMEOUT_SECONDS"),
    }
    values = {key: value.strip() for key, value in values.items() if value and value.strip()}
    if "default_network" in values:
        values["default_network"] = values["default_network"].lower()

    settings = WorkflowSettings(
        **values,
        token_decimals=_parse_token_decimals(os.getenv("NEARFLOW_TOKEN_DECIMALS")),
    )
    logger.info(
        f"Loaded settings: network={settings.default_network}, "
        f"max_slippage_bps={settings.max_slippage_bps}, workers={settings.fanout_workers}"
    )
    return settings
