"""
NEAR Intents 1Click API Client
Cross-chain swap quotes, deposit submission and settlement status
"""
import os
import json
import logging
import aiohttp
from typing import Dict, Optional, Any
from datetime import datetime, timedelta, timezone

logger = logging.getLogger(__name__)

DEFAULT_API_BASE_URL = "https://1click.chaindefuser.com"
DEFAULT_DEADLINE_MINUTES = 20


class IntentsApiError(Exception):
    """Non-2xx response from the 1Click API"""

    def __init__(self, status: int, message: str, path: str):
        super().__init__(f"NEAR Intents API {path} failed ({status}): {message}")
        self.status = status
        self.message = message
        self.path = path


class NearIntentsClient:
    """
    Client for the NEAR Intents 1Click API
    Quotes cross-chain swaps and tracks their settlement by deposit address
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        jwt: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout_seconds: float = 15.0,
    ):
        selected = (base_url or os.getenv("NEAR_INTENTS_API_BASE_URL") or DEFAULT_API_BASE_URL).strip()
        self.base_url = selected.rstrip("/")
        self.jwt = (jwt or os.getenv("NEAR_INTENTS_JWT") or "").strip() or None
        self.api_key = (api_key or os.getenv("NEAR_INTENTS_API_KEY") or "").strip() or None
        self.timeout_seconds = timeout_seconds
        self.session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session"""
        if self.session is None or self.session.closed:
            headers = {"accept": "application/json"}
            if self.jwt:
                headers["Authorization"] = f"Bearer {self.jwt}"
            if self.api_key:
                headers["x-api-key"] = self.api_key

            self.session = aiohttp.ClientSession(
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds)
            )
        return self.session

    async def close(self):
        """Close the session"""
        if self.session and not self.session.closed:
            await self.session.close()

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, str]] = None,
        body: Optional[Dict[str, Any]] = None,
    ) -> Any:
        session = await self._get_session()
        url = f"{self.base_url}{path}"
        query = {key: value.strip() for key, value in (params or {}).items() if value and value.strip()}

        async with session.request(method, url, params=query or None, json=body) as response:
            text = await response.text()
            payload: Any = None
            if text.strip():
                try:
                    payload = json.loads(text)
                except ValueError:
                    payload = text
            if response.status < 200 or response.status >= 300:
                message = self._error_message(payload, response.reason or "request failed")
                logger.warning(f"NEAR Intents {method} {path} returned {response.status}: {message}")
                raise IntentsApiError(response.status, message, path)
            return payload

    @staticmethod
    def _error_message(payload: Any, fallback: str) -> str:
        if isinstance(payload, dict):
            for key in ("message", "error"):
                value = payload.get(key)
                if isinstance(value, str) and value.strip():
                    return value.strip()
        if isinstance(payload, str) and payload.strip():
            return payload.strip()
        return fallback

    async def get_quote(
        self,
        origin_asset: str,
        destination_asset: str,
        amount_raw: str,
        recipient: str,
        refund_to: str,
        slippage_bps: int = 100,
        dry: bool = True,
        deadline: Optional[datetime] = None,
        quote_waiting_time_ms: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Request an exact-input cross-chain quote

        Args:
            origin_asset: Asset id the user deposits (e.g. nep141:wrap.near)
            destination_asset: Asset id delivered to the recipient
            amount_raw: Input amount in smallest units
            recipient: Destination-chain recipient address
            refund_to: Origin-chain refund address
            slippage_bps: Slippage tolerance in basis points
            dry: True for an indicative quote without a deposit address
            deadline: Quote deadline, 20 minutes from now by default
            quote_waiting_time_ms: How long solvers may take to answer

        Returns:
            Quote response with quote.depositAddress, amountOut, minAmountOut
        """
        deadline = deadline or datetime.now(timezone.utc) + timedelta(minutes=DEFAULT_DEADLINE_MINUTES)
        body: Dict[str, Any] = {
            "dry": dry,
            "swapType": "EXACT_INPUT",
            "slippageTolerance": slippage_bps,
            "originAsset": origin_asset,
            "depositType": "ORIGIN_CHAIN",
            "destinationAsset": destination_asset,
            "amount": amount_raw,
            "refundTo": refund_to,
            "refundType": "ORIGIN_CHAIN",
            "recipient": recipient,
            "recipientType": "DESTINATION_CHAIN",
            "deadline": deadline.astimezone(timezone.utc).isoformat().replace("+00:00", "Z"),
            "depositMode": "SIMPLE",
        }
        if quote_waiting_time_ms is not None:
            body["quoteWaitingTimeMs"] = quote_waiting_time_ms
        return await self._request("POST", "/v0/quote", body=body)

    async def get_status(
        self,
        deposit_address: Optional[str] = None,
        correlation_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Get settlement status by deposit address or correlation id

        Returns:
            Status response; status is one of PENDING_DEPOSIT, KNOWN_DEPOSIT_TX,
            PROCESSING, SUCCESS, INCOMPLETE_DEPOSIT, REFUNDED, FAILED
        """
        if not (deposit_address or correlation_id):
            raise ValueError("depositAddress or correlationId is required")
        params = {"depositAddress": deposit_address or "", "correlationId": correlation_id or ""}
        return await self._request("GET", "/v0/status", params=params)

    async def submit_deposit(
        self,
        tx_hash: str,
        deposit_address: str,
        near_sender_account: Optional[str] = None,
        memo: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Notify the API of an on-chain deposit to speed up settlement"""
        body: Dict[str, Any] = {"txHash": tx_hash.strip(), "depositAddress": deposit_address.strip()}
        if memo:
            body["memo"] = memo
        if near_sender_account:
            body["nearSenderAccount"] = near_sender_account
        return await self._request("POST", "/v0/deposit/submit", body=body)
