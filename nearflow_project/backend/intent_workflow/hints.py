"""
Best-effort free-text hint extraction

Turns text such as "swap 0.1 SOL to USDC slippageBps=50" into a sparse
IntentHints record. Nothing here validates; the normalizer does that.
"""
import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from web3 import Web3

from .models import IntentHints, IntentType, RunMode

logger = logging.getLogger(__name__)

AMOUNT = r"(\d+(?:\.\d+)?)"
TOKEN = r"([A-Za-z][\w.:-]*)"
ACCOUNT = r"@?([a-z0-9_-]+(?:\.[a-z0-9_-]+)+|[0-9a-f]{64})"
NAMED_ACCOUNT = r"@?([a-z0-9_-]+(?:\.[a-z0-9_-]+)*\.(?:near|testnet)|[0-9a-f]{64})\b"
ADDRESS = r"([^\s,;]+)"
FLAGS = re.IGNORECASE

# verbs
SWAP_VERB = re.compile(r"\b(swap|exchange|convert|trade|bridge)\b", FLAGS)
TRANSFER_VERB = re.compile(r"\b(send|transfer|pay)\b", FLAGS)
WITHDRAW_VERB = re.compile(r"\bwithdraw\w*\b", FLAGS)
UNSTAKE_VERB = re.compile(r"\bunstak\w*\b", FLAGS)
STAKE_VERB = re.compile(r"\b(stake|delegate)\b", FLAGS)
STAKE_CONTEXT = re.compile(r"\b(stak\w*|validator)\b", FLAGS)
LEND_VERB = re.compile(r"\b(lend|supply)\b", FLAGS)
ADD_LIQUIDITY = re.compile(r"\b(add|provide|deposit)\b.*?\bliquidity\b|\badd\s*lp\b", FLAGS)
REMOVE_LIQUIDITY = re.compile(r"\b(remove|withdraw|pull|exit)\b.*?\b(liquidity|lp)\b", FLAGS)
CROSS_CHAIN = re.compile(r"\b(cross[- ]?chain|bridge|1click|near intents|recipient)\b|\bnep\d+:", FLAGS)
WITHDRAW_TOKEN = re.compile(r"\bwithdraw\s+(?:all\s+)?(?:(?:of\s+)?(?:my|the)\s+)?([A-Za-z][\w.:-]*)", FLAGS)

# amounts
SWAP_PAIR = re.compile(AMOUNT + r"\s*" + TOKEN + r"(?:\s*(?:->|→)\s*|\s+(?:to|for|into)\s+)" + TOKEN, FLAGS)
TOKEN_ID_PAIR = re.compile(ACCOUNT + r"\s*(?:->|→|\bto\b)\s*" + ACCOUNT, FLAGS)
NATIVE_AMOUNT = re.compile(AMOUNT + r"\s*near\b", FLAGS)
UI_AMOUNT = re.compile(AMOUNT + r"\s*" + TOKEN, FLAGS)
RAW_AMOUNT = re.compile(r"\b(?:amount\s*raw|raw)\s*[=:]?\s*(\d+)\b", FLAGS)
LIQUIDITY_PAIR = re.compile(TOKEN + r"\s*/\s*" + TOKEN, FLAGS)
LIQUIDITY_AMOUNTS = re.compile(AMOUNT + r"\s*" + TOKEN + r"\s+(?:and|\+|&)\s+" + AMOUNT + r"\s*" + TOKEN, FLAGS)

# addresses
DESTINATION = re.compile(r"\bto\s+" + NAMED_ACCOUNT, FLAGS)
SOURCE = re.compile(r"\bfrom\s+(?:account\s+)?" + NAMED_ACCOUNT, FLAGS)
SEPARATOR = r"(?:\s*[=:]\s*|\s+)"
REFUND = re.compile(r"\brefund(?:\s*to)?" + SEPARATOR + ADDRESS, FLAGS)
DEPOSIT_ADDRESS = re.compile(r"\bdeposit\s*address" + SEPARATOR + ADDRESS, FLAGS)
RECIPIENT = re.compile(r"\brecipient" + SEPARATOR + ADDRESS, FLAGS)
EVM_ADDRESS = re.compile(r"^0x[0-9a-fA-F]{40}$")

# markers
POOL = re.compile(r"\bpool\s*(?:id)?\s*[#:=]?\s*#?(\d+)\b", FLAGS)
CANDIDATE = re.compile(r"\b(?:pool\s*)?(?:candidate|option)\s*(?:index)?\s*[#:=]?\s*#?(\d+)\b", FLAGS)
SLIPPAGE = re.compile(r"\bslippage(\s*bps)?\s*(?:of\s+)?[=:]?\s*" + AMOUNT + r"\s*(%|bps)?", FLAGS)
SLIPPAGE_SUFFIX = re.compile(AMOUNT + r"\s*%\s*slippage\b", FLAGS)
SHARES_RAW = re.compile(r"\bshares?\s*(?:raw)?\s*[=:]?\s*(\d+)\b|\b(\d+)\s*shares\b", FLAGS)
SHARE_BPS = re.compile(r"\bshare\s*bps\s*[=:]?\s*(\d+)\b", FLAGS)
SHARE_PERCENT = re.compile(
    r"\bshare\s*percent\s*[=:]?\s*" + AMOUNT
    + r"|" + AMOUNT + r"\s*%\s*(?:of\s+)?(?:(?:my|the|our)\s+)?(?:shares|liquidity|position|lp)\b",
    FLAGS,
)
VALIDATOR = re.compile(r"\b(?:validator|pool\s*account)\s*[=:]?\s*" + ACCOUNT, FLAGS)
VALIDATOR_ACCOUNT = re.compile(r"\b([a-z0-9_-]+\.(?:poolv1|pool)\.(?:near|testnet|f863973\.m0))\b", FLAGS)
COLLATERAL = re.compile(r"\bcollateral\b", FLAGS)
CONTRACT = re.compile(r"\b(?:contract|token)\s*(?:id)?\s*[=:]?\s*" + ACCOUNT, FLAGS)

# run modes, in priority order
RUN_MODES = (
    (RunMode.SIMULATE, re.compile(r"\b(simulat\w*|dry[- ]?run|preview)\b", FLAGS)),
    (RunMode.ANALYSIS, re.compile(r"\b(analy[sz]\w*)\b", FLAGS)),
    (RunMode.COMPOSE, re.compile(r"\b(compose|build\s+unsigned|unsigned)\b", FLAGS)),
    (RunMode.EXECUTE, re.compile(r"\b(execute|submit|broadcast)\b", FLAGS)),
)

STOP_WORDS = {
    "to", "for", "into", "of", "and", "from", "on", "in", "at", "with", "or",
    "shares", "share", "bps", "percent", "slippage", "pool", "raw",
    "all", "my", "the", "liquidity", "lp",
}


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    cleaned = value.strip().rstrip(".,;:!?)").lstrip("@")
    return cleaned or None


def _address(value: Optional[str]) -> Optional[str]:
    cleaned = _clean(value)
    if cleaned and EVM_ADDRESS.match(cleaned):
        return Web3.to_checksum_address(cleaned)
    return cleaned


def _percent_to_bps(value: str) -> Optional[int]:
    try:
        return int(Decimal(value) * 100)
    except InvalidOperation:
        return None


def _is_token(value: Optional[str]) -> bool:
    return bool(value) and value.lower() not in STOP_WORDS


def detect_run_mode(text: Optional[str]) -> Optional[RunMode]:
    """First run mode named in the text, by fixed priority"""
    if not text:
        return None
    for mode, pattern in RUN_MODES:
        if pattern.search(text):
            return mode
    return None


def extract_intent_hints(text: Optional[str]) -> IntentHints:
    """
    Extract a sparse hint record from free text

    Args:
        text: Free-form description of the operation, may be None

    Returns:
        IntentHints; empty when nothing was recognised or parsing failed
    """
    if not text or not text.strip():
        return IntentHints()
    try:
        return IntentHints(**_extract(text))
    except Exception as e:
        logger.debug(f"Hint extraction failed for {text!r}: {e}")
        return IntentHints()


def _extract(text: str) -> Dict[str, Any]:
    fields: Dict[str, Any] = {}

    verbs = {
        "swap": bool(SWAP_VERB.search(text)),
        "transfer": bool(TRANSFER_VERB.search(text)),
        "withdraw": bool(WITHDRAW_VERB.search(text)),
        "unstake": bool(UNSTAKE_VERB.search(text)),
        "stake": bool(STAKE_VERB.search(text)),
        "stake_context": bool(STAKE_CONTEXT.search(text)),
        "lend": bool(LEND_VERB.search(text)),
        "add_liquidity": bool(ADD_LIQUIDITY.search(text)),
        "remove_liquidity": bool(REMOVE_LIQUIDITY.search(text)),
        "cross_chain": bool(CROSS_CHAIN.search(text)),
    }
    liquidity = verbs["add_liquidity"] or verbs["remove_liquidity"]

    # amount + token pairs
    if verbs["swap"]:
        match = SWAP_PAIR.search(text)
        if match and _is_token(match.group(2)) and _is_token(match.group(3)):
            fields["amount"] = match.group(1)
            fields["token_in_id"] = _clean(match.group(2))
            fields["token_out_id"] = _clean(match.group(3))
        else:
            match = TOKEN_ID_PAIR.search(text)
            if match:
                fields["token_in_id"] = _clean(match.group(1))
                fields["token_out_id"] = _clean(match.group(2))

    match = NATIVE_AMOUNT.search(text)
    if match:
        fields["amount_near"] = match.group(1)

    for match in UI_AMOUNT.finditer(text):
        token = _clean(match.group(2))
        if _is_token(token):
            fields.setdefault("amount", match.group(1))
            fields.setdefault("amount_token", token)
            break

    match = RAW_AMOUNT.search(text)
    if match:
        fields["amount_raw"] = match.group(1)

    if liquidity:
        match = LIQUIDITY_AMOUNTS.search(text)
        if match and _is_token(match.group(2)) and _is_token(match.group(4)):
            fields["amount_a"] = match.group(1)
            fields["token_a_id"] = _clean(match.group(2))
            fields["amount_b"] = match.group(3)
            fields["token_b_id"] = _clean(match.group(4))
        match = LIQUIDITY_PAIR.search(text)
        if match:
            fields.setdefault("token_a_id", _clean(match.group(1)))
            fields.setdefault("token_b_id", _clean(match.group(2)))

    # addresses
    match = DESTINATION.search(text)
    if match:
        fields["to_account_id"] = _clean(match.group(1))
    match = SOURCE.search(text)
    if match:
        fields["from_account_id"] = _clean(match.group(1))
    match = REFUND.search(text)
    if match:
        fields["refund_to"] = _address(match.group(1))
    match = DEPOSIT_ADDRESS.search(text)
    if match:
        fields["deposit_address"] = _address(match.group(1))
    match = RECIPIENT.search(text)
    if match:
        fields["recipient"] = _address(match.group(1))

    # markers
    match = CANDIDATE.search(text)
    if match:
        fields["pool_candidate_index"] = int(match.group(1))
    else:
        match = POOL.search(text)
        if match:
            fields["pool_id"] = int(match.group(1))

    match = SLIPPAGE.search(text)
    if match:
        named_bps, value, unit = match.group(1), match.group(2), (match.group(3) or "").lower()
        if unit == "%" or (not named_bps and unit != "bps" and "." in value):
            fields["slippage_bps"] = _percent_to_bps(value)
        else:
            fields["slippage_bps"] = int(Decimal(value))
    else:
        match = SLIPPAGE_SUFFIX.search(text)
        if match:
            fields["slippage_bps"] = _percent_to_bps(match.group(1))

    match = SHARE_BPS.search(text)
    if match:
        fields["share_bps"] = int(match.group(1))
    match = SHARE_PERCENT.search(text)
    if match:
        fields["share_percent"] = match.group(1) or match.group(2)
    match = SHARES_RAW.search(text)
    if match:
        fields["shares_raw"] = match.group(1) or match.group(2)

    match = VALIDATOR.search(text) or VALIDATOR_ACCOUNT.search(text)
    if match:
        fields["validator_id"] = _clean(match.group(1))
        verbs["stake_context"] = True

    if COLLATERAL.search(text):
        fields["as_collateral"] = True

    match = CONTRACT.search(text)
    if match:
        fields["ft_contract_id"] = _clean(match.group(1))

    intent_type = _classify(verbs, fields)
    if intent_type is not None:
        fields["intent_type"] = intent_type
        _refine(intent_type, fields, text)

    run_mode = detect_run_mode(text)
    if run_mode is not None:
        fields["run_mode"] = run_mode

    return {key: value for key, value in fields.items() if value is not None}


def _classify(verbs: Dict[str, bool], fields: Dict[str, Any]) -> Optional[IntentType]:
    """Fixed priority ladder; the first matching rule wins"""
    if verbs["remove_liquidity"]:
        return IntentType.LIQUIDITY_REMOVE
    if verbs["add_liquidity"]:
        return IntentType.LIQUIDITY_ADD
    if verbs["withdraw"] and not verbs["stake_context"]:
        return IntentType.EXCHANGE_WITHDRAW
    if (verbs["withdraw"] or verbs["unstake"]) and verbs["stake_context"]:
        return IntentType.STAKE_WITHDRAW
    if verbs["stake"]:
        return IntentType.STAKE
    if verbs["lend"]:
        return IntentType.LEND_SUPPLY
    if verbs["swap"] and verbs["cross_chain"]:
        return IntentType.SWAP_CROSS_CHAIN
    if verbs["swap"]:
        return IntentType.SWAP
    if verbs["transfer"]:
        token = fields.get("amount_token")
        if fields.get("ft_contract_id") or (token and token.upper() != "NEAR"):
            return IntentType.TRANSFER_FT
        return IntentType.TRANSFER_NATIVE
    return None


def _refine(intent_type: IntentType, fields: Dict[str, Any], text: str):
    """Promote the generic amount only where the detected verb gives it a meaning"""
    amount, token = fields.get("amount"), fields.get("amount_token")
    if intent_type == IntentType.LIQUIDITY_ADD and amount and "amount_a" not in fields:
        fields["amount_a"] = amount
        fields.setdefault("token_a_id", token)
    elif intent_type == IntentType.LEND_SUPPLY and token:
        fields.setdefault("token_id", token)
    elif intent_type == IntentType.EXCHANGE_WITHDRAW:
        match = WITHDRAW_TOKEN.search(text)
        if token:
            fields.setdefault("token_id", token)
        elif match and _is_token(_clean(match.group(1))):
            fields.setdefault("token_id", _clean(match.group(1)))
    elif intent_type == IntentType.TRANSFER_FT and token and not fields.get("ft_contract_id"):
        fields["ft_contract_id"] = token
    elif intent_type == IntentType.SWAP_CROSS_CHAIN and not fields.get("recipient"):
        if fields.get("to_account_id"):
            fields["recipient"] = fields["to_account_id"]
