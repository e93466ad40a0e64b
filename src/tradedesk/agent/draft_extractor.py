"""
Pull a trailing JSON object out of free-form model output.

Agents are told to end their answer with a single line such as:
    JOURNAL_JSON: {"title": "...", "summary": "...", "sentiment": "bullish", "tags": [...]}
The object is located by brace depth (braces inside JSON strings do not count), so summaries that
contain literal braces still parse.  Extraction is fallible by contract: on any failure the caller
gets the original text back untouched and no object.
"""

import json
import logging
from typing import (
    Any,
    Dict,
    Optional,
    Tuple,
)

from pydantic import ValidationError

from tradedesk.core.schema import (
    AgentConfig,
    JournalDraft,
    TradePlan,
)

logger = logging.getLogger(__name__)

JOURNAL_MARKER = "JOURNAL_JSON:"
TRADE_PLAN_MARKER = "TRADE_PLAN_JSON:"

MAX_TITLE_LEN = 140
MAX_SUMMARY_LEN = 2000
SENTIMENTS = ("bullish", "bearish", "neutral", "mixed")
REQUIRED_PLAN_FIELDS = frozenset({"symbol", "direction", "risk_percent"})


class DraftParseError(ValueError):
    """Raised internally when the text after the marker is not a JSON object."""


# ---------------------------------------------------------------------------
# Small helpers
# ---------------------------------------------------------------------------
def _find_matching_brace(s: str, i: int) -> int:
    """Given s[i] == '{', return index just past its matching '}'."""
    depth = 0
    in_string = False
    escaped = False
    while i < len(s):
        ch = s[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i + 1
        i += 1
    raise DraftParseError("unbalanced braces")


def _parse_after_marker(text: str, marker: str) -> Tuple[str, Dict[str, Any]]:
    idx = text.find(marker)
    if idx == -1:
        raise DraftParseError(f"marker {marker!r} not found")
    after = text[idx + len(marker) :]
    start = after.find("{")
    if start == -1:
        raise DraftParseError("no JSON object after marker")
    end = _find_matching_brace(after, start)
    try:
        obj = json.loads(after[start:end])
    except json.JSONDecodeError as exc:
        raise DraftParseError(str(exc)) from exc
    if not isinstance(obj, dict):
        raise DraftParseError("payload is not an object")
    return text[:idx].rstrip(), obj


# ---------------------------------------------------------------------------
# Public entry points
# ---------------------------------------------------------------------------
def extract_marked_json(text: str, marker: str) -> Tuple[str, Optional[Dict[str, Any]]]:
    """
    Split *text* at *marker* and parse the JSON object that follows it.

    Returns
        (clean_text, obj) on success, where clean_text is everything before the marker;
        (text, None) unchanged on any failure.
    """
    if not text:
        return text, None
    try:
        return _parse_after_marker(text, marker)
    except DraftParseError as exc:
        if marker in text:
            logger.warning("Failed to parse %s payload: %s", marker, exc)
        return text, None


def extract_journal_draft(
    text: str, agent: AgentConfig, marker: str = JOURNAL_MARKER
) -> Tuple[str, Optional[JournalDraft]]:
    """Extract a ``JournalDraft`` for *agent*, coercing fields to safe defaults."""
    clean, obj = extract_marked_json(text, marker)
    if obj is None:
        return text, None

    sentiment = str(obj.get("sentiment") or "neutral").lower()
    tags = obj.get("tags")
    draft = JournalDraft(
        agent_id=agent.id,
        agent_name=agent.display_name,
        title=str(obj.get("title") or "")[:MAX_TITLE_LEN],
        summary=str(obj.get("summary") or "")[:MAX_SUMMARY_LEN],
        sentiment=sentiment if sentiment in SENTIMENTS else "neutral",  # type: ignore[arg-type]
        tags=[str(t) for t in tags] if isinstance(tags, list) else [],
    )
    return clean, draft


def extract_trade_plan(text: str, marker: str = TRADE_PLAN_MARKER) -> Tuple[str, Optional[TradePlan]]:
    """
    Extract a ``TradePlan``.

    The payload must name the symbol, the direction and the risk percent itself; defaults are never
    used to fill in a plan.  Anything else, including an object that does not validate, counts as
    no plan.
    """
    clean, obj = extract_marked_json(text, marker)
    if obj is None:
        return text, None
    if "direction" in obj:
        obj["direction"] = str(obj["direction"]).lower()
    try:
        plan = TradePlan.model_validate(obj)
    except ValidationError as exc:
        logger.warning("Trade plan payload failed validation: %s", exc)
        return text, None
    missing = REQUIRED_PLAN_FIELDS - plan.model_fields_set
    if missing or not plan.symbol.strip():
        logger.info("Ignoring %s payload without %s", marker, ", ".join(sorted(missing)) or "symbol")
        return text, None
    return clean, plan
