"""Tests for sentinel JSON extraction."""

import pytest

from tradedesk.agent.draft_extractor import (
    MAX_TITLE_LEN,
    extract_journal_draft,
    extract_marked_json,
    extract_trade_plan,
)
from tradedesk.core.schema import (
    AgentConfig,
    ChatStyleProvider,
)

AGENT = AgentConfig(id="quant_bot", display_name="QuantBot", provider=ChatStyleProvider())


def test_no_marker_returns_text_unchanged() -> None:
    """Without the marker the text is returned as-is and no draft is produced."""

    text = "US30 looks heavy into the open.\n"
    assert extract_journal_draft(text, AGENT) == (text, None)


def test_extracts_draft_and_cleans_text() -> None:
    """Text before the marker is kept, the draft is built from the object."""

    text = (
        "Bias: long above 39,000.\n\n"
        'JOURNAL_JSON: {"title": "US30 long", "summary": "Buy the dip", '
        '"sentiment": "Bullish", "tags": ["US30", 1]}'
    )
    clean, draft = extract_journal_draft(text, AGENT)
    assert clean == "Bias: long above 39,000."
    assert draft is not None
    assert draft.agent_id == "quant_bot"
    assert draft.agent_name == "QuantBot"
    assert draft.sentiment == "bullish"
    assert draft.tags == ["US30", "1"]


def test_braces_inside_strings_and_nesting() -> None:
    """Nested objects and braces inside JSON strings do not end the object early."""

    text = 'x JOURNAL_JSON: {"title": "a } b {", "summary": "s", "meta": {"k": {"z": 1}}} trailing'
    clean, obj = extract_marked_json(text, "JOURNAL_JSON:")
    assert clean == "x"
    assert obj == {"title": "a } b {", "summary": "s", "meta": {"k": {"z": 1}}}


def test_escaped_quote_in_string() -> None:
    """An escaped quote keeps the scanner inside the string."""

    text = r'JOURNAL_JSON: {"title": "say \"}\" twice", "summary": ""}'
    _, obj = extract_marked_json(text, "JOURNAL_JSON:")
    assert obj == {"title": 'say "}" twice', "summary": ""}


def test_invalid_json_returns_original() -> None:
    """Unbalanced or invalid JSON yields no draft and the original text."""

    text = 'answer\nJOURNAL_JSON: {"title": "oops"'
    assert extract_journal_draft(text, AGENT) == (text, None)
    text = "answer\nJOURNAL_JSON: {title: no quotes}"
    assert extract_journal_draft(text, AGENT) == (text, None)


def test_extraction_is_idempotent_on_clean_text() -> None:
    """Extracting again from the clean text finds nothing and leaves it alone."""

    clean, _ = extract_journal_draft('ok\nJOURNAL_JSON: {"title": "t"}', AGENT)
    assert extract_journal_draft(clean, AGENT) == (clean, None)


def test_fields_are_coerced() -> None:
    """Long titles are truncated, unknown sentiments fall back to neutral."""

    text = 'JOURNAL_JSON: {"title": "' + "x" * 500 + '", "sentiment": "euphoric", "tags": "solo"}'
    _, draft = extract_journal_draft(text, AGENT)
    assert len(draft.title) == MAX_TITLE_LEN
    assert draft.sentiment == "neutral"
    assert draft.tags == []


def test_trade_plan_extraction() -> None:
    """The moderator's plan line parses into a TradePlan."""

    text = (
        "Go long on the pullback.\n"
        'TRADE_PLAN_JSON: {"symbol": "US30", "direction": "LONG", "entry": 39000, '
        '"stop_loss": 38950, "take_profits": [39150], "risk_percent": 0.5}'
    )
    clean, plan = extract_trade_plan(text)
    assert clean == "Go long on the pullback."
    assert plan.direction == "long"
    assert plan.take_profits == [39150]


def test_trade_plan_failing_validation_is_ignored() -> None:
    """A plan object that does not validate counts as no plan."""

    text = 'TRADE_PLAN_JSON: {"symbol": "US30", "direction": "sideways"}'
    assert extract_trade_plan(text) == (text, None)


@pytest.mark.parametrize(
    "payload",
    [
        "{}",
        '{"note": "stand aside"}',
        '{"symbol": "US30", "risk_percent": 0.5}',
        '{"symbol": "", "direction": "short", "risk_percent": 0.5}',
    ],
)
def test_trade_plan_without_core_fields_is_no_plan(payload: str) -> None:
    """Symbol, direction and risk must be stated; defaults never make up a plan."""

    text = "NO TRADE.\nTRADE_PLAN_JSON: " + payload
    assert extract_trade_plan(text) == (text, None)


def test_trade_plan_accepts_camel_case_keys() -> None:
    """camelCase field names map onto the plan fields."""

    text = (
        'TRADE_PLAN_JSON: {"symbol": "US30", "direction": "long", "stopLoss": 38950, '
        '"takeProfits": [39100, 39200], "riskPercent": 0.5}'
    )
    _, plan = extract_trade_plan(text)
    assert plan.stop_loss == 38950
    assert plan.take_profits == [39100, 39200]
    assert plan.risk_percent == 0.5
