"""CLI client for the tradedesk API: ask the squad a question, read every seat's answer."""

from __future__ import annotations

import logging
import time
from typing import (
    Any,
    Dict,
    Tuple,
    cast,
)

import httpx

from tradedesk.common import (
    AnsiColors,
    colored_print,
    sentiment_color,
)
from tradedesk.config import settings

logger = logging.getLogger(__name__)

# A round waits on several model calls plus the moderator.
REQUEST_TIMEOUT = settings.AGENT_TURN_TIMEOUT * 2 + 10


# ---------------------------------------------------------------------------
# CLI Client
# ---------------------------------------------------------------------------
def get_user_message() -> Tuple[str, bool]:
    """
    Get a message from the user via standard input.

    Returns:
        Tuple of (user_input, success_flag)
        The success_flag is False if input couldn't be read (e.g., Ctrl+C)
    """
    import signal  # pylint: disable=import-outside-toplevel

    # Ensure SIGINT breaks out of slow system calls such as read()
    signal.siginterrupt(signal.SIGINT, True)

    try:
        user_input = input().strip()
        return user_input, True
    except (EOFError, KeyboardInterrupt):
        return "", False


def call_api(endpoint: str, data: Dict[str, Any], max_retries: int = 5) -> Dict[str, Any]:
    """POST *data* to the API, retrying with exponential backoff while it is not up yet."""
    api_url = f"http://localhost:{settings.API_PORT}{endpoint}"

    for attempt in range(max_retries):
        try:
            with httpx.Client(timeout=REQUEST_TIMEOUT) as client:
                response = client.post(api_url, json=data)
        except httpx.ConnectError as exc:
            if attempt < max_retries - 1:
                retry_delay = 0.5 * (2**attempt)  # 0.5s, 1s, 2s, 4s...
                logger.info(
                    "API not ready yet, retrying in %.1f seconds (attempt %d/%d)...",
                    retry_delay,
                    attempt + 1,
                    max_retries,
                )
                time.sleep(retry_delay)
                continue
            logger.error("API connection error: %s", exc)
            return {"error": f"Error connecting to API: {exc}"}
        except httpx.HTTPError as exc:
            logger.error("API request error: %s", exc)
            return {"error": f"Error calling API: {exc}"}

        if response.is_error:
            try:
                detail = response.json().get("detail", response.text)
            except ValueError:
                detail = response.text
            logger.error("API returned %d: %s", response.status_code, detail)
            return {"error": f"API error ({response.status_code}): {detail}"}
        return cast(Dict[str, Any], response.json())

    return {"error": f"Failed to connect to API after {max_retries} attempts"}


def print_round(result: Dict[str, Any]) -> None:
    """Render a round-table result: one block per seat, then the synthesis and the verdict."""
    for slot in result.get("per_agent_messages", []):
        header = f"\n[{slot['index'] + 1}] {slot['agent_name']}"
        if slot.get("error"):
            colored_print(header, AnsiColors.RED)
            colored_print(f"  ERROR: {slot['error']}", AnsiColors.RED)
            continue
        colored_print(header, AnsiColors.BLUE)
        for tool in slot.get("tool_results", []):
            color = AnsiColors.GREY if tool.get("error") is None else AnsiColors.RED
            colored_print(f"  [{tool['tool_name']}] {tool.get('error') or 'ok'}", color)
        print(slot.get("text", ""))
        draft = slot.get("draft")
        if draft:
            colored_print(
                f"  📓 {draft['title']} ({draft['sentiment']}) {', '.join(draft.get('tags', []))}",
                sentiment_color(draft.get("sentiment")),
            )

    colored_print("\n=== Synthesis ===", AnsiColors.GREEN)
    print(result.get("final_synthesis", ""))

    plan = result.get("proposed_trade_plan")
    verdict = result.get("risk_verdict")
    if plan:
        colored_print(
            f"\nPlan: {plan['direction'].upper()} {plan['symbol']} @ {plan.get('entry')} "
            f"SL {plan.get('stop_loss')} risk {plan.get('risk_percent')}%",
            AnsiColors.YELLOW,
        )
    if verdict:
        color = AnsiColors.GREEN if verdict["allowed"] else AnsiColors.RED
        colored_print(f"Risk: {'ALLOWED' if verdict['allowed'] else 'BLOCKED'}", color)
        for reason in verdict.get("reasons", []):
            colored_print(f"  - {reason}", AnsiColors.RED)
        for warning in verdict.get("warnings", []):
            colored_print(f"  ! {warning}", AnsiColors.YELLOW)


def run_cli(symbol: str = "US30") -> None:
    """Run the CLI client that communicates with the API."""
    colored_print(
        f"\n📈 tradedesk round-table on {symbol} - type 'exit' or 'quit' (or Ctrl+C) to exit",
        AnsiColors.GREEN,
    )
    while True:
        colored_print("\n🧑 You: ", AnsiColors.BLUE, end="")
        user_msg, ok = get_user_message()
        if not ok:
            break
        if user_msg.lower() in {"exit", "quit"}:
            break
        if not user_msg:
            continue

        response = call_api("/roundtable", {"question": user_msg, "context": {"symbol": symbol}})
        if "error" in response:
            colored_print(response["error"], AnsiColors.RED)
            continue
        print_round(response)


if __name__ == "__main__":
    run_cli()
