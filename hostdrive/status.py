"""Status report prefixed to every response handed back to the host."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from hostdrive.state import SessionState

SEPARATOR = "--------"
BANNER = "hostdrive session engine"

SUCCESS_TRUNCATE = 140
FAILURE_TRUNCATE = 640
ELLIPSIS = "... (truncated)"

QUEUE_WARNING_THRESHOLD = 4


def truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + ELLIPSIS


def describe_last_request(state: SessionState) -> str:
    outcome = state.facts.last_request_result
    if outcome is None:
        return "Last request: none yet."
    if outcome.ok:
        return f"Last request succeeded: {truncate(outcome.text, SUCCESS_TRUNCATE)}"
    return f"Last request failed: {truncate(outcome.text, FAILURE_TRUNCATE)}"


def compose_report(state: SessionState) -> str:
    """Summarize the agent's last words and the health of the host channel."""
    lines: list[str] = []
    last = state.agent.last_invocation
    if last is not None and last.decision.status_text:
        lines.append(last.decision.status_text)
    lines.append(SEPARATOR)
    lines.append(BANNER)
    lines.append(describe_last_request(state))
    queue_length = len(state.agent.queue)
    if queue_length >= QUEUE_WARNING_THRESHOLD:
        lines.append(f"Warning: {queue_length} effects are waiting in the queue.")
    return "\n".join(lines)


def render_status(activity: str, state: SessionState) -> str:
    """Full status text: current activity line followed by the report."""
    return f"Current activity: {activity}\n{compose_report(state)}"
