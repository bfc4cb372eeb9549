"""Helpers for turning vendor prose into structured payloads."""

import json

from messageflow.errors import ProviderError


def extract_json(text: str) -> str:
    """Return the span from the first '{' or '[' to the last '}' or ']'.

    Vendors often wrap their JSON in prose or code fences. This is not a
    parser: when no opener/closer pair is found in order, the text is
    returned unchanged and left for json.loads to reject.
    """
    openers = [i for i in (text.find("{"), text.find("[")) if i != -1]
    start = min(openers) if openers else -1
    end = max(text.rfind("}"), text.rfind("]"))
    if start == -1 or end == -1 or end <= start:
        return text
    return text[start:end + 1]


def parse_json_payload(text: str):
    """Extract and decode a JSON payload, raising ProviderError on failure."""
    content = extract_json(text)
    try:
        return json.loads(content)
    except json.JSONDecodeError as e:
        raise ProviderError(status_code=502, detail=f"Malformed provider response: {e}")


def parse_actions(payload) -> list[str]:
    """Accept either a bare array or an {"actions": [...]} object."""
    if isinstance(payload, dict):
        payload = payload.get("actions", [])
    if not isinstance(payload, list):
        raise ProviderError(status_code=502, detail="Expected a list of actions")
    return [str(item) for item in payload]


def join_lines(messages: list[str]) -> str:
    return "\n".join(messages)


def running_average(current: float, new: float, count: int) -> float:
    """Fold a new sample into a mean over `count` samples."""
    if count <= 1:
        return new
    return ((current * (count - 1)) + new) / count
