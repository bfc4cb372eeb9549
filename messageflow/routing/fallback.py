"""Keyword heuristic used when no vendor can analyze a message.

Pure and deterministic: the same text always yields the same result.
The fixed low confidence marks the result as degraded.
"""

from messageflow.providers.models import AnalysisResult

URGENT_WORDS = ("urgent", "asap", "deadline", "important")
POSITIVE_WORDS = ("happy", "excited", "great", "thanks")
NEGATIVE_WORDS = ("angry", "upset", "frustrated", "issue")

FALLBACK_CONFIDENCE = 0.3


def _contains_any(text: str, words: tuple[str, ...]) -> bool:
    return any(word in text for word in words)


def fallback_analysis(message: str) -> AnalysisResult:
    text = message.lower()

    is_important = _contains_any(text, URGENT_WORDS)
    priority = "high" if is_important else "low"

    # Negative wins when both lists match
    if _contains_any(text, NEGATIVE_WORDS):
        sentiment = "negative"
    elif _contains_any(text, POSITIVE_WORDS):
        sentiment = "positive"
    else:
        sentiment = "neutral"

    if message.count("!") >= 2 and priority != "high":
        is_important = True
        priority = "medium"

    return AnalysisResult(
        is_important=is_important,
        priority=priority,
        reason="keyword fallback",
        has_action=is_important or "?" in message,
        action_required="review",
        sentiment=sentiment,
        sentiment_score=0.0,
        topics=[],
        confidence=FALLBACK_CONFIDENCE,
    )
