"""Abstract base for LLM providers.

Vendor adapters implement a single primitive, `_complete`, that sends one
prompt and returns the raw text plus token counts. Everything callers rely
on (timeouts, retries, JSON extraction, usage capture) lives here so that
every vendor behaves the same way.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace

from messageflow.errors import ProviderError
from messageflow.logging.audit import get_audit_logger
from messageflow.providers.models import (
    AnalysisResult,
    HealthCheckResult,
    ProviderConfig,
    SummaryResult,
    UsageRecord,
    UsageStats,
)
from messageflow.providers.parsing import (
    join_lines,
    parse_actions,
    parse_json_payload,
    running_average,
)
from messageflow.providers.retry import Retrier

ANALYZE_PROMPT = (
    "Analyze this chat message. Respond with JSON only, using the keys: "
    "is_important (bool), priority (high|medium|low), reason, has_action (bool), "
    "action_required, sentiment (positive|neutral|negative), "
    "sentiment_score (-1 to 1), topics (list of strings), confidence (0-1).\n\n"
    "Message: "
)
SUMMARIZE_PROMPT = (
    "Summarize this conversation. Respond with JSON only, using the keys: "
    "summary, key_points (list), action_items (list), sentiment, topics (list).\n\n"
    "Messages:\n"
)
ACTIONS_PROMPT = "Extract the action items as a JSON array of strings.\n\nText: "
HEALTH_PROMPT = "Respond with: OK"


@dataclass
class Completion:
    text: str
    input_tokens: int = 0
    output_tokens: int = 0


class LLMProvider(ABC):
    """Base class for LLM provider implementations."""

    name: str = ""
    timeout: float = 30.0  # seconds, covers all retry attempts
    retry_delay: float = 0.4
    health_max_tokens: int = 32
    actions_prompt: str = ACTIONS_PROMPT

    def __init__(self, config: ProviderConfig):
        self.config = config
        self._retrier = Retrier(attempts=3, delay=self.retry_delay)
        self._usage = UsageStats()
        self._last_record = UsageRecord()

    @abstractmethod
    async def _complete(
        self, prompt: str, *, max_tokens: int, temperature: float, json_mode: bool
    ) -> Completion:
        """Send one prompt to the vendor.

        Raises:
            ProviderError: on transport failures or non-2xx responses.
        """
        ...

    async def analyze(self, message: str) -> AnalysisResult:
        completion = await self._call("analyze", ANALYZE_PROMPT + message)
        payload = parse_json_payload(completion.text)
        if not isinstance(payload, dict):
            raise ProviderError(status_code=502, detail="Expected a JSON object")
        return AnalysisResult.from_dict(payload)

    async def summarize(self, messages: list[str]) -> SummaryResult:
        completion = await self._call("summarize", SUMMARIZE_PROMPT + join_lines(messages))
        payload = parse_json_payload(completion.text)
        if not isinstance(payload, dict):
            raise ProviderError(status_code=502, detail="Expected a JSON object")
        return SummaryResult.from_dict(payload)

    async def extract_actions(self, text: str) -> list[str]:
        completion = await self._call("extract_actions", self.actions_prompt + text)
        return parse_actions(parse_json_payload(completion.text))

    async def health_check(self) -> HealthCheckResult:
        """Single un-retried health check. Vendor errors are reported, not raised."""
        start = time.perf_counter()
        try:
            await asyncio.wait_for(
                self._complete(
                    HEALTH_PROMPT,
                    max_tokens=self.health_max_tokens,
                    temperature=0.0,
                    json_mode=False,
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            return HealthCheckResult(
                status="error",
                latency_ms=_elapsed_ms(start),
                error_message=f"{self.name} health check timed out",
            )
        except Exception as e:
            return HealthCheckResult(
                status="error",
                latency_ms=_elapsed_ms(start),
                error_message=str(e),
            )
        return HealthCheckResult(status="ok", latency_ms=_elapsed_ms(start))

    def get_config(self) -> ProviderConfig:
        return self.config

    def get_usage(self) -> UsageStats:
        return replace(self._usage)

    def last_usage_record(self) -> UsageRecord:
        """Usage of the most recent call on this instance.

        Read it right after awaiting a call, with no await in between;
        the instance is shared by every request routed to it.
        """
        return replace(self._last_record)

    async def close(self) -> None:
        """Cleanup resources. Override if provider holds connections."""
        pass

    async def _call(self, feature: str, prompt: str) -> Completion:
        start = time.perf_counter()
        try:
            completion = await asyncio.wait_for(
                self._retrier.run(lambda: self._complete(
                    prompt,
                    max_tokens=self.config.max_tokens,
                    temperature=self.config.temperature,
                    json_mode=True,
                )),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            error = ProviderError(status_code=504, detail=f"{self.name} call timed out")
            self._capture_failure(feature, start, error)
            raise error
        except ProviderError as e:
            self._capture_failure(feature, start, e)
            raise
        except Exception as e:
            error = ProviderError(status_code=502, detail=f"{self.name} error: {e}")
            self._capture_failure(feature, start, error)
            raise error from e

        self._capture_usage(feature, start, completion)
        return completion

    def _capture_usage(self, feature: str, start: float, completion: Completion) -> None:
        latency = _elapsed_ms(start)
        record = UsageRecord(
            input_tokens=completion.input_tokens,
            output_tokens=completion.output_tokens,
            total_tokens=completion.input_tokens + completion.output_tokens,
            latency_ms=latency,
            success=True,
            feature=feature,
        )
        self._last_record = record
        self._usage.total_requests += 1
        self._usage.successful_requests += 1
        self._usage.total_tokens += record.total_tokens
        self._usage.total_cost += record.total_cost(
            self.config.cost_per_1k_input, self.config.cost_per_1k_output
        )
        self._usage.average_latency_ms = running_average(
            self._usage.average_latency_ms, latency, self._usage.successful_requests
        )

    def _capture_failure(self, feature: str, start: float, error: Exception) -> None:
        self._last_record = UsageRecord(
            latency_ms=_elapsed_ms(start),
            success=False,
            error_message=str(error),
            feature=feature,
        )
        self._usage.total_requests += 1
        self._usage.failed_requests += 1
        get_audit_logger().warning(
            "Provider call failed",
            extra={"audit_data": {
                "provider": self.name,
                "provider_id": self.config.id,
                "model": self.config.model_name,
                "feature": feature,
                "error": str(error),
            }},
        )


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)
