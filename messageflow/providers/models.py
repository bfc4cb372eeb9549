"""Provider contract value types."""

from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone


def _known_fields(cls, data: dict) -> dict:
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in names}


@dataclass
class ProviderConfig:
    id: int
    provider_name: str  # "openai" | "claude" | "cohere" | "bedrock" | ...
    model_name: str
    api_key: str = ""  # plaintext only after decryption, never persisted as-is
    display_name: str = ""
    base_url: str = ""
    azure_endpoint: str = ""
    azure_deployment: str = ""
    azure_api_version: str = ""
    temperature: float = 0.2
    max_tokens: int = 1024
    cost_per_1k_input: float = 0.0
    cost_per_1k_output: float = 0.0
    max_requests_per_minute: int = 0  # 0 = unlimited
    max_requests_per_day: int = 0
    monthly_budget: float = 0.0
    is_active: bool = True
    is_default: bool = False
    health_status: str = "unknown"
    last_health_check: str = ""  # ISO timestamp of the latest health check

    @property
    def cache_key(self) -> str:
        """Identity used by the factory to share one instance per endpoint."""
        return ":".join([
            self.provider_name,
            self.model_name,
            self.base_url,
            self.azure_endpoint,
            self.azure_deployment,
        ])

    @classmethod
    def from_dict(cls, data: dict) -> "ProviderConfig":
        return cls(**_known_fields(cls, data))

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class AnalysisResult:
    is_important: bool = False
    priority: str = "low"  # high | medium | low
    reason: str = ""
    has_action: bool = False
    action_required: str = ""
    sentiment: str = "neutral"  # positive | neutral | negative
    sentiment_score: float = 0.0  # -1 to 1
    topics: list[str] = field(default_factory=list)
    confidence: float = 0.0

    @classmethod
    def from_dict(cls, data: dict) -> "AnalysisResult":
        return cls(**_known_fields(cls, data))

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class SummaryResult:
    summary: str = ""
    key_points: list[str] = field(default_factory=list)
    action_items: list[str] = field(default_factory=list)
    sentiment: str = "neutral"
    topics: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "SummaryResult":
        return cls(**_known_fields(cls, data))

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class HealthCheckResult:
    status: str  # ok | error | slow
    latency_ms: float = 0.0
    estimated_cost: float = 0.0
    error_message: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_dict(cls, data: dict) -> "HealthCheckResult":
        data = _known_fields(cls, data)
        if isinstance(data.get("timestamp"), str):
            data["timestamp"] = datetime.fromisoformat(data["timestamp"])
        return cls(**data)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


@dataclass
class UsageStats:
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    total_tokens: int = 0
    total_cost: float = 0.0
    average_latency_ms: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class UsageRecord:
    """Accounting for one provider call.

    Costs are derived from the raw token counts on demand so that a
    pricing change never leaves a stale figure behind.
    """

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    latency_ms: float = 0.0
    success: bool = True
    error_message: str = ""
    feature: str = ""

    def input_cost(self, cost_per_1k: float) -> float:
        return (self.input_tokens / 1000.0) * cost_per_1k

    def output_cost(self, cost_per_1k: float) -> float:
        return (self.output_tokens / 1000.0) * cost_per_1k

    def total_cost(self, cost_in: float, cost_out: float) -> float:
        return self.input_cost(cost_in) + self.output_cost(cost_out)
