"""Redis list queue decoupling bulk analysis from request handling.

Producers LPUSH and consumers RPOP, so each tenant's list drains in
FIFO order. Delivery is at-least-once; nothing is acknowledged.
"""

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone


def queue_key(tenant_id: int) -> str:
    return f"llm:queue:{tenant_id}"


@dataclass
class QueueMessage:
    tenant_id: int
    message_id: int
    content: str
    feature: str = "analyze"
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, raw: str | bytes) -> "QueueMessage":
        """Decode a queued payload. Raises ValueError on malformed input."""
        try:
            data = json.loads(raw)
            return cls(
                tenant_id=int(data["tenant_id"]),
                message_id=int(data["message_id"]),
                content=str(data["content"]),
                feature=data.get("feature", "analyze"),
                created_at=data.get("created_at", ""),
            )
        except (KeyError, TypeError, AttributeError) as e:
            raise ValueError(f"invalid queue message: {e}") from e


class AnalysisQueue:

    def __init__(self, client):
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "AnalysisQueue":
        import redis.asyncio as redis

        return cls(redis.from_url(url))

    async def enqueue(self, message: QueueMessage) -> None:
        await self._client.lpush(queue_key(message.tenant_id), message.to_json())

    async def dequeue_batch(self, tenant_id: int, batch_size: int) -> list[bytes]:
        """Pop up to `batch_size` payloads, oldest first.

        If the connection fails mid-batch, the payloads already popped
        are returned; the error is raised only when nothing was popped.
        """
        key = queue_key(tenant_id)
        items = []
        for _ in range(batch_size):
            try:
                item = await self._client.rpop(key)
            except Exception:
                if items:
                    return items
                raise
            if item is None:
                break
            items.append(item)
        return items

    async def close(self) -> None:
        await self._client.aclose()
