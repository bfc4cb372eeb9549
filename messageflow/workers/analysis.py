"""Queue consumer that analyzes messages in the background."""

import asyncio

from messageflow.logging.audit import get_audit_logger
from messageflow.routing.service import LLMService
from messageflow.storage.store import ProviderStore
from messageflow.workers.queue import AnalysisQueue, QueueMessage
from messageflow.workers.supervisor import TenantSupervisor

DEFAULT_BATCH_SIZE = 100
MESSAGE_TIMEOUT = 120.0  # seconds per message, across all fallback candidates
ERROR_BACKOFF = 2.0
IDLE_BACKOFF = 0.5


class AnalysisWorker:

    def __init__(
        self,
        queue: AnalysisQueue,
        service: LLMService,
        store: ProviderStore,
        batch_size: int = DEFAULT_BATCH_SIZE,
        message_timeout: float = MESSAGE_TIMEOUT,
        error_backoff: float = ERROR_BACKOFF,
        idle_backoff: float = IDLE_BACKOFF,
    ):
        self.queue = queue
        self.service = service
        self.store = store
        self.batch_size = batch_size if batch_size > 0 else DEFAULT_BATCH_SIZE
        self.message_timeout = message_timeout
        self.error_backoff = error_backoff
        self.idle_backoff = idle_backoff

    async def run(self, tenant_id: int) -> None:
        """Drain the tenant's queue until cancelled."""
        logger = get_audit_logger()
        while True:
            try:
                items = await self.queue.dequeue_batch(tenant_id, self.batch_size)
            except Exception as e:
                logger.error(
                    "Dequeue failed",
                    extra={"audit_data": {"tenant_id": tenant_id, "error": str(e)}},
                )
                await asyncio.sleep(self.error_backoff)
                continue

            if not items:
                await asyncio.sleep(self.idle_backoff)
                continue

            for raw in items:
                await self.process(raw)

    async def process(self, raw: str | bytes) -> bool:
        """Analyze and store one queued message. Returns True if stored."""
        logger = get_audit_logger()
        try:
            message = QueueMessage.from_json(raw)
        except ValueError as e:
            logger.warning("Dropping undecodable queue payload", extra={"audit_data": {"error": str(e)}})
            return False

        try:
            outcome = await asyncio.wait_for(
                self.service.analyze_with_fallback(message.tenant_id, message.content, message.message_id),
                timeout=self.message_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Queued analysis timed out",
                extra={"audit_data": {"tenant_id": message.tenant_id, "message_id": message.message_id}},
            )
            return False

        try:
            await self.store.save_analysis(message.tenant_id, message.message_id, outcome.result)
        except Exception as e:
            logger.error(
                "Failed to store analysis",
                extra={"audit_data": {
                    "tenant_id": message.tenant_id,
                    "message_id": message.message_id,
                    "error": str(e),
                }},
            )
            return False

        logger.info(
            "Message analyzed",
            extra={"audit_data": {
                "tenant_id": message.tenant_id,
                "message_id": message.message_id,
                "provider_id": outcome.provider_id,
                "degraded": outcome.degraded,
                "is_important": outcome.result.is_important,
            }},
        )
        return True


class WorkerScheduler(TenantSupervisor):
    """Runs one AnalysisWorker loop per tenant."""

    name = "analysis-worker"

    def __init__(self, worker: AnalysisWorker):
        super().__init__()
        self.worker = worker

    async def _run(self, tenant_id: int) -> None:
        await self.worker.run(tenant_id)
