"""Per-tenant background task supervision."""

import asyncio
import threading
from abc import ABC, abstractmethod

from messageflow.logging.audit import bind_context, get_audit_logger


class TenantSupervisor(ABC):
    """Owns at most one running background task per tenant.

    `ensure_tenant` is an insert-if-absent under a lock, so concurrent
    callers never start a second loop for the same tenant.
    """

    name: str = "tenant-loop"

    def __init__(self):
        self._tasks: dict[int, asyncio.Task] = {}
        self._lock = threading.Lock()

    @abstractmethod
    async def _run(self, tenant_id: int) -> None:
        """The long-lived loop for one tenant. Runs until cancelled."""
        ...

    async def _run_bound(self, tenant_id: int) -> None:
        # Runs in the task's own context copy
        bind_context(tenant_id=tenant_id, request_id=f"{self.name}-{tenant_id}")
        await self._run(tenant_id)

    def ensure_tenant(self, tenant_id: int) -> bool:
        """Start the tenant's loop unless one is already running.

        Must be called from inside the event loop. Returns True if a new
        task was started.
        """
        with self._lock:
            task = self._tasks.get(tenant_id)
            if task is not None and not task.done():
                return False
            task = asyncio.get_running_loop().create_task(
                self._run_bound(tenant_id), name=f"{self.name}-{tenant_id}"
            )
            task.add_done_callback(self._log_exit)
            self._tasks[tenant_id] = task

        get_audit_logger().info(
            "Tenant loop started",
            extra={"audit_data": {"loop": self.name, "tenant_id": tenant_id}},
        )
        return True

    def is_running(self, tenant_id: int) -> bool:
        with self._lock:
            task = self._tasks.get(tenant_id)
            return task is not None and not task.done()

    @property
    def tenants(self) -> list[int]:
        with self._lock:
            return [t for t, task in self._tasks.items() if not task.done()]

    async def stop_tenant(self, tenant_id: int) -> None:
        with self._lock:
            task = self._tasks.pop(tenant_id, None)
        if task is not None:
            await _cancel(task)

    async def shutdown(self) -> None:
        """Cancel every tenant loop and wait for them to finish."""
        with self._lock:
            tasks = list(self._tasks.values())
            self._tasks.clear()
        for task in tasks:
            await _cancel(task)

    def _log_exit(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            get_audit_logger().error(
                "Tenant loop crashed",
                exc_info=error,
                extra={"audit_data": {"loop": self.name, "task": task.get_name()}},
            )


async def _cancel(task: asyncio.Task) -> None:
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    except Exception:
        pass  # already reported by _log_exit
