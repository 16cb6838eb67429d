"""
Execution record manager.
"""

import asyncio
import logging
import weakref
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..errors import EXECUTION_CANCELLED, STALE_EXECUTION, ExecutionFinalizeRace, ExecutionNotFound
from ..models.execution import ExecutionStatus, StepRecord, WorkflowExecution
from ..models.workflow import WorkflowDefinition
from ..persistence.repository import WorkflowRepository

logger = logging.getLogger(__name__)

Publisher = Callable[[str, Dict[str, Any]], Awaitable[None]]


class ExecutionRecorder:
    """
    Opens, updates and finalizes execution records.

    All writes for one execution go through that execution's lock, so step
    appends and the terminal write never interleave. A lock lives only while
    some writer holds or awaits it.
    """

    def __init__(self, repository: WorkflowRepository, publisher: Optional[Publisher] = None):
        self.repository = repository
        self.publisher = publisher
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock(self, execution_id: str) -> asyncio.Lock:
        lock = self._locks.get(execution_id)
        if lock is None:
            lock = self._locks[execution_id] = asyncio.Lock()
        return lock

    async def _publish(self, execution_id: str, message: Dict[str, Any]):
        if self.publisher is None:
            return
        try:
            await self.publisher(execution_id, message)
        except Exception as e:
            logger.warning(f"Failed to publish update for execution {execution_id}: {e}")

    async def open(self, workflow: WorkflowDefinition, trigger_payload: Dict[str, Any], trigger: Optional[str] = None) -> WorkflowExecution:
        """Create a running execution record for one run of ``workflow``."""
        execution = await self.repository.create_execution(WorkflowExecution(
            workflow_id=workflow.id,
            tenant_id=workflow.tenant_id,
            trigger=trigger or workflow.trigger.value,
            input=trigger_payload,
        ))
        logger.info(f"Opened execution {execution.id} for workflow {workflow.id}")
        await self._publish(execution.id, {"type": "status", "status": ExecutionStatus.RUNNING.value})
        return execution

    async def get(self, execution_id: str) -> WorkflowExecution:
        execution = await self.repository.get_execution(execution_id)
        if execution is None:
            raise ExecutionNotFound(f"Execution not found: {execution_id}")
        return execution

    async def list_executions(
        self,
        workflow_id: Optional[str] = None,
        tenant_id: Optional[str] = None,
        status: Optional[ExecutionStatus] = None,
        limit: int = 100,
    ) -> List[WorkflowExecution]:
        return await self.repository.list_executions(workflow_id, tenant_id=tenant_id, status=status, limit=limit)

    async def record_step(self, execution_id: str, node_id: str, step: StepRecord) -> bool:
        """
        Append one node's record.

        Returns:
            False if the execution is no longer running (the step is dropped)
        """
        async with self._lock(execution_id):
            written = await self.repository.append_step(execution_id, node_id, step)
        if written:
            await self._publish(execution_id, {
                "type": "step",
                "node_id": node_id,
                "step": step.model_dump(mode="json"),
            })
        else:
            logger.debug(f"Dropped step {node_id} for finished execution {execution_id}")
        return written

    async def set_waiting(self, execution_id: str, waiting_until: Optional[datetime]):
        async with self._lock(execution_id):
            await self.repository.set_waiting(execution_id, waiting_until)

    async def finalize(self, execution_id: str, status: ExecutionStatus, error: Optional[str] = None) -> bool:
        """
        Move an execution to a terminal status and update its workflow's stats.

        A failure of the combined write is logged as ``ExecutionFinalizeRace``
        and leaves the execution running for the stale sweep.

        Returns:
            True if this call performed the transition
        """
        async with self._lock(execution_id):
            try:
                finalized = await self.repository.finalize_execution(execution_id, status, error)
            except Exception as e:
                race = ExecutionFinalizeRace(execution_id, e)
                logger.error(str(race))
                return False

        if finalized:
            logger.info(f"Execution {execution_id} finished: {ExecutionStatus(status).value}" + (f" ({error})" if error else ""))
            await self._publish(execution_id, {"type": "status", "status": ExecutionStatus(status).value, "error": error})
        return finalized

    async def cancel(self, execution_id: str) -> bool:
        """Operator cancel: finalize as failed with ``ExecutionCancelled``."""
        await self.get(execution_id)
        return await self.finalize(execution_id, ExecutionStatus.FAILED, EXECUTION_CANCELLED)

    async def sweep_stale(self, grace_seconds: float, now: Optional[datetime] = None) -> List[str]:
        """
        Fail executions stuck in ``running`` past the grace period.

        Returns:
            Ids of the executions that were finalized
        """
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(seconds=grace_seconds)
        swept = []
        for execution in await self.repository.list_stale_executions(cutoff):
            if await self.finalize(execution.id, ExecutionStatus.FAILED, STALE_EXECUTION):
                swept.append(execution.id)
        if swept:
            logger.warning(f"Stale sweep failed {len(swept)} execution(s): {', '.join(swept)}")
        return swept
