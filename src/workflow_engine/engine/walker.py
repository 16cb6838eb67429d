"""
Graph walker: traverses a validated workflow graph from its trigger node.

Flow per branch:
    claim node → dispatch (with timeout) → record step → fold output into context
        → delay? (sleep inline, or defer to the scheduler) → follow edges

Multiple outgoing edges fan out into concurrent branches. A node with several
incoming edges runs once; the first branch to reach it claims it.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Set

from opentelemetry import trace

from ..config import Config, config as default_config
from ..errors import ActionDispatchError
from ..models.execution import ExecutionStatus, StepRecord, StepStatus, WorkflowExecution
from ..models.workflow import WorkflowDefinition, WorkflowNode
from .actions import ActionDispatcher, ActionServices, NodeResult, Suspension, error_is_fatal, utcnow
from .context import ExecutionContext
from .graph import WorkflowGraph
from .recorder import ExecutionRecorder

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass
class Traversal:
    """Mutable state of one execution's walk."""
    execution: WorkflowExecution
    graph: WorkflowGraph
    context: ExecutionContext
    services: ActionServices
    claimed: Set[str] = field(default_factory=set)
    failures: List[str] = field(default_factory=list)
    pending_wakes: Dict[str, datetime] = field(default_factory=dict)
    running_branches: int = 0
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    finalized: bool = False

    @property
    def execution_id(self) -> str:
        return self.execution.id

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()


class GraphWalker:
    """
    Runs workflow definitions against trigger payloads.

    Args:
        recorder: Execution record manager
        dispatcher: Node type → handler table
        services: Collaborator bundle; re-scoped per execution
        scheduler: Receives deferred continuations of long delays. Without
            one every delay is awaited inline.
        settings: Timeouts and the inline delay ceiling
    """

    def __init__(
        self,
        recorder: ExecutionRecorder,
        dispatcher: ActionDispatcher,
        services: ActionServices,
        scheduler: Optional[Any] = None,
        settings: Optional[Config] = None,
    ):
        self.recorder = recorder
        self.dispatcher = dispatcher
        self.services = services
        self.scheduler = scheduler
        self.settings = settings or default_config
        self._active: Dict[str, Traversal] = {}

    async def prepare(
        self,
        definition: WorkflowDefinition,
        trigger_payload: Optional[Dict[str, Any]] = None,
        trigger: Optional[str] = None,
    ) -> Traversal:
        """
        Validate and snapshot the definition, then open its execution record.

        Raises:
            DefinitionInvalid: Before any record is created
        """
        graph = WorkflowGraph(definition)
        payload = dict(trigger_payload or {})
        execution = await self.recorder.open(graph.definition, payload, trigger=trigger)
        traversal = Traversal(
            execution=execution,
            graph=graph,
            context=ExecutionContext.seeded(payload),
            services=self.services.for_execution(definition.tenant_id, definition.id, execution.id),
        )
        self._active[execution.id] = traversal
        return traversal

    async def execute(self, traversal: Traversal) -> WorkflowExecution:
        """
        Walk a prepared traversal until every branch ends or is deferred.

        Returns:
            The execution record; still ``running`` if a branch is waiting on
            a deferred delay
        """
        definition = traversal.graph.definition
        with tracer.start_as_current_span("workflow.execution") as span:
            span.set_attribute("workflow.id", definition.id or "")
            span.set_attribute("workflow.execution_id", traversal.execution_id)
            span.set_attribute("workflow.trigger", definition.trigger.value)

            traversal.running_branches += 1
            try:
                await self._walk(traversal, traversal.graph.trigger_node.id)
            finally:
                traversal.running_branches -= 1
            await self._finish_if_done(traversal)

            if traversal.failures:
                span.set_attribute("workflow.failed", True)

        return await self.recorder.get(traversal.execution_id)

    async def run(
        self,
        definition: WorkflowDefinition,
        trigger_payload: Optional[Dict[str, Any]] = None,
        trigger: Optional[str] = None,
    ) -> WorkflowExecution:
        """Validate, open a record and walk the definition."""
        traversal = await self.prepare(definition, trigger_payload, trigger=trigger)
        return await self.execute(traversal)

    def cancel(self, execution_id: str) -> bool:
        """
        Signal an in-flight traversal to stop scheduling nodes.

        Returns:
            False if the execution is not walking in this process
        """
        traversal = self._active.get(execution_id)
        if traversal is None:
            return False
        traversal.cancel_event.set()
        logger.info(f"Cancellation requested for execution {execution_id}")
        return True

    def is_active(self, execution_id: str) -> bool:
        return execution_id in self._active

    async def _walk(self, traversal: Traversal, node_id: str):
        """Follow one branch from ``node_id`` until it ends, forks or suspends."""
        graph = traversal.graph
        while True:
            if traversal.cancelled or node_id in traversal.claimed:
                return
            traversal.claimed.add(node_id)
            node = graph.nodes[node_id]

            try:
                next_ids = await self._step(traversal, node)
            except Exception as e:
                self._branch_crashed(traversal, node, e)
                return

            if not next_ids:
                return
            if len(next_ids) > 1:
                await asyncio.gather(*(self._walk(traversal, next_id) for next_id in next_ids))
                return
            node_id = next_ids[0]

    async def _step(self, traversal: Traversal, node: WorkflowNode) -> List[str]:
        """Run one node; returns the ids to continue with, empty if the branch ends here."""
        result = await self._run_node(traversal, node)
        if result is None:
            return []

        if result.suspension is not None:
            if not await self._suspend(traversal, node, result):
                return []
            if not await self._complete(traversal, node, result, StepStatus.SUCCEEDED):
                return []

        return traversal.graph.successors(node.id, result.branch)

    def _branch_crashed(self, traversal: Traversal, node: WorkflowNode, error: Exception):
        """An error outside the dispatch table (e.g. the record store) ends the branch as fatal."""
        message = str(error) or type(error).__name__
        logger.error(f"Execution {traversal.execution_id}: unexpected error at node {node.id}: {message}")
        traversal.failures.append(f"Node '{node.id}' ({node.type.value}) failed: {message}")

    async def _run_node(self, traversal: Traversal, node: WorkflowNode) -> Optional[NodeResult]:
        """
        Dispatch one node and record its step.

        Returns:
            The result to continue with, or None if the branch ends here
        """
        started_at = utcnow()
        with tracer.start_as_current_span("workflow.node") as span:
            span.set_attribute("workflow.id", traversal.graph.definition.id or "")
            span.set_attribute("workflow.execution_id", traversal.execution_id)
            span.set_attribute("workflow.node_id", node.id)
            span.set_attribute("workflow.node_type", node.type.value)

            logger.debug(f"Dispatching node {node.id} ({node.type.value}) in execution {traversal.execution_id}")
            try:
                result = await self._dispatch(traversal, node)
            except ActionDispatchError as e:
                span.record_exception(e)
                return await self._fail(traversal, node, e, started_at)

        if traversal.cancelled:
            logger.info(f"Discarding result of node {node.id}: execution {traversal.execution_id} was cancelled")
            return None

        if result.suspension is not None:
            if not await self._record(traversal, node, result, StepStatus.SUSPENDED, started_at):
                return None
            return result

        if not await self._complete(traversal, node, result, StepStatus.SUCCEEDED, started_at):
            return None
        return result

    async def _dispatch(self, traversal: Traversal, node: WorkflowNode) -> NodeResult:
        timeout = self.settings.timeout_for(node.type.value, node.config.timeout_seconds)
        try:
            return await asyncio.wait_for(
                self.dispatcher.dispatch(node, traversal.context, traversal.services),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            raise ActionDispatchError(f"Timed out after {timeout:g}s", node.id, node.type.value)

    async def _complete(
        self,
        traversal: Traversal,
        node: WorkflowNode,
        result: NodeResult,
        status: StepStatus,
        started_at: Optional[datetime] = None,
    ) -> bool:
        """Record a finished step and make its output visible downstream."""
        if not await self._record(traversal, node, result, status, started_at):
            return False
        traversal.context.record(node.id, result.output)
        return True

    async def _record(
        self,
        traversal: Traversal,
        node: WorkflowNode,
        result: NodeResult,
        status: StepStatus,
        started_at: Optional[datetime] = None,
    ) -> bool:
        step = StepRecord(
            node_type=node.type.value,
            status=status,
            output=result.output,
            warnings=result.warnings,
            started_at=started_at or utcnow(),
            completed_at=None if status == StepStatus.SUSPENDED else utcnow(),
        )
        written = await self.recorder.record_step(traversal.execution_id, node.id, step)
        if not written:
            # The record left ``running`` underneath us: an operator cancel or the sweep.
            traversal.cancel_event.set()
        return written

    async def _fail(
        self,
        traversal: Traversal,
        node: WorkflowNode,
        error: ActionDispatchError,
        started_at: datetime,
    ) -> Optional[NodeResult]:
        """Record a failed step; fatal failures end the branch."""
        if traversal.cancelled:
            return None

        fatal = error_is_fatal(node)
        logger.error(f"Execution {traversal.execution_id}: {error.describe()}" + ("" if fatal else " (continuing)"))
        step = StepRecord(
            node_type=node.type.value,
            status=StepStatus.FAILED,
            error=error.message,
            started_at=started_at,
            completed_at=utcnow(),
        )
        if not await self.recorder.record_step(traversal.execution_id, node.id, step):
            traversal.cancel_event.set()
            return None

        if fatal:
            traversal.failures.append(error.describe())
            return None

        traversal.context.record(node.id, None)
        return NodeResult(output=None)

    async def _suspend(self, traversal: Traversal, node: WorkflowNode, result: NodeResult) -> bool:
        """
        Wait out a delay node.

        Short delays sleep in place without blocking other executions; longer
        ones are handed to the scheduler and this branch returns.

        Returns:
            True if the branch should continue now
        """
        suspension: Suspension = result.suspension
        if self.scheduler is None or suspension.seconds <= self.settings.inline_delay_max_seconds:
            try:
                await asyncio.wait_for(traversal.cancel_event.wait(), timeout=suspension.seconds)
            except asyncio.TimeoutError:
                pass
            return not traversal.cancelled

        traversal.pending_wakes[node.id] = suspension.wake_at
        await self.recorder.set_waiting(traversal.execution_id, max(traversal.pending_wakes.values()))
        self.scheduler.call_at(suspension.wake_at, lambda: self._resume(traversal, node, result))
        logger.info(
            f"Execution {traversal.execution_id} deferred at node {node.id} until {suspension.wake_at.isoformat()}"
        )
        return False

    async def _resume(self, traversal: Traversal, node: WorkflowNode, result: NodeResult):
        """Continue a branch after a deferred delay."""
        traversal.pending_wakes.pop(node.id, None)
        traversal.running_branches += 1
        try:
            next_ids: List[str] = []
            if not traversal.cancelled:
                logger.info(f"Resuming execution {traversal.execution_id} after node {node.id}")
                try:
                    if traversal.pending_wakes:
                        await self.recorder.set_waiting(traversal.execution_id, max(traversal.pending_wakes.values()))
                    if await self._complete(traversal, node, result, StepStatus.SUCCEEDED):
                        next_ids = traversal.graph.successors(node.id, result.branch)
                except Exception as e:
                    self._branch_crashed(traversal, node, e)
            await asyncio.gather(*(self._walk(traversal, next_id) for next_id in next_ids))
        finally:
            traversal.running_branches -= 1
        await self._finish_if_done(traversal)

    async def _finish_if_done(self, traversal: Traversal):
        """Finalize once no branch is running or deferred."""
        if traversal.finalized or traversal.running_branches:
            return
        if traversal.pending_wakes and not traversal.cancelled:
            return
        traversal.finalized = True
        self._active.pop(traversal.execution_id, None)

        if traversal.cancelled:
            return

        if traversal.failures:
            await self.recorder.finalize(
                traversal.execution_id, ExecutionStatus.FAILED, "; ".join(traversal.failures)
            )
        else:
            await self.recorder.finalize(traversal.execution_id, ExecutionStatus.SUCCEEDED)
