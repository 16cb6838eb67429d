"""
Repository for workflow definitions, templates and execution records.
"""

import logging
import json
import uuid
from typing import Optional, List, Dict, Any
from datetime import datetime, timezone
import asyncpg

from ..models.workflow import WorkflowDefinition, WorkflowNode, WorkflowEdge, TriggerType
from ..models.template import WorkflowTemplate, WorkflowTemplateStep
from ..models.execution import WorkflowExecution, ExecutionStatus, StepRecord

logger = logging.getLogger(__name__)


class WorkflowRepository:
    """
    Storage contract for the engine.

    Implementations must make ``replace_workflow`` and ``finalize_execution``
    atomic: a graph is replaced as a whole, and an execution's terminal status
    is written together with its definition's statistics.
    """

    async def init_tables(self):
        pass

    async def close(self):
        pass

    # Workflow Definitions

    async def create_workflow(self, workflow: WorkflowDefinition) -> WorkflowDefinition:
        raise NotImplementedError

    async def get_workflow(self, workflow_id: str, tenant_id: Optional[str] = None) -> Optional[WorkflowDefinition]:
        raise NotImplementedError

    async def list_workflows(
        self,
        tenant_id: Optional[str] = None,
        active_only: bool = False,
        trigger: Optional[TriggerType] = None,
    ) -> List[WorkflowDefinition]:
        raise NotImplementedError

    async def replace_workflow(self, workflow: WorkflowDefinition) -> WorkflowDefinition:
        raise NotImplementedError

    async def delete_workflow(self, workflow_id: str) -> bool:
        raise NotImplementedError

    # Templates

    async def create_template(self, template: WorkflowTemplate) -> WorkflowTemplate:
        raise NotImplementedError

    async def get_template(self, template_id: str) -> Optional[WorkflowTemplate]:
        raise NotImplementedError

    async def list_templates(self) -> List[WorkflowTemplate]:
        raise NotImplementedError

    # Executions

    async def create_execution(self, execution: WorkflowExecution) -> WorkflowExecution:
        raise NotImplementedError

    async def get_execution(self, execution_id: str) -> Optional[WorkflowExecution]:
        raise NotImplementedError

    async def list_executions(
        self,
        workflow_id: Optional[str] = None,
        tenant_id: Optional[str] = None,
        status: Optional[ExecutionStatus] = None,
        limit: int = 100,
    ) -> List[WorkflowExecution]:
        raise NotImplementedError

    async def append_step(self, execution_id: str, node_id: str, step: StepRecord) -> bool:
        """Add one node's record to a running execution; False if it is not running."""
        raise NotImplementedError

    async def set_waiting(self, execution_id: str, waiting_until: Optional[datetime]) -> None:
        raise NotImplementedError

    async def finalize_execution(
        self,
        execution_id: str,
        status: ExecutionStatus,
        error: Optional[str] = None,
    ) -> bool:
        """
        Move a running execution to a terminal status and bump its definition's
        ``execution_count``/``last_executed_at`` in one unit.

        Returns:
            False if the execution was already terminal
        """
        raise NotImplementedError

    async def list_stale_executions(self, cutoff: datetime) -> List[WorkflowExecution]:
        """Running executions with no activity (or an expired wait) before ``cutoff``."""
        raise NotImplementedError


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _load_json(value: Any, default: Any) -> Any:
    if value is None:
        return default
    if isinstance(value, str):
        return json.loads(value)
    return value


class PostgresWorkflowRepository(WorkflowRepository):
    """
    asyncpg-backed repository.

    Nodes and edges live in their own tables; edge endpoints are foreign keys
    into ``workflow_nodes`` so the database enforces referential integrity.
    """

    def __init__(self, pool: asyncpg.Pool):
        """
        Initialize repository.

        Args:
            pool: Database connection pool
        """
        self.pool = pool

    async def close(self):
        await self.pool.close()

    async def init_tables(self):
        """Initialize database tables."""
        async with self.pool.acquire() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS workflow_definitions (
                    id UUID PRIMARY KEY,
                    tenant_id VARCHAR(255) NOT NULL,
                    name VARCHAR(255) NOT NULL,
                    description TEXT,
                    trigger VARCHAR(50) NOT NULL,
                    trigger_config JSONB NOT NULL DEFAULT '{}',
                    is_active BOOLEAN DEFAULT FALSE,
                    is_template BOOLEAN DEFAULT FALSE,
                    execution_count INTEGER DEFAULT 0,
                    last_executed_at TIMESTAMPTZ,
                    created_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP
                )
            """)

            await conn.execute("""
                CREATE TABLE IF NOT EXISTS workflow_nodes (
                    workflow_id UUID REFERENCES workflow_definitions(id) ON DELETE CASCADE,
                    node_id VARCHAR(255) NOT NULL,
                    node_order INTEGER NOT NULL,
                    type VARCHAR(50) NOT NULL,
                    data JSONB NOT NULL DEFAULT '{}',
                    position JSONB,
                    PRIMARY KEY (workflow_id, node_id)
                )
            """)

            await conn.execute("""
                CREATE TABLE IF NOT EXISTS workflow_edges (
                    workflow_id UUID NOT NULL,
                    edge_id VARCHAR(255) NOT NULL,
                    edge_order INTEGER NOT NULL,
                    source VARCHAR(255) NOT NULL,
                    target VARCHAR(255) NOT NULL,
                    branch BOOLEAN,
                    PRIMARY KEY (workflow_id, edge_id),
                    FOREIGN KEY (workflow_id, source) REFERENCES workflow_nodes(workflow_id, node_id) ON DELETE CASCADE,
                    FOREIGN KEY (workflow_id, target) REFERENCES workflow_nodes(workflow_id, node_id) ON DELETE CASCADE
                )
            """)

            await conn.execute("""
                CREATE TABLE IF NOT EXISTS workflow_executions (
                    id UUID PRIMARY KEY,
                    workflow_id UUID REFERENCES workflow_definitions(id) ON DELETE CASCADE,
                    tenant_id VARCHAR(255) NOT NULL,
                    trigger VARCHAR(50),
                    status VARCHAR(50) NOT NULL DEFAULT 'running',
                    input JSONB,
                    execution_data JSONB NOT NULL DEFAULT '{}',
                    error TEXT,
                    started_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP,
                    completed_at TIMESTAMPTZ,
                    waiting_until TIMESTAMPTZ
                )
            """)

            await conn.execute("""
                CREATE TABLE IF NOT EXISTS workflow_templates (
                    id UUID PRIMARY KEY,
                    name VARCHAR(255) UNIQUE NOT NULL,
                    description TEXT,
                    category VARCHAR(100),
                    trigger_type VARCHAR(50) NOT NULL,
                    trigger_config JSONB NOT NULL DEFAULT '{}',
                    created_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP
                )
            """)

            await conn.execute("""
                CREATE TABLE IF NOT EXISTS workflow_template_steps (
                    template_id UUID REFERENCES workflow_templates(id) ON DELETE CASCADE,
                    step_order INTEGER NOT NULL,
                    step_type VARCHAR(50) NOT NULL,
                    step_config JSONB NOT NULL DEFAULT '{}',
                    description TEXT,
                    PRIMARY KEY (template_id, step_order)
                )
            """)

            # Indexes
            await conn.execute("CREATE INDEX IF NOT EXISTS idx_definitions_tenant ON workflow_definitions(tenant_id)")
            await conn.execute("CREATE INDEX IF NOT EXISTS idx_definitions_trigger ON workflow_definitions(trigger, is_active)")
            await conn.execute("CREATE INDEX IF NOT EXISTS idx_executions_workflow ON workflow_executions(workflow_id)")
            await conn.execute("CREATE INDEX IF NOT EXISTS idx_executions_status ON workflow_executions(status)")

            logger.info("Workflow tables initialized")

    # Workflow Definitions

    async def _write_graph(self, conn, workflow_id: str, nodes: List[WorkflowNode], edges: List[WorkflowEdge]):
        await conn.executemany("""
            INSERT INTO workflow_nodes (workflow_id, node_id, node_order, type, data, position)
            VALUES ($1, $2, $3, $4, $5, $6)
        """, [
            (
                workflow_id,
                node.id,
                index,
                node.type.value,
                json.dumps(node.data),
                json.dumps(node.position) if node.position is not None else None,
            )
            for index, node in enumerate(nodes)
        ])
        await conn.executemany("""
            INSERT INTO workflow_edges (workflow_id, edge_id, edge_order, source, target, branch)
            VALUES ($1, $2, $3, $4, $5, $6)
        """, [
            (workflow_id, edge.id, index, edge.source, edge.target, edge.branch)
            for index, edge in enumerate(edges)
        ])

    async def create_workflow(self, workflow: WorkflowDefinition) -> WorkflowDefinition:
        """Create a new workflow definition with its graph."""
        workflow_id = workflow.id or str(uuid.uuid4())
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute("""
                    INSERT INTO workflow_definitions
                    (id, tenant_id, name, description, trigger, trigger_config, is_active, is_template)
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                """,
                    workflow_id,
                    workflow.tenant_id,
                    workflow.name,
                    workflow.description,
                    workflow.trigger.value,
                    json.dumps(workflow.trigger_config),
                    workflow.is_active,
                    workflow.is_template,
                )
                await self._write_graph(conn, workflow_id, workflow.nodes, workflow.edges)

        return await self.get_workflow(workflow_id)

    async def get_workflow(self, workflow_id: str, tenant_id: Optional[str] = None) -> Optional[WorkflowDefinition]:
        """Get a workflow by ID."""
        try:
            uuid.UUID(str(workflow_id))
        except ValueError:
            return None

        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM workflow_definitions WHERE id = $1",
                workflow_id
            )
            if not row or (tenant_id and row["tenant_id"] != tenant_id):
                return None
            return await self._load_workflow(conn, row)

    async def list_workflows(
        self,
        tenant_id: Optional[str] = None,
        active_only: bool = False,
        trigger: Optional[TriggerType] = None,
    ) -> List[WorkflowDefinition]:
        """List workflows with optional filters."""
        query = "SELECT * FROM workflow_definitions WHERE 1=1"
        params = []
        param_idx = 1

        if tenant_id:
            query += f" AND tenant_id = ${param_idx}"
            params.append(tenant_id)
            param_idx += 1

        if active_only:
            query += " AND is_active = TRUE"

        if trigger:
            query += f" AND trigger = ${param_idx}"
            params.append(TriggerType(trigger).value)
            param_idx += 1

        query += " ORDER BY created_at"

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(query, *params)
            return [await self._load_workflow(conn, row) for row in rows]

    async def replace_workflow(self, workflow: WorkflowDefinition) -> WorkflowDefinition:
        """Replace metadata, nodes and edges of a workflow in one transaction."""
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute("""
                    UPDATE workflow_definitions
                    SET name = $1, description = $2, trigger = $3, trigger_config = $4,
                        is_active = $5, is_template = $6, updated_at = CURRENT_TIMESTAMP
                    WHERE id = $7
                """,
                    workflow.name,
                    workflow.description,
                    workflow.trigger.value,
                    json.dumps(workflow.trigger_config),
                    workflow.is_active,
                    workflow.is_template,
                    workflow.id,
                )
                await conn.execute("DELETE FROM workflow_edges WHERE workflow_id = $1", workflow.id)
                await conn.execute("DELETE FROM workflow_nodes WHERE workflow_id = $1", workflow.id)
                await self._write_graph(conn, workflow.id, workflow.nodes, workflow.edges)

        return await self.get_workflow(workflow.id)

    async def delete_workflow(self, workflow_id: str) -> bool:
        """Delete a workflow; nodes, edges and executions cascade."""
        async with self.pool.acquire() as conn:
            result = await conn.execute("DELETE FROM workflow_definitions WHERE id = $1", workflow_id)
            return result.endswith(" 1")

    async def _load_workflow(self, conn, row) -> WorkflowDefinition:
        """Rehydrate a definition row plus its node and edge rows."""
        node_rows = await conn.fetch(
            "SELECT * FROM workflow_nodes WHERE workflow_id = $1 ORDER BY node_order",
            row["id"]
        )
        edge_rows = await conn.fetch(
            "SELECT * FROM workflow_edges WHERE workflow_id = $1 ORDER BY edge_order",
            row["id"]
        )

        return WorkflowDefinition(
            id=str(row["id"]),
            tenant_id=row["tenant_id"],
            name=row["name"],
            description=row["description"],
            trigger=TriggerType(row["trigger"]),
            trigger_config=_load_json(row["trigger_config"], {}),
            nodes=[
                WorkflowNode(
                    id=n["node_id"],
                    type=n["type"],
                    data=_load_json(n["data"], {}),
                    position=_load_json(n["position"], None),
                )
                for n in node_rows
            ],
            edges=[
                WorkflowEdge(id=e["edge_id"], source=e["source"], target=e["target"], branch=e["branch"])
                for e in edge_rows
            ],
            is_active=row["is_active"],
            is_template=row["is_template"],
            execution_count=row["execution_count"] or 0,
            last_executed_at=row["last_executed_at"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    # Templates

    async def create_template(self, template: WorkflowTemplate) -> WorkflowTemplate:
        """Create a catalog template with its steps."""
        template_id = template.id or str(uuid.uuid4())
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute("""
                    INSERT INTO workflow_templates (id, name, description, category, trigger_type, trigger_config)
                    VALUES ($1, $2, $3, $4, $5, $6)
                """,
                    template_id,
                    template.name,
                    template.description,
                    template.category,
                    template.trigger_type.value,
                    json.dumps(template.trigger_config),
                )
                await conn.executemany("""
                    INSERT INTO workflow_template_steps (template_id, step_order, step_type, step_config, description)
                    VALUES ($1, $2, $3, $4, $5)
                """, [
                    (template_id, step.step_order, step.step_type.value, json.dumps(step.step_config), step.description)
                    for step in template.steps
                ])

        return await self.get_template(template_id)

    async def get_template(self, template_id: str) -> Optional[WorkflowTemplate]:
        """Get a template by ID."""
        try:
            uuid.UUID(str(template_id))
        except ValueError:
            return None

        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("SELECT * FROM workflow_templates WHERE id = $1", template_id)
            if not row:
                return None
            return await self._load_template(conn, row)

    async def list_templates(self) -> List[WorkflowTemplate]:
        """List all templates."""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch("SELECT * FROM workflow_templates ORDER BY category, name")
            return [await self._load_template(conn, row) for row in rows]

    async def _load_template(self, conn, row) -> WorkflowTemplate:
        step_rows = await conn.fetch(
            "SELECT * FROM workflow_template_steps WHERE template_id = $1 ORDER BY step_order",
            row["id"]
        )
        return WorkflowTemplate(
            id=str(row["id"]),
            name=row["name"],
            description=row["description"],
            category=row["category"],
            trigger_type=TriggerType(row["trigger_type"]),
            trigger_config=_load_json(row["trigger_config"], {}),
            steps=[
                WorkflowTemplateStep(
                    step_order=s["step_order"],
                    step_type=s["step_type"],
                    step_config=_load_json(s["step_config"], {}),
                    description=s["description"] or "",
                )
                for s in step_rows
            ],
            created_at=row["created_at"],
        )

    # Executions

    async def create_execution(self, execution: WorkflowExecution) -> WorkflowExecution:
        """Create a new execution record."""
        execution_id = execution.id or str(uuid.uuid4())
        now = _now()
        async with self.pool.acquire() as conn:
            await conn.execute("""
                INSERT INTO workflow_executions
                (id, workflow_id, tenant_id, trigger, status, input, started_at, updated_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $7)
            """,
                execution_id,
                execution.workflow_id,
                execution.tenant_id,
                execution.trigger,
                ExecutionStatus.RUNNING.value,
                json.dumps(execution.input, default=str),
                now,
            )
        return await self.get_execution(execution_id)

    async def get_execution(self, execution_id: str) -> Optional[WorkflowExecution]:
        """Get an execution by ID."""
        try:
            uuid.UUID(str(execution_id))
        except ValueError:
            return None

        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM workflow_executions WHERE id = $1",
                execution_id
            )
            if row:
                return self._row_to_execution(row)
            return None

    async def list_executions(
        self,
        workflow_id: Optional[str] = None,
        tenant_id: Optional[str] = None,
        status: Optional[ExecutionStatus] = None,
        limit: int = 100,
    ) -> List[WorkflowExecution]:
        """List executions with optional filters, newest first."""
        query = "SELECT * FROM workflow_executions WHERE 1=1"
        params = []
        param_idx = 1

        if workflow_id:
            query += f" AND workflow_id = ${param_idx}"
            params.append(workflow_id)
            param_idx += 1

        if tenant_id:
            query += f" AND tenant_id = ${param_idx}"
            params.append(tenant_id)
            param_idx += 1

        if status:
            query += f" AND status = ${param_idx}"
            params.append(ExecutionStatus(status).value)
            param_idx += 1

        query += f" ORDER BY started_at DESC LIMIT ${param_idx}"
        params.append(limit)

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(query, *params)
            return [self._row_to_execution(row) for row in rows]

    async def append_step(self, execution_id: str, node_id: str, step: StepRecord) -> bool:
        """Merge one node's record into execution_data without rewriting the rest."""
        async with self.pool.acquire() as conn:
            result = await conn.execute("""
                UPDATE workflow_executions
                SET execution_data = execution_data || jsonb_build_object($2::text, $3::jsonb),
                    updated_at = $4
                WHERE id = $1 AND status = 'running'
            """,
                execution_id,
                node_id,
                step.model_dump_json(),
                _now(),
            )
            return result.endswith(" 1")

    async def set_waiting(self, execution_id: str, waiting_until: Optional[datetime]) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(
                "UPDATE workflow_executions SET waiting_until = $2, updated_at = $3 WHERE id = $1",
                execution_id,
                waiting_until,
                _now(),
            )

    async def finalize_execution(
        self,
        execution_id: str,
        status: ExecutionStatus,
        error: Optional[str] = None,
    ) -> bool:
        """Write the terminal status and the definition statistics in one transaction."""
        now = _now()
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                workflow_id = await conn.fetchval("""
                    UPDATE workflow_executions
                    SET status = $2, error = $3, completed_at = $4, updated_at = $4, waiting_until = NULL
                    WHERE id = $1 AND status = 'running'
                    RETURNING workflow_id
                """,
                    execution_id,
                    ExecutionStatus(status).value,
                    error,
                    now,
                )
                if workflow_id is None:
                    return False

                await conn.execute("""
                    UPDATE workflow_definitions
                    SET execution_count = execution_count + 1, last_executed_at = $2
                    WHERE id = $1
                """,
                    workflow_id,
                    now,
                )
                return True

    async def list_stale_executions(self, cutoff: datetime) -> List[WorkflowExecution]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch("""
                SELECT * FROM workflow_executions
                WHERE status = 'running' AND COALESCE(waiting_until, updated_at) < $1
                ORDER BY started_at
            """, cutoff)
            return [self._row_to_execution(row) for row in rows]

    def _row_to_execution(self, row) -> WorkflowExecution:
        """Convert database row to WorkflowExecution."""
        steps = _load_json(row["execution_data"], {})
        return WorkflowExecution(
            id=str(row["id"]),
            workflow_id=str(row["workflow_id"]),
            tenant_id=row["tenant_id"],
            trigger=row["trigger"],
            status=ExecutionStatus(row["status"]),
            input=_load_json(row["input"], {}),
            execution_data={node_id: StepRecord(**step) for node_id, step in steps.items()},
            error=row["error"],
            started_at=row["started_at"],
            updated_at=row["updated_at"],
            completed_at=row["completed_at"],
            waiting_until=row["waiting_until"],
        )
