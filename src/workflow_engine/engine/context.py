"""
Execution context for a single traversal.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

TRIGGER_KEY = "trigger"


@dataclass
class ExecutionContext:
    """
    Node id -> resolved output, plus the reserved ``trigger`` key.

    Grows monotonically; an entry appears only after its node's dispatch has
    returned, so downstream nodes never observe in-progress output.
    """
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def seeded(cls, trigger_payload: Optional[Dict[str, Any]]) -> "ExecutionContext":
        return cls(data={TRIGGER_KEY: dict(trigger_payload or {})})

    @property
    def trigger(self) -> Dict[str, Any]:
        return self.data.get(TRIGGER_KEY, {})

    def record(self, node_id: str, output: Any) -> None:
        if node_id in self.data and node_id != TRIGGER_KEY:
            raise KeyError(f"Output for node {node_id} already recorded")
        self.data[node_id] = output

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def __contains__(self, key: str) -> bool:
        return key in self.data

    def snapshot(self) -> Dict[str, Any]:
        return dict(self.data)
