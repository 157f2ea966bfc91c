"""
Pipeline stage base class
Social Product Discovery

Every stage receives the run's PipelineState, fills in its own slice of it
and hands the same object on. execute() is what the orchestrator calls: it
times the stage, tags log lines with the query id and turns an exception
into a failed AgentResult instead of letting it escape.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
from dataclasses import dataclass, field
import logging
import time
import traceback

from agents.state import PipelineState


@dataclass
class AgentResult:
    """Outcome of one stage for one query run."""
    agent_name: str
    query_id: str
    success: bool
    data: Optional[PipelineState] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    elapsed_ms: int = 0

    def __repr__(self):
        status = "✅" if self.success else "❌"
        detail = ", ".join(f"{k}={v}" for k, v in self.metadata.items())
        suffix = f" [{detail}]" if detail else ""
        if not self.success:
            suffix = f" {self.error_type}: {self.error}"
        return f"{status} {self.agent_name} ({self.elapsed_ms}ms){suffix}"


class Agent(ABC):
    """
    Abstract base class for all pipeline stages.
    Subclasses implement the coroutine `run(state)` and may override
    `describe(state)` to report counts for the run summary.
    """

    def __init__(self, name: str):
        self.name = name
        self.logger = logging.getLogger(f"agent.{name}")

    @abstractmethod
    async def run(self, state: PipelineState) -> PipelineState:
        raise NotImplementedError

    def describe(self, state: PipelineState) -> Dict[str, Any]:
        return {}

    async def execute(self, state: PipelineState) -> AgentResult:
        start = time.monotonic()
        self.logger.info(f"[{self.name}] Starting for query {state.query_id}")
        try:
            state = await self.run(state)
        except Exception as e:
            elapsed = int((time.monotonic() - start) * 1000)
            self.logger.error(
                f"[{self.name}] Failed for query {state.query_id} after {elapsed}ms: {e}\n"
                f"{traceback.format_exc()}"
            )
            return AgentResult(
                agent_name=self.name,
                query_id=state.query_id,
                success=False,
                error=str(e) or type(e).__name__,
                error_type=type(e).__name__,
                elapsed_ms=elapsed,
            )

        elapsed = int((time.monotonic() - start) * 1000)
        metadata = self.describe(state)
        self.logger.info(f"[{self.name}] Completed in {elapsed}ms {metadata or ''}".rstrip())
        return AgentResult(
            agent_name=self.name,
            query_id=state.query_id,
            success=True,
            data=state,
            metadata=metadata,
            elapsed_ms=elapsed,
        )

    def __repr__(self):
        return f"<Agent: {self.name}>"
