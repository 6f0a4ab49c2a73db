from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

from pydantic_ai import Agent

from ..contracts import AgentResult
from ..errors import ContentflowError

logger = logging.getLogger(__name__)


class AgentNotFoundError(ContentflowError):
    def __init__(self, agent_id: str) -> None:
        super().__init__(f"Agent {agent_id} not found")
        self.agent_id = agent_id


class PydanticAIAgentRunner:
    """Agent runner backed by ``pydantic_ai.Agent`` instances keyed by id."""

    def __init__(self, agents: Optional[Mapping[str, Agent]] = None) -> None:
        self._agents: Dict[str, Agent] = dict(agents or {})

    def register(self, agent_id: str, agent: Agent) -> None:
        logger.debug(f"Registering agent {agent_id}")
        self._agents[agent_id] = agent

    def get(self, agent_id: str) -> Agent:
        agent = self._agents.get(agent_id)
        if agent is None:
            raise AgentNotFoundError(agent_id)
        return agent

    @property
    def agent_ids(self) -> list[str]:
        return list(self._agents)

    async def run_agent(
        self,
        agent_id: str,
        input_text: str,
        date: Optional[str] = None,
        options: Optional[Dict[str, Any]] = None,
    ) -> AgentResult:
        agent = self.get(agent_id)
        silent = bool((options or {}).get("silent"))
        if not silent:
            logger.info(
                f"Running agent: {agent_id}" + (f" for date: {date}" if date else "")
            )

        prompt = input_text
        if date:
            prompt = f"{input_text}\n\nCurrent processing date: {date}"

        result = await agent.run(prompt)
        output = result.output if hasattr(result, "output") else result

        if isinstance(output, str):
            content = output
        elif hasattr(output, "model_dump_json"):
            content = output.model_dump_json()
        else:
            content = str(output)
        return AgentResult(content=content, data=output)
