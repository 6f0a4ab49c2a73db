from pathlib import Path
from types import SimpleNamespace

import pytest
from pydantic import BaseModel

from contentflow.agent import AgentNotFoundError, PydanticAIAgentRunner


@pytest.fixture
def echo_agents(monkeypatch):
    monkeypatch.syspath_prepend(str(Path(__file__).parent.parent / "fixtures"))
    import echo_agents

    return echo_agents


@pytest.mark.asyncio
async def test_run_agent_returns_text_content(echo_agents):
    runner = PydanticAIAgentRunner(echo_agents.AGENTS)

    result = await runner.run_agent("echo", "hello")

    assert result.content == "echo:hello"
    assert result.data == "echo:hello"


@pytest.mark.asyncio
async def test_run_agent_appends_processing_date(echo_agents):
    runner = PydanticAIAgentRunner(echo_agents.AGENTS)

    result = await runner.run_agent("echo", "hello", "2024-05-01", {"silent": True})

    assert result.content == "echo:hello\n\nCurrent processing date: 2024-05-01"


@pytest.mark.asyncio
async def test_structured_output_is_serialised():
    class Summary(BaseModel):
        summary: str
        score: int

    class StructuredAgent:
        async def run(self, prompt):
            return SimpleNamespace(output=Summary(summary="short", score=3))

    runner = PydanticAIAgentRunner()
    runner.register("structured", StructuredAgent())

    result = await runner.run_agent("structured", "text")

    assert result.data == Summary(summary="short", score=3)
    assert result.content == '{"summary":"short","score":3}'
    assert runner.agent_ids == ["structured"]


@pytest.mark.asyncio
async def test_unknown_agent_raises():
    with pytest.raises(AgentNotFoundError):
        await PydanticAIAgentRunner().run_agent("ghost", "text")
