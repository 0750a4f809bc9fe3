"""Tests for the catalog agent loop, with a scripted Claude client."""

import json
from types import SimpleNamespace
from typing import Any, Dict, List

import pytest

from conftest import shoe_family_routes
from pim_agent.integrations.unopim.agent import AGENT_SYSTEM_PROMPT, CatalogAgent
from pim_agent.integrations.unopim.products import ProductService
from pim_agent.integrations.unopim.tools import AGENT_TOOLS


def text_block(text: str) -> SimpleNamespace:
    return SimpleNamespace(type="text", text=text)


def tool_block(block_id: str, name: str, tool_input: Dict[str, Any]) -> SimpleNamespace:
    return SimpleNamespace(type="tool_use", id=block_id, name=name, input=tool_input)


class ScriptedMessages:
    """Stands in for AsyncAnthropic().messages, replaying canned responses."""

    def __init__(self, responses: List[SimpleNamespace]):
        self.responses = list(responses)
        self.requests: List[Dict[str, Any]] = []

    async def create(self, **kwargs) -> SimpleNamespace:
        # Snapshot the conversation; the agent keeps appending to the same list
        self.requests.append({**kwargs, "messages": list(kwargs["messages"])})
        return self.responses.pop(0)


def scripted_client(*responses: SimpleNamespace) -> SimpleNamespace:
    return SimpleNamespace(messages=ScriptedMessages(list(responses)))


def reply(stop_reason: str, *blocks: SimpleNamespace) -> SimpleNamespace:
    return SimpleNamespace(content=list(blocks), stop_reason=stop_reason)


@pytest.fixture
def products(backend, make_client):
    backend.issue_tokens()
    shoe_family_routes(backend)
    return ProductService(make_client())


@pytest.mark.asyncio
async def test_agent_runs_tools_until_completion(products):
    claude = scripted_client(
        reply("tool_use",
              text_block("Looking up the family first."),
              tool_block("t1", "unopim_get_family_schema", {"family": "shoes"})),
        reply("tool_use",
              tool_block("t2", "report_completion", {"summary": "Checked the shoes family", "successful_count": 1})),
    )
    agent = CatalogAgent(products, anthropic_client=claude, model="test-model")

    result = await agent.run("Describe the shoes family")

    assert result.success is True
    assert result.iterations == 2
    assert result.summary == "Checked the shoes family"
    assert [c.name for c in result.tool_calls] == ["unopim_get_family_schema", "report_completion"]
    assert "Looking up the family first." in result.final_text

    first, second = claude.messages.requests
    assert first["model"] == "test-model"
    assert first["system"] == AGENT_SYSTEM_PROMPT
    assert first["tools"] == AGENT_TOOLS
    assert first["messages"] == [{"role": "user", "content": "Describe the shoes family"}]

    tool_result = second["messages"][-1]["content"][0]
    assert tool_result["type"] == "tool_result"
    assert tool_result["tool_use_id"] == "t1"
    assert json.loads(tool_result["content"])["family"] == "shoes"


@pytest.mark.asyncio
async def test_agent_stops_on_end_turn_without_tools(products):
    claude = scripted_client(reply("end_turn", text_block("Nothing to do.")))
    agent = CatalogAgent(products, anthropic_client=claude)

    result = await agent.run("Say hello")

    assert result.iterations == 1
    assert result.success is False
    assert result.summary is None
    assert result.final_text == "Nothing to do."


@pytest.mark.asyncio
async def test_agent_respects_iteration_limit(products):
    claude = scripted_client(*[
        reply("tool_use", tool_block(f"t{i}", "unopim_get_family_schema", {"family": "shoes"}))
        for i in range(3)
    ])
    agent = CatalogAgent(products, anthropic_client=claude, max_iterations=3)

    result = await agent.run("Loop forever")

    assert result.iterations == 3
    assert result.success is False
    assert len(claude.messages.requests) == 3


@pytest.mark.asyncio
async def test_agent_records_failed_tool_calls(products):
    claude = scripted_client(
        reply("tool_use", tool_block("t1", "unopim_smart_create_product", {"family": "shoes"})),
        reply("tool_use", tool_block("t2", "report_completion", {"summary": "Could not create", "failed_count": 1})),
    )
    agent = CatalogAgent(products, anthropic_client=claude)

    result = await agent.run("Create a product")

    assert result.success is False
    assert result.errors == [{"tool": "unopim_smart_create_product", "code": "INVALID_INPUT"}]
