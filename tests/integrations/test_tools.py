"""Tests for the catalog tool dispatcher."""

import json

import httpx
import pytest

from conftest import API, shoe_family_routes
from pim_agent.integrations.unopim.products import ProductService
from pim_agent.integrations.unopim.tools import AGENT_TOOLS, CatalogToolbox


@pytest.fixture
def toolbox(backend, make_client):
    backend.issue_tokens()
    shoe_family_routes(backend)
    return CatalogToolbox(ProductService(make_client()))


def test_tool_definitions_are_well_formed():
    names = [tool["name"] for tool in AGENT_TOOLS]
    assert names == [
        "unopim_get_family_schema",
        "unopim_smart_create_product",
        "unopim_validate_product_values",
        "unopim_upload_product_media",
        "unopim_upload_category_media",
        "report_completion",
    ]
    for tool in AGENT_TOOLS:
        schema = tool["input_schema"]
        assert schema["type"] == "object"
        assert set(schema["required"]) <= set(schema["properties"])


@pytest.mark.asyncio
async def test_get_family_schema_tool(toolbox):
    result = json.loads(await toolbox.handle_tool_call("unopim_get_family_schema", {"family": "shoes"}))

    assert result["success"] is True
    assert result["family"] == "shoes"
    assert toolbox.calls[-1].success is True


@pytest.mark.asyncio
async def test_api_errors_become_error_envelope(backend, toolbox):
    backend.add("GET", f"{API}/families/missing", (404, {"message": "Family not found"}))

    result = json.loads(await toolbox.handle_tool_call("unopim_get_family_schema", {"family": "missing"}))

    assert result["success"] is False
    assert result["error"]["code"] == "NOT_FOUND"
    assert result["error"]["retry_possible"] is False
    assert "Family not found" in result["error"]["message"]
    assert toolbox.calls[-1].error_code == "NOT_FOUND"


@pytest.mark.asyncio
async def test_smart_create_validate_only_tool(backend, toolbox):
    result = json.loads(await toolbox.handle_tool_call("unopim_smart_create_product", {
        "sku": "TS-001",
        "family": "shoes",
        "values": {"name": "Trail Shoe", "price": 10},
        "validate_only": True,
    }))

    assert result["success"] is True
    assert result["structured_values"]["common"] == {"sku": "TS-001"}
    assert backend.calls("POST", f"{API}/products") == []


@pytest.mark.asyncio
async def test_missing_input_is_reported(toolbox):
    result = json.loads(await toolbox.handle_tool_call("unopim_smart_create_product", {"family": "shoes"}))

    assert result["success"] is False
    assert result["error"]["code"] == "INVALID_INPUT"
    assert "sku" in result["error"]["message"]


@pytest.mark.asyncio
async def test_unknown_tool(toolbox):
    result = json.loads(await toolbox.handle_tool_call("delete_everything", {}))

    assert result["success"] is False
    assert result["error"]["code"] == "UNKNOWN_TOOL"
    assert toolbox.calls[-1].success is False


@pytest.mark.asyncio
async def test_report_completion(toolbox):
    assert not toolbox.is_complete

    result = json.loads(await toolbox.handle_tool_call("report_completion", {
        "summary": "Created 2 products",
        "successful_count": 2,
        "failed_count": 0,
    }))

    assert result["acknowledged"] is True
    assert toolbox.is_complete
    assert toolbox.completion.summary == "Created 2 products"
    assert toolbox.completion.successful_count == 2


@pytest.mark.asyncio
async def test_values_must_be_an_object(backend, toolbox):
    result = json.loads(await toolbox.handle_tool_call("unopim_smart_create_product", {
        "sku": "TS-001",
        "family": "shoes",
        "values": ["name", "price"],
    }))

    assert result["success"] is False
    assert result["error"]["code"] == "INVALID_INPUT"
    assert result["error"]["retry_possible"] is False
    assert "values" in result["error"]["message"]
    assert backend.api_calls() == []


@pytest.mark.asyncio
async def test_bad_completion_counts_return_an_envelope(toolbox):
    result = json.loads(await toolbox.handle_tool_call("report_completion", {
        "summary": "Done",
        "failed_count": "two",
    }))

    assert result["success"] is False
    assert result["error"]["code"] == "INVALID_INPUT"
    assert result["error"]["retry_possible"] is False
    assert not toolbox.is_complete


@pytest.mark.asyncio
async def test_unexpected_errors_return_an_envelope(backend, make_client):
    backend.issue_tokens()

    def reject_url(request: httpx.Request) -> httpx.Response:
        raise httpx.InvalidURL("Invalid port: 'jpg'")

    downloads = httpx.AsyncClient(transport=httpx.MockTransport(reject_url))
    toolbox = CatalogToolbox(ProductService(make_client(), download_client=downloads))

    result = json.loads(await toolbox.handle_tool_call("unopim_upload_product_media", {
        "sku": "TS-001",
        "attribute": "image",
        "file_url": "https://cdn.example.com:jpg/front",
    }))

    assert result["success"] is False
    assert result["error"]["code"] == "INVALID_INPUT"
    assert "InvalidURL" in result["error"]["message"]
    assert toolbox.calls[-1].error_code == "INVALID_INPUT"
