#!/usr/bin/env python3
"""
Catalog tools exposed to Claude.

Defines the tool schemas and dispatches tool calls to the ProductService.
Every tool returns a JSON string; API failures are reported as
{"success": false, "error": {"code", "message", "retry_possible"}}.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pim_agent.core.errors import PimApiError, error_payload
from pim_agent.integrations.unopim.products import ProductService

logger = logging.getLogger(__name__)


# =============================================================================
# Tool Definitions for Claude
# =============================================================================

_MEDIA_SOURCE_PROPERTIES = {
    "file_url": {
        "type": "string",
        "description": "URL to download the file from"
    },
    "file_base64": {
        "type": "string",
        "description": "Base64 encoded file content (used when file_url is not given)"
    },
    "filename": {
        "type": "string",
        "description": "File name to store, e.g. front.jpg"
    }
}

AGENT_TOOLS = [
    {
        "name": "unopim_get_family_schema",
        "description": "Get the attributes of a product family: which are required, their types, and which scope (common, locale_specific, channel_specific, channel_locale_specific) each value must be stored in. Call this before creating products in a family.",
        "input_schema": {
            "type": "object",
            "properties": {
                "family": {
                    "type": "string",
                    "description": "Family code"
                },
                "locale": {
                    "type": "string",
                    "description": "Locale used in the example structure (default from configuration)"
                },
                "channel": {
                    "type": "string",
                    "description": "Channel used in the example structure (default from configuration)"
                }
            },
            "required": ["family"]
        }
    },
    {
        "name": "unopim_smart_create_product",
        "description": "Create a simple product from FLAT attribute values. Values are placed into the correct scope automatically from the family schema, required attributes and value types are validated, and the product is only created if validation passes. Attribute option values are case-sensitive.",
        "input_schema": {
            "type": "object",
            "properties": {
                "sku": {
                    "type": "string",
                    "description": "Product SKU"
                },
                "family": {
                    "type": "string",
                    "description": "Family code"
                },
                "values": {
                    "type": "object",
                    "description": "Flat object of attribute_code -> value, e.g. {\"name\": \"Trail Shoe\", \"price\": {\"USD\": \"89.00\"}}"
                },
                "categories": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Category codes"
                },
                "locale": {
                    "type": "string",
                    "description": "Locale for localized values (default from configuration)"
                },
                "channel": {
                    "type": "string",
                    "description": "Channel for channel specific values (default from configuration)"
                },
                "validate_only": {
                    "type": "boolean",
                    "description": "Only structure and validate, do not create",
                    "default": False
                }
            },
            "required": ["sku", "family", "values"]
        }
    },
    {
        "name": "unopim_validate_product_values",
        "description": "Validate an already structured values object (common / locale_specific / channel_specific / channel_locale_specific) against a family without writing anything. Reports missing required attributes and values stored in the wrong scope.",
        "input_schema": {
            "type": "object",
            "properties": {
                "family": {
                    "type": "string",
                    "description": "Family code"
                },
                "values": {
                    "type": "object",
                    "description": "Structured values object"
                },
                "locale": {
                    "type": "string",
                    "description": "Locale to check (default from configuration)"
                },
                "channel": {
                    "type": "string",
                    "description": "Channel to check (default from configuration)"
                }
            },
            "required": ["family", "values"]
        }
    },
    {
        "name": "unopim_upload_product_media",
        "description": "Upload an image or file to a product's media attribute, from a URL or base64 content.",
        "input_schema": {
            "type": "object",
            "properties": {
                "sku": {
                    "type": "string",
                    "description": "Product SKU"
                },
                "attribute": {
                    "type": "string",
                    "description": "Attribute code of the image/file field"
                },
                **_MEDIA_SOURCE_PROPERTIES
            },
            "required": ["sku", "attribute"]
        }
    },
    {
        "name": "unopim_upload_category_media",
        "description": "Upload an image or file to a category field, from a URL or base64 content.",
        "input_schema": {
            "type": "object",
            "properties": {
                "code": {
                    "type": "string",
                    "description": "Category code"
                },
                "category_field": {
                    "type": "string",
                    "description": "Category field code"
                },
                **_MEDIA_SOURCE_PROPERTIES
            },
            "required": ["code", "category_field"]
        }
    },
    {
        "name": "report_completion",
        "description": "Report that the requested catalog work is finished.",
        "input_schema": {
            "type": "object",
            "properties": {
                "summary": {
                    "type": "string",
                    "description": "Summary of what was accomplished"
                },
                "successful_count": {
                    "type": "integer",
                    "description": "Number of operations that succeeded"
                },
                "failed_count": {
                    "type": "integer",
                    "description": "Number of operations that failed"
                }
            },
            "required": ["summary"]
        }
    }
]


class ToolInputError(ValueError):
    """Raised when Claude sends tool input of the wrong shape."""


def _mapping_input(tool_input: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = tool_input.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ToolInputError(f"'{key}' must be an object of attribute_code -> value, got {type(value).__name__}")
    return value


def _invalid_input(message: str) -> Dict[str, Any]:
    return {
        "success": False,
        "error": {"code": "INVALID_INPUT", "message": message, "retry_possible": False},
    }


@dataclass
class ToolCallRecord:
    """Outcome of one tool call."""
    name: str
    success: bool
    error_code: Optional[str] = None


@dataclass
class CompletionReport:
    """What the agent reported when it finished."""
    summary: str
    successful_count: int = 0
    failed_count: int = 0


class CatalogToolbox:
    """Dispatches Claude tool calls to catalog operations."""

    def __init__(self, products: ProductService):
        self.products = products
        self.calls: List[ToolCallRecord] = []
        self.completion: Optional[CompletionReport] = None

    @property
    def is_complete(self) -> bool:
        return self.completion is not None

    async def handle_tool_call(self, tool_name: str, tool_input: Dict[str, Any]) -> str:
        """
        Handle a tool call from Claude.

        Args:
            tool_name: Name of the tool to call
            tool_input: Input parameters for the tool

        Returns:
            Tool result as a JSON string (sent back to Claude)
        """
        logger.info(f"Tool call: {tool_name}")
        logger.debug(f"Tool input: {json.dumps(tool_input, indent=2, default=str)}")

        try:
            if tool_name == "unopim_get_family_schema":
                result = await self.products.get_family_schema(
                    tool_input["family"],
                    locale=tool_input.get("locale"),
                    channel=tool_input.get("channel"),
                )
                result = {"success": True, **result}

            elif tool_name == "unopim_smart_create_product":
                result = await self.products.smart_create_product(
                    sku=tool_input["sku"],
                    family=tool_input["family"],
                    values=_mapping_input(tool_input, "values"),
                    locale=tool_input.get("locale"),
                    channel=tool_input.get("channel"),
                    categories=tool_input.get("categories"),
                    validate_only=bool(tool_input.get("validate_only", False)),
                )

            elif tool_name == "unopim_validate_product_values":
                result = await self.products.validate_scoped_values(
                    tool_input["family"],
                    _mapping_input(tool_input, "values"),
                    locale=tool_input.get("locale"),
                    channel=tool_input.get("channel"),
                )

            elif tool_name == "unopim_upload_product_media":
                result = await self.products.upload_product_media(
                    sku=tool_input["sku"],
                    attribute=tool_input["attribute"],
                    file_url=tool_input.get("file_url"),
                    file_base64=tool_input.get("file_base64"),
                    filename=tool_input.get("filename"),
                )

            elif tool_name == "unopim_upload_category_media":
                result = await self.products.upload_category_media(
                    code=tool_input["code"],
                    category_field=tool_input["category_field"],
                    file_url=tool_input.get("file_url"),
                    file_base64=tool_input.get("file_base64"),
                    filename=tool_input.get("filename"),
                )

            elif tool_name == "report_completion":
                result = self._report_completion(tool_input)

            else:
                result = {
                    "success": False,
                    "error": {"code": "UNKNOWN_TOOL", "message": f"Unknown tool: {tool_name}", "retry_possible": False},
                }

        except PimApiError as e:
            logger.error(f"Tool error ({tool_name}): {e.code.value} {e.message}")
            result = error_payload(e)

        except KeyError as e:
            result = _invalid_input(f"Missing required input: {e.args[0]}")

        except ToolInputError as e:
            result = _invalid_input(str(e))

        except Exception as e:
            logger.exception(f"Tool error ({tool_name}): {e}")
            result = _invalid_input(f"{type(e).__name__}: {e}")

        error = result.get("error")
        self.calls.append(ToolCallRecord(
            name=tool_name,
            success=bool(result.get("success")),
            error_code=error.get("code") if isinstance(error, dict) else None,
        ))
        return json.dumps(result, default=str)

    def _report_completion(self, tool_input: Dict[str, Any]) -> Dict[str, Any]:
        """Mark agent as complete."""
        self.completion = CompletionReport(
            summary=tool_input.get("summary", "Processing complete"),
            successful_count=int(tool_input.get("successful_count", 0)),
            failed_count=int(tool_input.get("failed_count", 0)),
        )
        return {
            "success": True,
            "acknowledged": True,
            "summary": self.completion.summary,
        }
