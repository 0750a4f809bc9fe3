#!/usr/bin/env python3
"""
UnoPim Catalog LLM Agent.

This module runs a Claude tool-use loop over the catalog tools. Claude
inspects family schemas, creates products from flat values, validates
structured values and uploads media, then reports completion.

Usage:
    from pim_agent.integrations.unopim.agent import CatalogAgent

    async with create_unopim_client(settings) as client:
        agent = CatalogAgent(ProductService(client))
        result = await agent.run("Create SKU TS-001 in family shoes ...")
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from anthropic import AsyncAnthropic

from pim_agent.core.config import (
    PIM_AGENT_MAX_ITERATIONS,
    PIM_AGENT_MAX_TOKENS,
    PIM_AGENT_MODEL,
)
from pim_agent.integrations.unopim.products import ProductService
from pim_agent.integrations.unopim.tools import AGENT_TOOLS, CatalogToolbox, ToolCallRecord

logger = logging.getLogger(__name__)


# =============================================================================
# Agent Result Types
# =============================================================================

@dataclass
class AgentResult:
    """Overall result of one agent run."""
    success: bool
    iterations: int = 0
    summary: Optional[str] = None
    tool_calls: List[ToolCallRecord] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)
    final_text: str = ""
    duration_seconds: float = 0


# =============================================================================
# Agent System Prompt
# =============================================================================

AGENT_SYSTEM_PROMPT = """You are a UnoPim catalog management agent. You manage products in a Product Information Management system through the tools provided.

## How values are stored

Every attribute value lives in exactly one scope, decided by the attribute:
- common: neither per-locale nor per-channel
- locale_specific: per locale
- channel_specific: per channel
- channel_locale_specific: per channel and per locale

## Your Workflow

1. Call unopim_get_family_schema for the family you are working with.
2. Create products with unopim_smart_create_product using FLAT values; scoping is done for you.
   Use validate_only=true first when you are unsure about the data.
3. If validation reports missing required attributes, fix the values and try again.
4. Upload images with unopim_upload_product_media after the product exists.
5. Call report_completion with a summary.

## Error Handling

- Tool failures come back as {"success": false, "error": {"code", "message", "retry_possible"}}.
- Retry a call only when retry_possible is true, and at most once.
- NOT_FOUND, VALIDATION_ERROR and DUPLICATE_CODE need different input, not a retry.
- Attribute option values are case-sensitive.

## Important Notes

- Do not invent attribute codes; use the family schema.
- Always call report_completion when done, even if some operations failed.
"""


# =============================================================================
# Agent Implementation
# =============================================================================

class CatalogAgent:
    """Claude agent driving the UnoPim catalog tools."""

    def __init__(
        self,
        products: ProductService,
        anthropic_client: Optional[AsyncAnthropic] = None,
        model: str = PIM_AGENT_MODEL,
        max_tokens: int = PIM_AGENT_MAX_TOKENS,
        max_iterations: int = PIM_AGENT_MAX_ITERATIONS,
    ):
        """
        Initialize the agent.

        Args:
            products: ProductService bound to a UnoPim client
            anthropic_client: AsyncAnthropic client (created if not provided)
            model: Claude model ID
            max_tokens: Max tokens for responses
            max_iterations: Max tool use iterations
        """
        self.products = products
        self.anthropic = anthropic_client or AsyncAnthropic()
        self.model = model
        self.max_tokens = max_tokens
        self.max_iterations = max_iterations

    async def run(self, instruction: str) -> AgentResult:
        """
        Run the agent loop for one instruction.

        Args:
            instruction: What to do, in natural language (may embed product data)

        Returns:
            AgentResult with the tool call log and completion summary
        """
        start_time = time.monotonic()
        toolbox = CatalogToolbox(self.products)
        messages: List[Dict[str, Any]] = [{"role": "user", "content": instruction}]
        final_text: List[str] = []

        iteration = 0
        while iteration < self.max_iterations and not toolbox.is_complete:
            iteration += 1
            logger.debug(f"Agent iteration {iteration}")

            response = await self.anthropic.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                system=AGENT_SYSTEM_PROMPT,
                tools=AGENT_TOOLS,
                messages=messages,
            )

            assistant_content = []
            tool_results = []

            for block in response.content:
                if block.type == "text":
                    logger.info(f"Claude: {block.text}")
                    final_text.append(block.text)
                    assistant_content.append(block)

                elif block.type == "tool_use":
                    assistant_content.append(block)
                    result = await toolbox.handle_tool_call(block.name, block.input)
                    tool_results.append({
                        "type": "tool_result",
                        "tool_use_id": block.id,
                        "content": result,
                    })

                else:
                    assistant_content.append(block)

            messages.append({"role": "assistant", "content": assistant_content})

            if tool_results:
                messages.append({"role": "user", "content": tool_results})

            if response.stop_reason == "end_turn" and not tool_results:
                logger.info("Agent completed (end_turn)")
                break

        if iteration >= self.max_iterations and not toolbox.is_complete:
            logger.warning(f"Agent stopped after reaching {self.max_iterations} iterations")

        failed_calls = [c for c in toolbox.calls if not c.success]
        completion = toolbox.completion
        result = AgentResult(
            success=completion is not None and completion.failed_count == 0,
            iterations=iteration,
            summary=completion.summary if completion else None,
            tool_calls=list(toolbox.calls),
            errors=[{"tool": c.name, "code": c.error_code} for c in failed_calls],
            final_text="\n".join(final_text),
            duration_seconds=time.monotonic() - start_time,
        )

        logger.info("=" * 60)
        logger.info("AGENT COMPLETE")
        logger.info("=" * 60)
        logger.info(f"Iterations: {result.iterations}")
        logger.info(f"Tool calls: {len(result.tool_calls)} ({len(failed_calls)} failed)")
        logger.info(f"Duration: {result.duration_seconds:.2f}s")

        return result

