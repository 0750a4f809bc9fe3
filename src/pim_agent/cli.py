#!/usr/bin/env python3
"""
UnoPim Catalog Agent - command line entry point.

Usage:
    pim-agent check
    pim-agent family-schema shoes
    pim-agent validate shoes values.json --locale de_DE
    pim-agent run "Create SKU TS-001 in family shoes named 'Trail Shoe'"
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Dict, List, Optional

from pim_agent.core.config import PIM_AGENT_MAX_ITERATIONS, get_config_summary, validate_config
from pim_agent.core.errors import PimApiError
from pim_agent.integrations.unopim.agent import CatalogAgent
from pim_agent.integrations.unopim.client import create_unopim_client
from pim_agent.integrations.unopim.products import ProductService

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(verbose: bool = False, log_file: Optional[str] = None) -> None:
    """Configure root logging for the CLI."""
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        handlers=handlers,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


# =============================================================================
# Commands
# =============================================================================

async def cmd_check(args: argparse.Namespace) -> int:
    """Validate configuration and acquire a token."""
    settings = validate_config()
    print(get_config_summary(settings))

    async with create_unopim_client(settings) as client:
        await client.token_manager.get_token()

    print("UnoPim authentication OK")
    return 0


async def cmd_family_schema(args: argparse.Namespace) -> int:
    settings = validate_config()
    async with create_unopim_client(settings) as client:
        products = ProductService(
            client,
            default_locale=settings.default_locale,
            default_channel=settings.default_channel,
            default_currency=settings.default_currency,
        )
        schema = await products.get_family_schema(args.family, locale=args.locale, channel=args.channel)
    _print_json(schema)
    return 0


async def cmd_validate(args: argparse.Namespace) -> int:
    """Structure and validate flat values from a JSON file without writing."""
    with open(args.values_file, "r", encoding="utf-8") as f:
        values: Dict[str, Any] = json.load(f)
    if not isinstance(values, dict):
        print("Error: values file must contain a JSON object", file=sys.stderr)
        return 1

    values = dict(values)
    sku = values.pop("sku", "")

    settings = validate_config()
    async with create_unopim_client(settings) as client:
        products = ProductService(
            client,
            default_locale=settings.default_locale,
            default_channel=settings.default_channel,
            default_currency=settings.default_currency,
        )
        result = await products.smart_create_product(
            sku=sku,
            family=args.family,
            values=values,
            locale=args.locale,
            channel=args.channel,
            validate_only=True,
        )
    _print_json(result)
    return 0 if result["success"] else 1


async def cmd_run(args: argparse.Namespace) -> int:
    settings = validate_config()
    async with create_unopim_client(settings) as client:
        products = ProductService(
            client,
            default_locale=settings.default_locale,
            default_channel=settings.default_channel,
            default_currency=settings.default_currency,
        )
        agent = CatalogAgent(products, max_iterations=args.max_iterations)
        result = await agent.run(args.instruction)

    if args.output_json:
        _print_json({
            "success": result.success,
            "iterations": result.iterations,
            "summary": result.summary,
            "tool_calls": [
                {"name": c.name, "success": c.success, "error_code": c.error_code}
                for c in result.tool_calls
            ],
            "errors": result.errors,
            "duration_seconds": round(result.duration_seconds, 2),
        })
    elif result.summary:
        print(result.summary)
    return 0 if result.success else 1


COMMANDS = {
    "check": cmd_check,
    "family-schema": cmd_family_schema,
    "validate": cmd_validate,
    "run": cmd_run,
}


# =============================================================================
# CLI Entry Point
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pim-agent",
        description="UnoPim Catalog Agent - schema-aware product management for UnoPim",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s check
  %(prog)s family-schema shoes
  %(prog)s validate shoes values.json --channel ecommerce
  %(prog)s run "Create SKU TS-001 in family shoes named 'Trail Shoe'"

Environment Variables:
  UNOPIM_BASE_URL        UnoPim base URL
  UNOPIM_CLIENT_ID       OAuth client ID
  UNOPIM_CLIENT_SECRET   OAuth client secret
  UNOPIM_USERNAME        API user name
  UNOPIM_PASSWORD        API user password
  ANTHROPIC_API_KEY      Anthropic API key (run only)
        """
    )
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument("--log-file", type=str, help="Also write logs to this file")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("check", help="Validate configuration and authenticate")

    schema_parser = subparsers.add_parser("family-schema", help="Show a family's attributes and scopes")
    schema_parser.add_argument("family", help="Family code")

    validate_parser = subparsers.add_parser("validate", help="Validate flat values against a family")
    validate_parser.add_argument("family", help="Family code")
    validate_parser.add_argument("values_file", help="JSON file with flat attribute values")

    for sub in (schema_parser, validate_parser):
        sub.add_argument("--locale", type=str, help="Locale (default from UNOPIM_DEFAULT_LOCALE)")
        sub.add_argument("--channel", type=str, help="Channel (default from UNOPIM_DEFAULT_CHANNEL)")

    run_parser = subparsers.add_parser("run", help="Run the catalog agent on an instruction")
    run_parser.add_argument("instruction", help="What the agent should do")
    run_parser.add_argument("--max-iterations", type=int, default=PIM_AGENT_MAX_ITERATIONS, help="Max agent iterations")
    run_parser.add_argument("--output-json", action="store_true", help="Print the result as JSON")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the pim-agent CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(args.verbose, args.log_file)

    try:
        return asyncio.run(COMMANDS[args.command](args))
    except PimApiError as e:
        logger.error(f"UnoPim API error: {e.code.value} {e.message}")
        return 1
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
