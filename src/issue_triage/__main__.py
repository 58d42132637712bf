#!/usr/bin/env python3
"""issue-triage entry point.

Run:
  python -m issue_triage serve          # start the HTTP API (uvicorn)
  python -m issue_triage mcp            # start the MCP server (stdio)
  python -m issue_triage --test         # list tools and resources then exit
"""

import argparse
import asyncio
import logging
import sys

from issue_triage.config import load_config_from_env
from issue_triage.errors import TriageError

logger = logging.getLogger("issue_triage")


def parse_args(argv: list[str]) -> argparse.Namespace:
    """Parse CLI arguments."""
    parser = argparse.ArgumentParser(prog="issue_triage", add_help=True)
    parser.add_argument(
        "--test",
        action="store_true",
        help="Run built-in self tests (tool & resource listing) then exit.",
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO).")
    parser.add_argument(
        "command",
        nargs="?",
        choices=("serve", "mcp"),
        default="serve",
        help="serve: HTTP API; mcp: MCP server over stdio.",
    )
    return parser.parse_args(argv)


def self_test() -> None:
    from issue_triage.server import resource_definitions, tool_definitions

    tools = tool_definitions()
    resources = resource_definitions()
    print(f"{len(tools)} tools, {len(resources)} resources", file=sys.stderr)


def main(argv: list[str] | None = None) -> None:
    """CLI dispatcher."""
    args = parse_args(sys.argv[1:] if argv is None else argv)
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )

    if args.test:
        self_test()
        return

    try:
        config = load_config_from_env()
    except TriageError as exc:
        logger.error("Startup configuration error: %s", exc.message)
        raise SystemExit(2) from exc

    try:
        if args.command == "mcp":
            from issue_triage.server import run_server

            asyncio.run(run_server(config))
        else:
            from issue_triage.web import run

            run(config)
    except KeyboardInterrupt:
        print("\nServer stopped by user", file=sys.stderr)


if __name__ == "__main__":
    main()
