#!/usr/bin/env python3
"""MyGo MCP Server - Module Entry Point.

Allows running the server as: python -m mygo_mcp
"""

import argparse
import asyncio

from mygo_mcp import __version__ as VERSION


def main() -> None:
    """Main entry point for the MyGo MCP server."""
    parser = argparse.ArgumentParser(
        description="MyGo MCP Server",
        prog="mygo-mcp",
    )

    parser.add_argument(
        "--version",
        action="store_true",
        help="Show version information",
    )

    args = parser.parse_args()

    if args.version:
        print(f"MyGo MCP Server v{VERSION}")
        return

    from mygo_mcp.main import main as server_main

    asyncio.run(server_main())


if __name__ == "__main__":
    main()
