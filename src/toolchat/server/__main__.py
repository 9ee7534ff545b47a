from __future__ import annotations

import argparse

from toolchat.observability.logging import configure_logging

from .files import mcp


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="toolchat SaveFile MCP server (stdio)")
    p.add_argument("--log-level", default="INFO", help="log level (logs go to stderr)")
    args = p.parse_args(argv)

    # stdout carries the MCP stdio protocol.
    configure_logging(level=args.log_level)
    mcp.run(transport="stdio")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
