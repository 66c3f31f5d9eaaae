"""Allow running the MCP server as a module.

Usage:
    python -m vacation_calendar.mcp        # starts the MCP server in stdio mode
    uv run python -m vacation_calendar.mcp
"""

from vacation_calendar.mcp.server import main

if __name__ == "__main__":
    main()
