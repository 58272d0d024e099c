"""Chat log archive tooling: settings, account context, errors, MCP session plumbing, crontab setup and a command line."""

__version__ = "0.1.0"

__all__ = [
    "cli",
    "conf",
    "context",
    "cron",
    "database",
    "errors",
    "jsonrpc",
    "mcp_session",
    "mcp_types",
]