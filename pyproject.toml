[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "chatlogkit"
version = "0.1.0"
description = "Configuration, account context, error types, MCP session plumbing and a command line for a chat log archive"
requires-python = ">=3.10"
dependencies = []
keywords = ["chat", "chatlog", "mcp", "json-rpc", "sse", "configuration", "crontab"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Communications :: Chat",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
chatlog = "chatlogkit.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["chatlogkit"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
