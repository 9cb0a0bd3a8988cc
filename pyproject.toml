[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "smolcode"
version = "0.1.0"
description = "Tools for a coding agent: file editing, shell commands, a SQLite-backed memory and planner, and an MCP client over JSON-RPC."
requires-python = ">=3.10"
dependencies = []
keywords = ["agent", "tools", "mcp", "json-rpc", "planner", "sqlite", "fts"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: POSIX",
    "Topic :: Software Development",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["smolcode"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
