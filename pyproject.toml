[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "mcptodo"
version = "0.1.0"
description = "A TODO list MCP server with SQLite storage, full-text search and duplicate detection."
requires-python = ">=3.10"
dependencies = []
keywords = ["mcp", "todo", "tasks", "sqlite", "json-rpc", "productivity"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: End Users/Desktop",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Office/Business :: Scheduling",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
mcptodo = "mcptodo.server:main"

[tool.hatch.build.targets.wheel]
packages = ["mcptodo"]

[tool.pytest.ini_options]
addopts = "-ra"
