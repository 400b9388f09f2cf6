[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "claude_agent_sdk"
version = "0.1.0"
description = "Building blocks for driving the Claude Code CLI: discovery, command building, stream-JSON parsing, hooks and the control protocol."
requires-python = ">=3.10"
dependencies = []
keywords = ["claude", "agent", "cli", "stream-json", "hooks", "sdk"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Libraries :: Python Modules",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["claude_agent_sdk"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
