"""Tools for driving the Claude Code CLI: discovery, command building, output parsing, hooks and the control protocol."""

__version__ = "0.1.0"

__all__ = ["__version__"]