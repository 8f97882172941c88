"""State, spec linting, verification, strategy and command execution for a plan-driven agent loop."""

__version__ = "1.1.1"