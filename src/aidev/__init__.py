"""AIDev - agentic developer toolkit core."""

__version__ = "0.4.0"
