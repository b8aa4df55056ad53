"""agentherd: supervise interactive agent CLI processes."""

__version__ = "0.1.0"
