"""Real-time progress client for asynchronous generation jobs."""

__version__ = "0.1.0"
