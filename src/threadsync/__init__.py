"""threadsync - conversation synchronization core for the agent messaging console."""

__version__ = "0.1.0"
