"""docvault: durable document storage with asynchronous remote replication."""

__version__ = "1.0.0"
