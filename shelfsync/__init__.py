"""shelfsync - reconcile a personal media catalog into a Bitable table."""

__version__ = "0.1.0"
