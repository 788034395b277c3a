"""AI review of bounty code submissions with queued, chunked model calls."""

__version__ = "0.1.0"
