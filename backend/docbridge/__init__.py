"""DocBridge: remote execution bridge between an agent and a browser-hosted document editor."""

__version__ = "0.1.0"
