from docbridge.client.remote_client import RemoteBridgeClient, ScriptExecutionError

__all__ = ["RemoteBridgeClient", "ScriptExecutionError"]
