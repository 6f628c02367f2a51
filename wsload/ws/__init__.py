from .connection import ConnectionState, ConnectionStateMachine, ConnectionTimers

__all__ = ["ConnectionState", "ConnectionStateMachine", "ConnectionTimers"]
