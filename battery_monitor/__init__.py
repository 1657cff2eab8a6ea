"""
Battery Monitor

Battery health telemetry: record store, telemetry simulator, change
broadcaster (SSE / WebSocket) and the client-side reconciler.
"""
__version__ = "1.0.0"
