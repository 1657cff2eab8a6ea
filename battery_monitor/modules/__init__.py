"""
Battery Monitor Modules

- batteries: Battery records, history, usage patterns, recommendations
- realtime: Change broadcaster, SSE / WebSocket transport, client reconciler
- simulator: Telemetry simulator and demo seed data
"""
