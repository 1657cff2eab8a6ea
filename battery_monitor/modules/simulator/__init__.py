"""
Simulator Module - Synthetic battery telemetry.
"""
from battery_monitor.modules.simulator.perturbation import SimulatorConfig
from battery_monitor.modules.simulator.seed import seed_demo_data
from battery_monitor.modules.simulator.simulator import TelemetrySimulator

__all__ = ["SimulatorConfig", "TelemetrySimulator", "seed_demo_data"]
