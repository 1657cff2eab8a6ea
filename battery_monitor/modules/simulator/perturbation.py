"""
Telemetry perturbation math.

The functions here are deterministic: random draws are taken by the caller
from an injected ``random.Random`` and passed in, so every update can be
reproduced in tests.
"""
import random
from dataclasses import dataclass
from datetime import datetime

from battery_monitor.core.config import Settings
from battery_monitor.modules.batteries.health import capacity_for_health, clamp_health
from battery_monitor.modules.batteries.schemas import BatteryRecord, BatteryUpdate


@dataclass(frozen=True)
class SimulatorConfig:
    """Cadences and random-walk parameters of the telemetry simulator."""
    tick_interval: float = 15.0
    bulk_interval: float = 60.0
    # Demo mode: large synthetic jumps, not a physical model
    bulk_enabled: bool = False
    decrease_probability: float = 0.7
    max_decrease: float = 0.5
    max_recovery: float = 0.2
    cycle_increment_probability: float = 0.3
    history_probability: float = 1.0
    recommendation_probability: float = 0.1
    bulk_min_cycle_jump: int = 2000
    bulk_max_cycle_jump: int = 4000
    bulk_min_health_jump: float = 10.0
    bulk_max_health_jump: float = 25.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "SimulatorConfig":
        return cls(
            tick_interval=settings.simulator_tick_interval,
            bulk_interval=settings.simulator_bulk_interval,
            bulk_enabled=settings.simulator_bulk_enabled,
            decrease_probability=settings.simulator_decrease_probability,
            max_decrease=settings.simulator_max_decrease,
            max_recovery=settings.simulator_max_recovery,
            cycle_increment_probability=settings.simulator_cycle_increment_probability,
            history_probability=settings.simulator_history_probability,
            recommendation_probability=settings.simulator_recommendation_probability,
            bulk_min_cycle_jump=settings.simulator_bulk_min_cycle_jump,
            bulk_max_cycle_jump=settings.simulator_bulk_max_cycle_jump,
            bulk_min_health_jump=settings.simulator_bulk_min_health_jump,
            bulk_max_health_jump=settings.simulator_bulk_max_health_jump,
        )


@dataclass(frozen=True)
class Perturbation:
    """New telemetry values for one battery."""
    health_percentage: float
    current_capacity: int
    cycle_count: int

    def to_update(self, now: datetime) -> BatteryUpdate:
        return BatteryUpdate(
            health_percentage=self.health_percentage,
            current_capacity=self.current_capacity,
            cycle_count=self.cycle_count,
            last_updated=now,
        )


def _from_health(battery: BatteryRecord, health: float, cycle_count: int) -> Perturbation:
    health = clamp_health(health)
    return Perturbation(
        health_percentage=health,
        current_capacity=capacity_for_health(battery.initial_capacity, health),
        cycle_count=cycle_count,
    )


def apply_health_delta(
    battery: BatteryRecord,
    delta: float,
    cycle_increment: int = 0,
) -> Perturbation:
    """
    Small random-walk step.

    Health moves by ``delta`` points (clamped to 0..100, two decimals) and
    capacity follows health: round(initial x health / 100).
    """
    return _from_health(
        battery,
        battery.health_percentage + delta,
        battery.cycle_count + cycle_increment,
    )


def apply_bulk_jump(
    battery: BatteryRecord,
    cycle_jump: int,
    cycle_direction: int,
    health_jump: float,
    health_direction: int,
) -> Perturbation:
    """
    Demo "dramatic jump" step.

    Directions are +1 or -1. A cycle subtraction that would go below zero
    adds the jump instead.
    """
    cycles = battery.cycle_count + cycle_direction * cycle_jump
    if cycles < 0:
        cycles = battery.cycle_count + cycle_jump
    return _from_health(
        battery,
        battery.health_percentage + health_direction * health_jump,
        cycles,
    )


def draw_small_step(rng: random.Random, config: SimulatorConfig) -> tuple[float, int]:
    """Random (health delta, cycle increment), biased toward degradation."""
    if rng.random() < config.decrease_probability:
        delta = -rng.uniform(0, config.max_decrease)
    else:
        delta = rng.uniform(0, config.max_recovery)
    cycle_increment = 1 if rng.random() < config.cycle_increment_probability else 0
    return delta, cycle_increment


def draw_bulk_jump(rng: random.Random, config: SimulatorConfig) -> tuple[int, int, float, int]:
    """Random (cycle jump, cycle direction, health jump, health direction)."""
    cycle_jump = rng.randint(config.bulk_min_cycle_jump, config.bulk_max_cycle_jump)
    cycle_direction = rng.choice((1, -1))
    health_jump = rng.uniform(config.bulk_min_health_jump, config.bulk_max_health_jump)
    health_direction = rng.choice((1, -1))
    return cycle_jump, cycle_direction, health_jump, health_direction
