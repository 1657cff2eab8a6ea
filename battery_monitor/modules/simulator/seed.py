"""
Demo seed data: four batteries in different condition buckets.
"""
import random
from datetime import datetime, timezone

from battery_monitor.core.logging import get_logger
from battery_monitor.modules.batteries.schemas import (
    GENERAL_RECOMMENDATION_ID,
    BatteryCreate,
    BatteryRecord,
    HistorySampleCreate,
    RecommendationCreate,
    utc_now,
)
from battery_monitor.modules.simulator.templates import GENERAL_TEMPLATE, SEED_TEMPLATES
from battery_monitor.store.base import BatteryStore

logger = get_logger(__name__)


def _demo_battery(
    number: int,
    current_capacity: int,
    health: float,
    cycles: int,
    installed: datetime,
    degradation_rate: float,
) -> BatteryCreate:
    return BatteryCreate(
        name=f"Battery #{number}",
        serial_number=f"BAT-{number:03d}",
        initial_capacity=5000,
        current_capacity=current_capacity,
        health_percentage=health,
        cycle_count=cycles,
        expected_cycles=1000,
        initial_date=installed,
        degradation_rate=degradation_rate,
    )


DEMO_BATTERIES: tuple[BatteryCreate, ...] = (
    _demo_battery(1, 4850, 97, 112, datetime(2024, 1, 15, tzinfo=timezone.utc), 0.3),
    _demo_battery(2, 4100, 82, 320, datetime(2023, 7, 20, tzinfo=timezone.utc), 0.7),
    _demo_battery(3, 3750, 75, 520, datetime(2023, 3, 10, tzinfo=timezone.utc), 1.1),
    _demo_battery(4, 3000, 60, 680, datetime(2022, 10, 5, tzinfo=timezone.utc), 1.8),
)


async def seed_demo_data(
    store: BatteryStore,
    rng: random.Random | None = None,
) -> list[BatteryRecord]:
    """
    Populate an empty store with demo batteries.

    Each battery gets one initial history sample and one recommendation;
    one general recommendation (battery id 0) is added for all of them.
    A store that already holds batteries is left untouched.
    """
    existing = await store.list_batteries()
    if existing:
        logger.info("Batteries found, skipping demo data", count=len(existing))
        return []

    rng = rng or random.Random()
    now = utc_now()
    created: list[BatteryRecord] = []

    for data in DEMO_BATTERIES:
        battery = await store.create_battery(data)
        await store.append_history(
            HistorySampleCreate(
                battery_id=battery.id,
                date=now,
                capacity=battery.current_capacity,
                health_percentage=battery.health_percentage,
                cycle_count=battery.cycle_count,
            )
        )
        template = rng.choice(SEED_TEMPLATES)
        await store.create_recommendation(
            RecommendationCreate(
                battery_id=battery.id,
                type=template.type,
                message=template.render(battery.name, battery.health_percentage),
                created_at=now,
            )
        )
        created.append(battery)

    await store.create_recommendation(
        RecommendationCreate(
            battery_id=GENERAL_RECOMMENDATION_ID,
            type=GENERAL_TEMPLATE.type,
            message=GENERAL_TEMPLATE.message,
            created_at=now,
        )
    )

    logger.info("Demo data created", batteries=len(created))
    return created
