"""
Batteries Module - API Router

Endpoints:
- GET/POST /api/v1/batteries - List / add batteries
- GET/PATCH/DELETE /api/v1/batteries/{id} - Single battery
- GET/POST /api/v1/batteries/{id}/history - Health history
- GET/POST /api/v1/batteries/{id}/usage - Usage pattern (upsert)
- GET/POST /api/v1/batteries/{id}/recommendations - Recommendations
- POST /api/v1/recommendations, PATCH /api/v1/recommendations/{id}
"""
from datetime import datetime

from fastapi import APIRouter, Query, Response, status

from battery_monitor.modules.batteries.dependencies import BatteryServiceDep
from battery_monitor.modules.batteries.schemas import (
    BatteryCreate,
    BatteryRecord,
    BatteryUpdate,
    HistorySample,
    HistorySampleInput,
    Recommendation,
    RecommendationCreate,
    RecommendationInput,
    RecommendationResolve,
    UsagePattern,
    UsagePatternUpdate,
)

router = APIRouter(tags=["Batteries"])


# ============== Batteries ==============

@router.get(
    "/batteries",
    response_model=list[BatteryRecord],
    summary="Battery List",
)
async def list_batteries(service: BatteryServiceDep) -> list[BatteryRecord]:
    """All batteries ordered by id, with derived status."""
    return await service.list_batteries()


@router.get(
    "/batteries/{battery_id}",
    response_model=BatteryRecord,
    summary="Battery Detail",
    responses={404: {"description": "Battery not found"}},
)
async def get_battery(battery_id: int, service: BatteryServiceDep) -> BatteryRecord:
    return await service.get_battery(battery_id)


@router.post(
    "/batteries",
    response_model=BatteryRecord,
    status_code=status.HTTP_201_CREATED,
    summary="Add Battery",
    description="""
Adds a battery and broadcasts a `record_created` event.

`health_percentage` defaults to `current_capacity / initial_capacity x 100`.
A duplicate `serial_number` returns 409.
    """,
    responses={409: {"description": "Serial number already in use"}},
)
async def create_battery(data: BatteryCreate, service: BatteryServiceDep) -> BatteryRecord:
    return await service.create_battery(data)


@router.patch(
    "/batteries/{battery_id}",
    response_model=BatteryRecord,
    summary="Update Battery",
    description="Partial update; broadcasts a `record_updated` event.",
    responses={404: {"description": "Battery not found"}},
)
async def update_battery(
    battery_id: int,
    data: BatteryUpdate,
    service: BatteryServiceDep,
) -> BatteryRecord:
    return await service.update_battery(battery_id, data)


@router.delete(
    "/batteries/{battery_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Battery",
    description="Deletes the battery with its history, usage pattern and recommendations.",
    responses={404: {"description": "Battery not found"}},
)
async def delete_battery(battery_id: int, service: BatteryServiceDep) -> None:
    await service.delete_battery(battery_id)


# ============== History ==============

@router.get(
    "/batteries/{battery_id}/history",
    response_model=list[HistorySample],
    summary="Battery History",
)
async def list_history(
    battery_id: int,
    service: BatteryServiceDep,
    start_date: datetime | None = Query(None, description="Inclusive lower bound"),
    end_date: datetime | None = Query(None, description="Inclusive upper bound"),
) -> list[HistorySample]:
    """History samples ascending by date."""
    return await service.list_history(battery_id, start_date, end_date)


@router.post(
    "/batteries/{battery_id}/history",
    response_model=HistorySample,
    status_code=status.HTTP_201_CREATED,
    summary="Add History Sample",
)
async def add_history(
    battery_id: int,
    data: HistorySampleInput,
    service: BatteryServiceDep,
) -> HistorySample:
    return await service.add_history(battery_id, data)


# ============== Usage patterns ==============

@router.get(
    "/batteries/{battery_id}/usage",
    response_model=UsagePattern,
    summary="Usage Pattern",
    responses={404: {"description": "Battery or usage pattern not found"}},
)
async def get_usage_pattern(battery_id: int, service: BatteryServiceDep) -> UsagePattern:
    return await service.get_usage_pattern(battery_id)


@router.post(
    "/batteries/{battery_id}/usage",
    response_model=UsagePattern,
    summary="Upsert Usage Pattern",
    description="Creates the pattern (201, every field required) or updates the given fields (200).",
)
async def upsert_usage_pattern(
    battery_id: int,
    data: UsagePatternUpdate,
    response: Response,
    service: BatteryServiceDep,
) -> UsagePattern:
    pattern, created = await service.upsert_usage_pattern(battery_id, data)
    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    return pattern


# ============== Recommendations ==============

@router.get(
    "/batteries/{battery_id}/recommendations",
    response_model=list[Recommendation],
    summary="Battery Recommendations",
    description="Battery specific and general recommendations, newest first, at most three.",
)
async def list_recommendations(battery_id: int, service: BatteryServiceDep) -> list[Recommendation]:
    return await service.list_recommendations(battery_id)


@router.post(
    "/batteries/{battery_id}/recommendations",
    response_model=Recommendation,
    status_code=status.HTTP_201_CREATED,
    summary="Add Battery Recommendation",
)
async def add_battery_recommendation(
    battery_id: int,
    data: RecommendationInput,
    service: BatteryServiceDep,
) -> Recommendation:
    return await service.create_recommendation(
        RecommendationCreate(battery_id=battery_id, **data.model_dump())
    )


@router.post(
    "/recommendations",
    response_model=Recommendation,
    status_code=status.HTTP_201_CREATED,
    summary="Create Recommendation",
    description="`battery_id` 0 creates a general recommendation shown for every battery.",
)
async def create_recommendation(
    data: RecommendationCreate,
    service: BatteryServiceDep,
) -> Recommendation:
    return await service.create_recommendation(data)


@router.patch(
    "/recommendations/{recommendation_id}",
    response_model=Recommendation,
    summary="Resolve Recommendation",
    description='Only `{"resolved": true}` is accepted; resolution cannot be undone.',
)
async def resolve_recommendation(
    recommendation_id: int,
    data: RecommendationResolve,
    service: BatteryServiceDep,
) -> Recommendation:
    return await service.resolve_recommendation(recommendation_id, data.resolved)
