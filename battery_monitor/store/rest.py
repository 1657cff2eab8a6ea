"""
Remote REST Record Store.
Talks to a PostgREST endpoint (Supabase style) over httpx.

Usage:
    store = RestBatteryStore("https://project.supabase.co", api_key)
    batteries = await store.list_batteries()
"""
from datetime import datetime
from typing import Any

import httpx

from battery_monitor.core.exceptions import (
    ConflictError,
    StoreUnavailableError,
    ValidationError,
)
from battery_monitor.core.logging import get_logger
from battery_monitor.modules.batteries.schemas import (
    BatteryCreate,
    BatteryRecord,
    BatteryUpdate,
    HistorySample,
    HistorySampleCreate,
    Recommendation,
    RecommendationCreate,
    UsagePattern,
    UsagePatternUpdate,
    utc_now,
)
from battery_monitor.store.base import (
    BatteryStore,
    battery_changes,
    check_resolution,
    new_usage_pattern_fields,
)

logger = get_logger(__name__)

# Remote table names
BATTERIES = "batteries"
HISTORY = "battery_history"
USAGE_PATTERNS = "usage_patterns"
RECOMMENDATIONS = "recommendations"

RETURN_REPRESENTATION = {"Prefer": "return=representation"}


def _eq(value: Any) -> str:
    return f"eq.{value}"


class RestBatteryStore(BatteryStore):
    """Record Store backed by a PostgREST API."""

    backend_name = "rest"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Args:
            base_url: Project URL; ``/rest/v1`` is appended
            api_key: Service or anon key, sent as ``apikey`` and bearer token
            timeout: Per-request timeout in seconds
            transport: Custom httpx transport (tests)
        """
        self.base_url = base_url.rstrip("/") + "/rest/v1"
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
                headers={
                    "apikey": self.api_key,
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                },
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def _request(
        self,
        method: str,
        table: str,
        params: dict[str, Any] | list[tuple[str, Any]] | None = None,
        json: Any = None,
        headers: dict[str, str] | None = None,
    ) -> list[dict[str, Any]]:
        """Send one request and return the decoded row list."""
        client = await self._get_client()
        try:
            response = await client.request(
                method,
                f"/{table}",
                params=params,
                json=json,
                headers=headers,
            )
        except httpx.HTTPError as e:
            logger.warning("REST store request failed", table=table, method=method, error=str(e))
            raise StoreUnavailableError(self.backend_name, str(e)) from e

        if response.status_code == httpx.codes.CONFLICT:
            raise ConflictError(f"Conflicting {table} record")
        if response.status_code in (httpx.codes.BAD_REQUEST, httpx.codes.UNPROCESSABLE_ENTITY):
            raise ValidationError(
                "Record store rejected the request",
                details={"table": table, "response": response.text},
            )
        if response.is_error:
            logger.warning(
                "REST store error response",
                table=table,
                method=method,
                status_code=response.status_code,
            )
            raise StoreUnavailableError(
                self.backend_name,
                f"HTTP {response.status_code} from {table}",
            )

        if not response.content:
            return []
        return response.json()

    async def ping(self) -> None:
        await self._request("GET", BATTERIES, params={"select": "id", "limit": 1})

    # ============== Batteries ==============

    async def list_batteries(self) -> list[BatteryRecord]:
        rows = await self._request("GET", BATTERIES, params={"select": "*", "order": "id.asc"})
        return [BatteryRecord.model_validate(row) for row in rows]

    async def get_battery(self, battery_id: int) -> BatteryRecord | None:
        rows = await self._request("GET", BATTERIES, params={"select": "*", "id": _eq(battery_id)})
        return BatteryRecord.model_validate(rows[0]) if rows else None

    async def create_battery(self, data: BatteryCreate) -> BatteryRecord:
        existing = await self._request(
            "GET",
            BATTERIES,
            params={"select": "id", "serial_number": _eq(data.serial_number)},
        )
        if existing:
            raise ConflictError(f"Battery with serial '{data.serial_number}' already exists")

        payload = data.model_dump(mode="json")
        payload["last_updated"] = utc_now().isoformat()
        rows = await self._request("POST", BATTERIES, json=payload, headers=RETURN_REPRESENTATION)
        battery = BatteryRecord.model_validate(rows[0])
        logger.info("Battery created", battery_id=battery.id, backend=self.backend_name)
        return battery

    async def update_battery(self, battery_id: int, data: BatteryUpdate) -> BatteryRecord | None:
        current = await self.get_battery(battery_id)
        if current is None:
            return None

        changes = BatteryUpdate(**battery_changes(current, data)).model_dump(
            mode="json",
            exclude_none=True,
        )
        rows = await self._request(
            "PATCH",
            BATTERIES,
            params={"id": _eq(battery_id)},
            json=changes,
            headers=RETURN_REPRESENTATION,
        )
        return BatteryRecord.model_validate(rows[0]) if rows else None

    async def delete_battery(self, battery_id: int) -> bool:
        if await self.get_battery(battery_id) is None:
            return False

        for table in (HISTORY, USAGE_PATTERNS, RECOMMENDATIONS):
            await self._request("DELETE", table, params={"battery_id": _eq(battery_id)})
        rows = await self._request(
            "DELETE",
            BATTERIES,
            params={"id": _eq(battery_id)},
            headers=RETURN_REPRESENTATION,
        )
        return bool(rows)

    # ============== History ==============

    async def append_history(self, data: HistorySampleCreate) -> HistorySample:
        rows = await self._request(
            "POST",
            HISTORY,
            json=data.model_dump(mode="json"),
            headers=RETURN_REPRESENTATION,
        )
        return HistorySample.model_validate(rows[0])

    async def list_history(
        self,
        battery_id: int,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[HistorySample]:
        params: list[tuple[str, Any]] = [
            ("select", "*"),
            ("battery_id", _eq(battery_id)),
            ("order", "date.asc,id.asc"),
        ]
        if start is not None:
            params.append(("date", f"gte.{start.isoformat()}"))
        if end is not None:
            params.append(("date", f"lte.{end.isoformat()}"))

        rows = await self._request("GET", HISTORY, params=params)
        return [HistorySample.model_validate(row) for row in rows]

    # ============== Usage patterns ==============

    async def get_usage_pattern(self, battery_id: int) -> UsagePattern | None:
        rows = await self._request(
            "GET",
            USAGE_PATTERNS,
            params={"select": "*", "battery_id": _eq(battery_id)},
        )
        return UsagePattern.model_validate(rows[0]) if rows else None

    async def upsert_usage_pattern(
        self,
        battery_id: int,
        data: UsagePatternUpdate,
    ) -> tuple[UsagePattern, bool]:
        existing = await self.get_usage_pattern(battery_id)
        now = utc_now().isoformat()

        if existing is None:
            payload = {
                "battery_id": battery_id,
                "last_updated": now,
                **new_usage_pattern_fields(data),
            }
            rows = await self._request(
                "POST",
                USAGE_PATTERNS,
                json=payload,
                headers=RETURN_REPRESENTATION,
            )
            return UsagePattern.model_validate(rows[0]), True

        payload = {**data.model_dump(mode="json", exclude_none=True), "last_updated": now}
        rows = await self._request(
            "PATCH",
            USAGE_PATTERNS,
            params={"battery_id": _eq(battery_id)},
            json=payload,
            headers=RETURN_REPRESENTATION,
        )
        return UsagePattern.model_validate(rows[0]), False

    # ============== Recommendations ==============

    async def list_recommendations(self, battery_id: int) -> list[Recommendation]:
        rows = await self._request(
            "GET",
            RECOMMENDATIONS,
            params={"select": "*", "battery_id": _eq(battery_id), "order": "id.asc"},
        )
        return [Recommendation.model_validate(row) for row in rows]

    async def create_recommendation(self, data: RecommendationCreate) -> Recommendation:
        payload = {**data.model_dump(mode="json"), "resolved": False}
        rows = await self._request(
            "POST",
            RECOMMENDATIONS,
            json=payload,
            headers=RETURN_REPRESENTATION,
        )
        return Recommendation.model_validate(rows[0])

    async def resolve_recommendation(
        self,
        recommendation_id: int,
        resolved: bool = True,
    ) -> Recommendation | None:
        check_resolution(resolved)
        rows = await self._request(
            "PATCH",
            RECOMMENDATIONS,
            params={"id": _eq(recommendation_id)},
            json={"resolved": True},
            headers=RETURN_REPRESENTATION,
        )
        return Recommendation.model_validate(rows[0]) if rows else None
