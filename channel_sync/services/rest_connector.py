"""
REST calendar connector

Generic connector for channels exposing a day-level calendar API:

    GET  {base_url}/listings/{external_id}/calendar?from=YYYY-MM-DD&to=YYYY-MM-DD
         -> {"days": [{"date": "YYYY-MM-DD", "status": "...", "price": 120.0}, ...]}
    PUT  {base_url}/listings/{external_id}/calendar
         <- {"days": [{"date": "YYYY-MM-DD", "status": "AVAILABLE"}, ...]}

One instance per channel, configured through CHANNEL_ENDPOINTS.
"""

import logging
import time
from datetime import date, timedelta
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional

import httpx

from ..config import settings
from ..models.calendar_day import CalendarDayStatus
from .calendar_diff import index_pms_days
from .channel_connector import (
    ChannelConnector,
    ChannelConnectorError,
    ChannelDay,
    ConnectorRegistry,
    SyncResult,
)

logger = logging.getLogger(__name__)


class RestCalendarConnector(ChannelConnector):
    """
    Calendar connector over HTTP (httpx).

    Reads raise ChannelConnectorError on transport errors and non-2xx
    responses. Pushes report failures through SyncResult instead.
    """

    def __init__(
        self,
        channel_name: str,
        base_url: str,
        calendar_store,
        mapping_store,
        api_key: str = "",
        timeout: float = 20.0,
        transport: Optional[httpx.BaseTransport] = None
    ):
        self._channel_name = channel_name.upper()
        self.base_url = base_url.rstrip("/")
        self.calendar_store = calendar_store
        self.mapping_store = mapping_store
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport

    @property
    def channel_name(self) -> str:
        return self._channel_name

    def _get_headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self.api_key:
            headers["X-Api-Key"] = self.api_key
        return headers

    def _client(self) -> httpx.Client:
        return httpx.Client(
            base_url=self.base_url,
            headers=self._get_headers(),
            timeout=self.timeout,
            transport=self.transport
        )

    # ==================
    # Read
    # ==================

    def get_channel_calendar(self, mapping, date_from: date, date_to: date) -> List[ChannelDay]:
        path = f"/listings/{mapping.external_id}/calendar"
        params = {"from": date_from.isoformat(), "to": date_to.isoformat()}

        try:
            with self._client() as client:
                response = client.get(path, params=params)
        except httpx.TimeoutException as e:
            raise ChannelConnectorError(f"{self.channel_name} calendar read timed out: {e}") from e
        except httpx.HTTPError as e:
            raise ChannelConnectorError(f"{self.channel_name} calendar read failed: {e}") from e

        if not response.is_success:
            raise ChannelConnectorError(
                f"{self.channel_name} calendar read returned HTTP {response.status_code}",
                status_code=response.status_code
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise ChannelConnectorError(f"{self.channel_name} returned an invalid calendar payload") from e

        return self._parse_days((payload or {}).get("days") or [])

    def _parse_days(self, items: List[Dict]) -> List[ChannelDay]:
        days = []
        for item in items:
            try:
                day = date.fromisoformat(item["date"])
            except (KeyError, TypeError, ValueError):
                logger.warning(f"[{self.channel_name}] Skipping calendar entry without a valid date: {item}")
                continue

            price = item.get("price")
            if price is not None:
                try:
                    price = Decimal(str(price))
                except InvalidOperation:
                    price = None

            days.append(ChannelDay(date=day, raw_status=item.get("status"), price=price))
        return days

    # ==================
    # Push
    # ==================

    def push_calendar_update(
        self,
        property_id: str,
        date_from: date,
        date_to: date,
        organization_id: str
    ) -> SyncResult:
        start_time = time.time()

        mappings = self.mapping_store.find_active_for_property(
            property_id, self.channel_name, organization_id
        )
        if not mappings:
            return SyncResult.skipped(f"No active {self.channel_name} mapping for property {property_id}")

        days = self._build_days(property_id, date_from, date_to, organization_id)

        for mapping in mappings:
            path = f"/listings/{mapping.external_id}/calendar"
            try:
                with self._client() as client:
                    response = client.put(path, json={"days": days})
            except httpx.HTTPError as e:
                duration_ms = int((time.time() - start_time) * 1000)
                logger.error(f"[{self.channel_name}] Calendar push failed for {mapping.external_id}: {e}")
                return SyncResult.failed(str(e), duration_ms)

            if not response.is_success:
                duration_ms = int((time.time() - start_time) * 1000)
                message = f"HTTP {response.status_code}: {response.text[:200]}"
                logger.error(f"[{self.channel_name}] Calendar push rejected for {mapping.external_id}: {message}")
                return SyncResult.failed(message, duration_ms)

        duration_ms = int((time.time() - start_time) * 1000)
        logger.info(
            f"[{self.channel_name}] Pushed {len(days)} days for property {property_id} "
            f"({date_from} -> {date_to}) in {duration_ms}ms"
        )
        return SyncResult.succeeded(len(days), duration_ms)

    def _build_days(
        self,
        property_id: str,
        date_from: date,
        date_to: date,
        organization_id: str
    ) -> List[Dict[str, str]]:
        """PMS state for every day in [date_from, date_to); days without a row are AVAILABLE."""
        pms_rows = self.calendar_store.find_by_property_and_date_range(
            property_id, date_from, date_to, organization_id
        )
        by_date = index_pms_days(pms_rows)

        days = []
        current = date_from
        while current < date_to:
            status = by_date.get(current, CalendarDayStatus.AVAILABLE)
            days.append({"date": current.isoformat(), "status": status.value})
            current += timedelta(days=1)
        return days


def build_connector_registry(
    calendar_store,
    mapping_store,
    endpoints: Optional[Dict[str, str]] = None
) -> ConnectorRegistry:
    """One RestCalendarConnector per configured channel endpoint."""
    if endpoints is None:
        endpoints = settings.channel_endpoint_map

    registry = ConnectorRegistry()
    for channel_name, base_url in endpoints.items():
        registry.register(RestCalendarConnector(
            channel_name,
            base_url,
            calendar_store,
            mapping_store,
            api_key=settings.channel_api_key,
            timeout=settings.channel_timeout_seconds
        ))

    if not len(registry):
        logger.warning("No channel endpoints configured (CHANNEL_ENDPOINTS); every reconciliation will fail")
    else:
        logger.info(f"Channel connectors registered: {', '.join(registry.channel_names())}")
    return registry
