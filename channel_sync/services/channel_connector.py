"""
Channel Connector contract

Every booking channel is served by one ChannelConnector implementation.
The reconciliation engine only talks to channels through this contract
and finds the right implementation through the ConnectorRegistry.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class ChannelDay:
    """One day of a channel calendar, in the channel's own vocabulary."""
    date: date
    raw_status: Optional[str]
    price: Optional[Decimal] = None


class SyncStatus(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


@dataclass
class SyncResult:
    """Outcome of a calendar push to a channel."""
    status: SyncStatus
    count: int = 0
    duration_ms: int = 0
    message: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == SyncStatus.SUCCESS

    @classmethod
    def succeeded(cls, count: int, duration_ms: int = 0) -> "SyncResult":
        return cls(SyncStatus.SUCCESS, count=count, duration_ms=duration_ms)

    @classmethod
    def failed(cls, message: str, duration_ms: int = 0) -> "SyncResult":
        return cls(SyncStatus.FAILED, duration_ms=duration_ms, message=message)

    @classmethod
    def skipped(cls, message: str) -> "SyncResult":
        return cls(SyncStatus.SKIPPED, message=message)


class ChannelConnectorError(Exception):
    """Raised when a channel API call cannot be completed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class ConnectorNotFoundError(LookupError):
    """No connector is registered for a channel."""

    def __init__(self, channel_name: str):
        self.channel_name = channel_name
        super().__init__(f"Connector not found for {channel_name}")


class ChannelConnector(ABC):
    """
    Base class for channel connectors.

    Implementations are expected to bound their own network calls with
    timeouts; both methods may raise.
    """

    @property
    @abstractmethod
    def channel_name(self) -> str:
        """Registry key, e.g. AIRBNB."""

    @abstractmethod
    def get_channel_calendar(self, mapping, date_from: date, date_to: date) -> List[ChannelDay]:
        """
        Read the channel calendar of a mapping for [date_from, date_to).

        An empty list means the channel exposes no calendar to read.
        """

    @abstractmethod
    def push_calendar_update(
        self,
        property_id: str,
        date_from: date,
        date_to: date,
        organization_id: str
    ) -> SyncResult:
        """Push the PMS calendar of a property for [date_from, date_to) to the channel."""


class ConnectorRegistry:
    """Connectors keyed by channel name (case-insensitive)."""

    def __init__(self, connectors: Optional[List[ChannelConnector]] = None):
        self._connectors: Dict[str, ChannelConnector] = {}
        for connector in connectors or []:
            self.register(connector)

    def register(self, connector: ChannelConnector) -> None:
        key = connector.channel_name.upper()
        if key in self._connectors:
            logger.warning(f"Replacing connector registered for channel {key}")
        self._connectors[key] = connector

    def get_connector(self, channel_name: str) -> Optional[ChannelConnector]:
        if not channel_name:
            return None
        return self._connectors.get(channel_name.upper())

    def require(self, channel_name: str) -> ChannelConnector:
        connector = self.get_connector(channel_name)
        if connector is None:
            raise ConnectorNotFoundError(channel_name)
        return connector

    def channel_names(self) -> List[str]:
        return sorted(self._connectors.keys())

    def __contains__(self, channel_name: str) -> bool:
        return self.get_connector(channel_name) is not None

    def __len__(self) -> int:
        return len(self._connectors)
