"""Rows of the OVN northbound database and an in-memory store of them."""

from __future__ import annotations

import copy
import enum
import threading
import uuid as uuidlib
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import ClassVar, Protocol, Union


class NBError(Exception):
    """Raised when a northbound database operation fails."""


@dataclass
class LogicalRouter:
    TABLE: ClassVar[str] = "Logical_Router"
    LABEL: ClassVar[str] = "logical router"

    uuid: str = ""
    name: str = ""
    ports: list[str] = field(default_factory=list)
    external_ids: dict[str, str] = field(default_factory=dict)


@dataclass
class LogicalRouterPort:
    TABLE: ClassVar[str] = "Logical_Router_Port"
    LABEL: ClassVar[str] = "logical router port"

    uuid: str = ""
    name: str = ""
    networks: list[str] = field(default_factory=list)
    external_ids: dict[str, str] = field(default_factory=dict)
    status: dict[str, str] = field(default_factory=dict)
    gateway_chassis: list[str] = field(default_factory=list)


@dataclass
class GatewayChassis:
    TABLE: ClassVar[str] = "Gateway_Chassis"
    LABEL: ClassVar[str] = "gateway chassis"

    uuid: str = ""
    name: str = ""
    chassis_name: str = ""
    priority: int = 0
    external_ids: dict[str, str] = field(default_factory=dict)
    options: dict[str, str] = field(default_factory=dict)


Row = Union[LogicalRouter, LogicalRouterPort, GatewayChassis]


class NBClient(Protocol):
    """What the router logic needs from a northbound database connection."""

    def list_logical_routers(self) -> list[LogicalRouter]: ...

    def find_logical_routers(self, name: str) -> list[LogicalRouter]: ...

    def get_logical_router_port(self, uuid: str) -> LogicalRouterPort: ...

    def get_gateway_chassis(self, uuid: str) -> GatewayChassis: ...

    def list_gateway_chassis(self, uuids: Iterable[str]) -> list[GatewayChassis]: ...

    def set_gateway_chassis_priorities(self, priorities: Mapping[str, int]) -> None: ...

    def close(self) -> None: ...


class Change(enum.Enum):
    ADDED = "added"
    UPDATED = "updated"


ChangeHandler = Callable[[Change, Row], None]

_ROW_TYPES = (GatewayChassis, LogicalRouterPort, LogicalRouter)


class MemoryNB:
    """A northbound database held in memory.

    Handlers registered with :meth:`on_change` see copies of rows as they are
    added or updated.
    """

    def __init__(self, rows: Iterable[Row] = ()) -> None:
        self._tables: dict[type, dict[str, Row]] = {cls: {} for cls in _ROW_TYPES}
        self._handlers: list[ChangeHandler] = []
        self._lock = threading.RLock()
        self._closed = False
        for row in rows:
            self.add(row)

    def _check_open(self) -> None:
        if self._closed:
            raise NBError("client is closed")

    def _store(self, cls: type) -> dict[str, Row]:
        try:
            return self._tables[cls]
        except KeyError:
            raise TypeError(f"unsupported row type {cls.__name__}") from None

    def _require(self, cls: type, uuid: str) -> Row:
        row = self._store(cls).get(uuid)
        if row is None:
            raise NBError(f"{cls.LABEL} {uuid!r} not found")
        return row

    def _emit(self, event: Change, row: Row) -> None:
        for handler in list(self._handlers):
            handler(event, copy.deepcopy(row))

    def add(self, row: Row) -> str:
        """Insert a copy of ``row`` and return its UUID, assigning one if unset."""
        self._check_open()
        store = self._store(type(row))
        row = copy.deepcopy(row)
        if not row.uuid:
            row.uuid = str(uuidlib.uuid4())
        with self._lock:
            if row.uuid in store:
                raise NBError(f"duplicate {row.LABEL} {row.uuid!r}")
            store[row.uuid] = row
        self._emit(Change.ADDED, row)
        return row.uuid

    def on_change(self, handler: ChangeHandler) -> None:
        """Register ``handler``; it first sees every existing row as added."""
        with self._lock:
            existing = [row for cls in _ROW_TYPES for row in self._tables[cls].values()]
            self._handlers.append(handler)
        for row in existing:
            handler(Change.ADDED, copy.deepcopy(row))

    def set_port_status(self, uuid: str, status: Mapping[str, str]) -> None:
        self._check_open()
        with self._lock:
            row = self._require(LogicalRouterPort, uuid)
            row.status = dict(status)
        self._emit(Change.UPDATED, row)

    def list_logical_routers(self) -> list[LogicalRouter]:
        self._check_open()
        with self._lock:
            return [copy.deepcopy(row) for row in self._tables[LogicalRouter].values()]

    def find_logical_routers(self, name: str) -> list[LogicalRouter]:
        return [row for row in self.list_logical_routers() if row.name == name]

    def get_logical_router_port(self, uuid: str) -> LogicalRouterPort:
        self._check_open()
        with self._lock:
            return copy.deepcopy(self._require(LogicalRouterPort, uuid))

    def get_gateway_chassis(self, uuid: str) -> GatewayChassis:
        self._check_open()
        with self._lock:
            return copy.deepcopy(self._require(GatewayChassis, uuid))

    def list_gateway_chassis(self, uuids: Iterable[str]) -> list[GatewayChassis]:
        self._check_open()
        wanted = set(uuids)
        with self._lock:
            return [
                copy.deepcopy(row)
                for row in self._tables[GatewayChassis].values()
                if row.uuid in wanted
            ]

    def set_gateway_chassis_priorities(self, priorities: Mapping[str, int]) -> None:
        """Set several priorities at once; nothing changes if any row is missing."""
        self._check_open()
        wanted = dict(priorities)
        with self._lock:
            rows = [self._require(GatewayChassis, uuid) for uuid in wanted]
            for row in rows:
                row.priority = wanted[row.uuid]
        for row in rows:
            self._emit(Change.UPDATED, row)

    def close(self) -> None:
        self._closed = True