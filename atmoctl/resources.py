"""Resource kinds that can be listed, and how they are printed."""

from __future__ import annotations

import abc
import json
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import IO, Any

import yaml

from atmoctl.api import RouterList
from atmoctl.nbdb import NBClient, NBError
from atmoctl.ovnrouter import Manager, RouterError

NONE_MARKER = "<none>"
_MIN_WIDTH = 10
_PADDING = 3


def split_resource_argument(arg: str) -> list[str]:
    """Split a comma-separated argument, dropping repeats but keeping order."""
    return list(dict.fromkeys(arg.split(",")))


@dataclass
class TableColumn:
    name: str
    type: str = "string"
    description: str = ""


@dataclass
class Table:
    columns: list[TableColumn] = field(default_factory=list)
    rows: list[list[Any]] = field(default_factory=list)
    kind: str = "Table"
    api_version: str = "meta.k8s.io/v1"


class Resource(abc.ABC):
    """A kind of object that the get command can list."""

    name: str = ""
    aliases: tuple[str, ...] = ()

    @abc.abstractmethod
    def list(self, client: NBClient, names: Iterable[str]) -> Any:
        """Fetch the objects, narrowed to ``names`` when any are given."""

    @abc.abstractmethod
    def table(self, data: Any) -> Table:
        """Turn fetched objects into a table."""


class Registry:
    """Resources by name and alias."""

    def __init__(self) -> None:
        self._resources: dict[str, Resource] = {}

    def register(self, resource: Resource) -> None:
        self._resources[resource.name] = resource
        for alias in resource.aliases:
            self._resources[alias] = resource

    def get(self, name: str) -> Resource | None:
        return self._resources.get(name)

    def names(self) -> list[str]:
        """Primary names of registered resources, in registration order."""
        return [name for name, resource in self._resources.items() if name == resource.name]


@dataclass
class OVNConfig:
    """Where the OVN databases can be reached."""

    endpoints: list[str] = field(default_factory=list)
    namespace: str = "openstack"
    nb_statefulset: str = "ovn-ovsdb-nb"
    nb_port: str = "6641"
    sb_statefulset: str = "ovn-ovsdb-sb"
    sb_port: str = "6642"

    def _generated(self, statefulset: str, port: str) -> list[str]:
        return [
            f"tcp:{statefulset}-{ordinal}.{statefulset}.{self.namespace}.svc.cluster.local:{port}"
            for ordinal in range(3)
        ]

    def nb_endpoints(self) -> list[str]:
        if self.endpoints:
            return list(self.endpoints)
        return self._generated(self.nb_statefulset, self.nb_port)

    def sb_endpoints(self) -> list[str]:
        if self.endpoints:
            return list(self.endpoints)
        return self._generated(self.sb_statefulset, self.sb_port)


def _base_columns() -> list[TableColumn]:
    return [
        TableColumn("UUID", "string", "Router UUID"),
        TableColumn("NAME", "string", "Router name from Neutron"),
        TableColumn("AGENT", "string", "Current hosting agent"),
        TableColumn("EXTERNAL-IPS", "string", "External IP addresses (IPv4 and IPv6)"),
    ]


def _require_router_list(data: Any) -> RouterList:
    if not isinstance(data, RouterList):
        raise TypeError(f"expected RouterList, got {type(data).__name__}")
    return data


class RouterResource(Resource):
    """OVN routers."""

    name = "routers"
    aliases = ("router",)

    def list(self, client: NBClient, names: Iterable[str] = ()) -> RouterList:
        try:
            routers = Manager(client).list()
        except NBError as exc:
            raise RouterError(f"failed to list routers: {exc}") from exc
        wanted = set(names)
        if wanted:
            routers.items = [router for router in routers.items if router.uid in wanted]
        routers.items.sort(key=lambda router: router.uid)
        return routers

    @staticmethod
    def _cells(router) -> list[Any]:
        status = router.status
        return [
            router.uid,
            router.name,
            status.agent or NONE_MARKER,
            ",".join(status.external_ips) if status.external_ips else NONE_MARKER,
        ]

    def table(self, data: Any) -> Table:
        routers = _require_router_list(data)
        return Table(
            columns=_base_columns(),
            rows=[self._cells(router) for router in routers.items],
        )

    def wide_table(self, data: Any) -> Table:
        routers = _require_router_list(data)
        columns = _base_columns() + [
            TableColumn("ENABLED", "string", "Router enabled status"),
            TableColumn("PORTS", "integer", "Number of ports"),
        ]
        return Table(
            columns=columns,
            rows=[self._cells(router) + ["N/A", 0] for router in routers.items],
        )


def _format_cell(value: Any) -> str:
    return "" if value is None else str(value)


def print_table(table: Table, out: IO[str], no_headers: bool = False) -> None:
    """Write ``table`` as aligned columns; nothing is written for an empty table."""
    if not table.rows:
        return
    lines = [[_format_cell(cell) for cell in row] for row in table.rows]
    if not no_headers:
        lines.insert(0, [column.name.upper() for column in table.columns])

    columns = list(zip(*lines))
    widths = [
        max(_MIN_WIDTH, max(len(cell) for cell in column) + _PADDING)
        for column in columns[:-1]
    ]
    for line in lines:
        aligned = "".join(cell.ljust(width) for cell, width in zip(line, widths))
        out.write(aligned + (line[-1] if line else "") + "\n")


def print_object(obj: Any, out: IO[str], fmt: str) -> None:
    """Write ``obj`` as JSON or YAML."""
    if fmt == "json":
        out.write(json.dumps(obj.to_dict(), indent=4) + "\n")
    elif fmt == "yaml":
        out.write(yaml.safe_dump(obj.to_dict(), default_flow_style=False, sort_keys=True))
    else:
        raise ValueError(f"unsupported output format: {fmt}")