"""A small OVSDB JSON-RPC client for the OVN northbound database."""

from __future__ import annotations

import codecs
import itertools
import json
import queue
import socket
import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from atmoctl.nbdb import GatewayChassis, LogicalRouter, LogicalRouterPort, NBError

DEFAULT_DATABASE = "OVN_Northbound"
MONITORED_TABLES = (LogicalRouter.TABLE, LogicalRouterPort.TABLE, GatewayChassis.TABLE)
_MONITOR_ID = "atmoctl"


class OVSDBError(NBError):
    """Raised when talking to an OVSDB server fails."""


@dataclass(frozen=True)
class Endpoint:
    scheme: str
    host: str = ""
    port: int = 0
    path: str = ""

    def __str__(self) -> str:
        if self.scheme == "unix":
            return f"unix:{self.path}"
        host = f"[{self.host}]" if ":" in self.host else self.host
        return f"tcp:{host}:{self.port}"


def parse_endpoint(endpoint: str) -> Endpoint:
    """Parse ``tcp:host:port`` (or ``tcp://host:port``) and ``unix:path``."""
    scheme, sep, rest = endpoint.strip().partition(":")
    if not sep or not rest:
        raise OVSDBError(f"invalid endpoint {endpoint!r}")
    scheme = scheme.lower()
    if rest.startswith("//"):
        rest = rest[2:]
    if scheme == "unix":
        if not rest:
            raise OVSDBError(f"invalid endpoint {endpoint!r}")
        return Endpoint("unix", path=rest)
    if scheme != "tcp":
        raise OVSDBError(f"unsupported endpoint scheme {scheme!r} in {endpoint!r}")
    if rest.startswith("["):
        host, bracket, tail = rest[1:].partition("]")
        if not bracket or not tail.startswith(":"):
            raise OVSDBError(f"invalid endpoint {endpoint!r}")
        port_text = tail[1:]
    else:
        host, sep, port_text = rest.rpartition(":")
        if not sep:
            raise OVSDBError(f"endpoint {endpoint!r} has no port")
    if not host:
        raise OVSDBError(f"endpoint {endpoint!r} has no host")
    try:
        port = int(port_text)
    except ValueError:
        raise OVSDBError(f"invalid port in endpoint {endpoint!r}") from None
    if not 0 < port < 65536:
        raise OVSDBError(f"invalid port in endpoint {endpoint!r}")
    return Endpoint("tcp", host=host, port=port)


def _decode(value: Any) -> Any:
    if isinstance(value, list) and len(value) == 2 and isinstance(value[0], str):
        kind, payload = value
        if kind in ("uuid", "named-uuid"):
            return payload
        if kind == "set":
            return [_decode(item) for item in payload]
        if kind == "map":
            return {_decode(key): _decode(item) for key, item in payload}
    return value


def _as_list(value: Any) -> list:
    if value is None:
        return []
    return list(value) if isinstance(value, list) else [value]


def _as_map(value: Any) -> dict:
    return dict(value) if isinstance(value, dict) else {}


def _as_str(value: Any) -> str:
    if isinstance(value, list):
        return str(value[0]) if value else ""
    return "" if value is None else str(value)


def _as_int(value: Any) -> int:
    if isinstance(value, list):
        return int(value[0]) if value else 0
    return int(value or 0)


def _logical_router(uuid: str, columns: dict) -> LogicalRouter:
    return LogicalRouter(
        uuid=uuid,
        name=_as_str(columns.get("name")),
        ports=_as_list(columns.get("ports")),
        external_ids=_as_map(columns.get("external_ids")),
    )


def _logical_router_port(uuid: str, columns: dict) -> LogicalRouterPort:
    return LogicalRouterPort(
        uuid=uuid,
        name=_as_str(columns.get("name")),
        networks=_as_list(columns.get("networks")),
        external_ids=_as_map(columns.get("external_ids")),
        status=_as_map(columns.get("status")),
        gateway_chassis=_as_list(columns.get("gateway_chassis")),
    )


def _gateway_chassis(uuid: str, columns: dict) -> GatewayChassis:
    return GatewayChassis(
        uuid=uuid,
        name=_as_str(columns.get("name")),
        chassis_name=_as_str(columns.get("chassis_name")),
        priority=_as_int(columns.get("priority")),
        external_ids=_as_map(columns.get("external_ids")),
        options=_as_map(columns.get("options")),
    )


class OVSDBClient:
    """Connects to one of several OVSDB endpoints and mirrors the router tables."""

    def __init__(self, endpoints: str | Iterable[str], database: str = DEFAULT_DATABASE) -> None:
        if isinstance(endpoints, str):
            endpoints = endpoints.split(",")
        self._endpoints = [parse_endpoint(e) for e in endpoints if e.strip()]
        if not self._endpoints:
            raise OVSDBError("no endpoints given")
        self.database = database
        self._sock: socket.socket | None = None
        self._reader: threading.Thread | None = None
        self._timeout: float | None = None
        self._send_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._pending: dict[int, queue.Queue] = {}
        self._ids = itertools.count(1)
        self._lost = threading.Event()
        self._cache: dict[str, dict[str, dict]] = {table: {} for table in MONITORED_TABLES}

    @property
    def endpoints(self) -> list[Endpoint]:
        return list(self._endpoints)

    @staticmethod
    def _open(endpoint: Endpoint, timeout: float | None) -> socket.socket:
        if endpoint.scheme == "unix":
            sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
            try:
                sock.settimeout(timeout)
                sock.connect(endpoint.path)
            except OSError:
                sock.close()
                raise
            return sock
        return socket.create_connection((endpoint.host, endpoint.port), timeout)

    def connect(self, timeout: float | None = None) -> None:
        """Connect to the first reachable endpoint and check the database exists."""
        if self._sock is not None:
            raise OVSDBError("already connected")
        errors = []
        for endpoint in self._endpoints:
            try:
                sock = self._open(endpoint, timeout)
            except OSError as exc:
                errors.append(f"{endpoint}: {exc}")
                continue
            break
        else:
            raise OVSDBError("unable to connect to any endpoint: " + "; ".join(errors))

        sock.settimeout(None)
        self._sock = sock
        self._timeout = timeout
        self._lost = threading.Event()
        self._reader = threading.Thread(target=self._read_loop, args=(sock,), daemon=True)
        self._reader.start()

        try:
            databases = self._call("list_dbs", [])
            if not isinstance(databases, list) or self.database not in databases:
                raise OVSDBError(f"database {self.database!r} not served by {endpoint}")
        except OVSDBError:
            self.close()
            raise

    def monitor_all(self) -> None:
        """Start monitoring the router tables and load their current contents."""
        requests = {table: {} for table in MONITORED_TABLES}
        result = self._call("monitor", [self.database, _MONITOR_ID, requests])
        self._apply(result or {})

    def transact(self, operations: Iterable[Mapping[str, Any]]) -> list:
        """Run a transaction and raise if any operation reports an error."""
        ops = [dict(op) for op in operations]
        results = self._call("transact", [self.database, *ops])
        if not isinstance(results, list):
            raise OVSDBError("malformed transaction reply")
        for index, outcome in enumerate(results):
            if isinstance(outcome, dict) and outcome.get("error"):
                detail = outcome.get("details", "")
                if index < len(ops):
                    raise OVSDBError(
                        f"operation {index} ({ops[index].get('op')}) failed: "
                        f"{outcome['error']}: {detail}"
                    )
                raise OVSDBError(f"transaction failed: {outcome['error']}: {detail}")
        if len(results) < len(ops):
            raise OVSDBError("transaction reply has fewer results than operations")
        return results

    def close(self) -> None:
        sock, self._sock = self._sock, None
        if sock is not None:
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            sock.close()
        reader, self._reader = self._reader, None
        if reader is not None and reader is not threading.current_thread():
            reader.join(timeout=5)

    def __enter__(self) -> OVSDBClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def _send(self, message: dict) -> None:
        sock = self._sock
        if sock is None:
            raise OVSDBError("not connected")
        data = json.dumps(message).encode("utf-8")
        try:
            with self._send_lock:
                sock.sendall(data)
        except OSError as exc:
            raise OVSDBError(f"failed to send request: {exc}") from exc

    def _call(self, method: str, params: list) -> Any:
        reply: queue.Queue = queue.Queue(maxsize=1)
        request_id = next(self._ids)
        with self._state_lock:
            if self._sock is None or self._lost.is_set():
                raise OVSDBError("not connected")
            self._pending[request_id] = reply
        try:
            self._send({"method": method, "params": params, "id": request_id})
            try:
                message = reply.get(timeout=self._timeout)
            except queue.Empty:
                raise OVSDBError(f"timed out waiting for {method} reply") from None
        finally:
            with self._state_lock:
                self._pending.pop(request_id, None)
        if message is None:
            raise OVSDBError("connection closed")
        if message.get("error") is not None:
            raise OVSDBError(f"{method} failed: {message['error']}")
        return message.get("result")

    def _read_loop(self, sock: socket.socket) -> None:
        decoder = json.JSONDecoder()
        text = codecs.getincrementaldecoder("utf-8")()
        buffer = ""
        try:
            while True:
                chunk = sock.recv(65536)
                if not chunk:
                    break
                buffer += text.decode(chunk)
                while True:
                    buffer = buffer.lstrip()
                    if not buffer:
                        break
                    try:
                        message, end = decoder.raw_decode(buffer)
                    except json.JSONDecodeError:
                        break
                    buffer = buffer[end:]
                    if isinstance(message, dict):
                        self._dispatch(message)
        except (OSError, ValueError, OVSDBError):
            pass
        finally:
            self._mark_lost()

    def _mark_lost(self) -> None:
        with self._state_lock:
            self._lost.set()
            waiting = list(self._pending.values())
            self._pending.clear()
        for reply in waiting:
            reply.put(None)

    def _dispatch(self, message: dict) -> None:
        method = message.get("method")
        if method == "echo":
            self._send({"id": message.get("id"), "result": message.get("params", []), "error": None})
        elif method == "update":
            params = message.get("params") or []
            if len(params) >= 2 and isinstance(params[1], dict):
                self._apply(params[1])
        elif method is None and "id" in message:
            with self._state_lock:
                reply = self._pending.pop(message["id"], None)
            if reply is not None:
                reply.put(message)

    def _apply(self, table_updates: Mapping[str, Any]) -> None:
        with self._state_lock:
            for table, rows in table_updates.items():
                store = self._cache.setdefault(table, {})
                for uuid, update in (rows or {}).items():
                    new = update.get("new") if isinstance(update, dict) else None
                    if new is None:
                        store.pop(uuid, None)
                        continue
                    columns = {column: _decode(value) for column, value in new.items()}
                    store[uuid] = {**store.get(uuid, {}), **columns}

    def _rows(self, table: str) -> list[tuple[str, dict]]:
        with self._state_lock:
            return [(uuid, dict(columns)) for uuid, columns in self._cache.get(table, {}).items()]

    def list_logical_routers(self) -> list[LogicalRouter]:
        return [_logical_router(uuid, cols) for uuid, cols in self._rows(LogicalRouter.TABLE)]

    def find_logical_routers(self, name: str) -> list[LogicalRouter]:
        return [router for router in self.list_logical_routers() if router.name == name]

    def get_logical_router_port(self, uuid: str) -> LogicalRouterPort:
        with self._state_lock:
            columns = self._cache.get(LogicalRouterPort.TABLE, {}).get(uuid)
        if columns is None:
            raise OVSDBError(f"{LogicalRouterPort.LABEL} {uuid!r} not found")
        return _logical_router_port(uuid, columns)

    def get_gateway_chassis(self, uuid: str) -> GatewayChassis:
        with self._state_lock:
            columns = self._cache.get(GatewayChassis.TABLE, {}).get(uuid)
        if columns is None:
            raise OVSDBError(f"{GatewayChassis.LABEL} {uuid!r} not found")
        return _gateway_chassis(uuid, columns)

    def list_gateway_chassis(self, uuids: Iterable[str]) -> list[GatewayChassis]:
        wanted = set(uuids)
        return [
            _gateway_chassis(uuid, cols)
            for uuid, cols in self._rows(GatewayChassis.TABLE)
            if uuid in wanted
        ]

    def set_gateway_chassis_priorities(self, priorities: Mapping[str, int]) -> None:
        operations = [
            {
                "op": "update",
                "table": GatewayChassis.TABLE,
                "where": [["_uuid", "==", ["uuid", uuid]]],
                "row": {"priority": priority},
            }
            for uuid, priority in priorities.items()
        ]
        if operations:
            self.transact(operations)