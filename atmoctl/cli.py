"""The ``atmosphere`` command: listing OVN resources and failing routers over."""

from __future__ import annotations

import argparse
import re
import sys
from collections.abc import Iterable, Sequence
from typing import IO, Any

from atmoctl.nbdb import NBClient, NBError
from atmoctl.ovnrouter import Manager
from atmoctl.ovsdb import OVSDBClient
from atmoctl.resources import (
    OVNConfig,
    Registry,
    Resource,
    RouterResource,
    print_object,
    print_table,
    split_resource_argument,
)

DEFAULT_TIMEOUT = 30.0
DEFAULT_NAMESPACE = "openstack"

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


class CommandError(Exception):
    """Raised when a command cannot carry out what it was asked to do."""


def _parse_duration(text: str) -> float:
    """Parse a duration such as ``30s``, ``1m30s`` or ``500ms`` into seconds."""
    value = text.strip()
    sign = 1.0
    if value[:1] in "+-" and value:
        sign = -1.0 if value[0] == "-" else 1.0
        value = value[1:]
    if value == "0":
        return 0.0
    if not value:
        raise argparse.ArgumentTypeError(f"invalid duration {text!r}")
    total = 0.0
    position = 0
    while position < len(value):
        match = _DURATION_PART.match(value, position)
        if match is None:
            raise argparse.ArgumentTypeError(f"invalid duration {text!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()
    return sign * total


def _string_slice(text: str) -> list[str]:
    return [item.strip() for item in text.split(",") if item.strip()]


def parse_resource_args(args: Sequence[str]) -> tuple[str, list[str]]:
    """Split ``resource name...`` or ``resource/name`` arguments into type and names."""
    if not args:
        raise CommandError("no arguments provided")

    first = args[0].lower()
    if "/" in first:
        parts = first.split("/")
        if len(parts) != 2:
            raise CommandError(
                "arguments in resource/name form may not have more than one slash"
            )
        resource_type, resource_name = parts
        if not resource_type or not resource_name:
            raise CommandError(
                "arguments in resource/name form must have a single resource and name"
            )
        if len(args) > 1:
            raise CommandError(
                "there is no need to specify additional arguments when using resource/name form"
            )
        return resource_type, split_resource_argument(resource_name)

    names = [name for arg in args[1:] for name in split_resource_argument(arg)]
    return first, names


def _default_registry() -> Registry:
    registry = Registry()
    registry.register(RouterResource())
    return registry


def _resolve(registry: Registry, args: Sequence[str]) -> tuple[Resource, list[str]]:
    available = ", ".join(registry.names())
    if not args:
        raise CommandError(
            f"you must specify the type of resource to get. Available resources: {available}"
        )
    resource_type, names = parse_resource_args(args)
    resource = registry.get(resource_type)
    if resource is None:
        raise CommandError(
            f"unknown resource type: {resource_type}. Available resources: {available}"
        )
    return resource, names


def _router_uuids(uuids: Iterable[str], all_routers: bool) -> list[str]:
    uuids = list(uuids)
    if not all_routers and not uuids:
        raise CommandError("you must specify router UUIDs or use --all flag")
    if all_routers and uuids:
        raise CommandError("cannot specify router UUIDs when using --all flag")
    return [uuid for arg in uuids for uuid in split_resource_argument(arg)]


def run_get(
    client: NBClient,
    registry: Registry,
    args: Sequence[str],
    output: str = "",
    no_headers: bool = False,
    out: IO[str] | None = None,
) -> None:
    """List the resources named by ``args`` and print them in ``output`` format."""
    out = sys.stdout if out is None else out
    resource, names = _resolve(registry, args)
    data = resource.list(client, names)

    if output in ("json", "yaml"):
        print_object(data, out, output)
        return

    table_of = resource.table
    if output == "wide":
        table_of = getattr(resource, "wide_table", resource.table)
    print_table(table_of(data), out, no_headers)


def run_failover(
    client: NBClient,
    uuids: Iterable[str] = (),
    all_routers: bool = False,
    timeout: float | None = DEFAULT_TIMEOUT,
    out: IO[str] | None = None,
) -> None:
    """Fail over the given routers, or every router, reporting each outcome."""
    out = sys.stdout if out is None else out
    wanted = _router_uuids(uuids, all_routers)
    manager = Manager(client)

    try:
        available = manager.list().items
    except NBError as exc:
        raise CommandError(f"failed to list routers: {exc}") from exc

    if all_routers:
        routers = available
        out.write(f"Found {len(routers)} routers to failover\n")
    else:
        by_uid = {router.uid: router for router in available}
        routers = []
        for uuid in wanted:
            if uuid not in by_uid:
                raise CommandError(f'router with UUID "{uuid}" not found')
            routers.append(by_uid[uuid])

    if not routers:
        out.write("No routers to failover\n")
        return

    succeeded = failed = 0
    for router in routers:
        display = router.name
        if router.name != router.uid:
            display = f"{router.name} ({router.uid})"
        out.write(f"Triggering failover for router {display}... ")
        try:
            manager.failover(router, timeout=timeout)
        except NBError as exc:
            out.write(f"FAILED: {exc}\n")
            failed += 1
        else:
            out.write("SUCCESS\n")
            succeeded += 1

    out.write(f"\nFailover complete: {succeeded} succeeded, {failed} failed\n")
    if failed:
        raise CommandError(f"{failed} router(s) failed to failover")


def _add_ovn_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--ovn-endpoints",
        type=_string_slice,
        action="extend",
        default=[],
        help="OVN database endpoints (default: auto-generated from namespace and statefulset)",
    )
    parser.add_argument(
        "--ovn-namespace",
        default=DEFAULT_NAMESPACE,
        help="Namespace where OVN is deployed",
    )


_GET_EXAMPLES = """\
Examples:
  # List all routers
  atmosphere get routers

  # Get a specific router by UUID (slash notation)
  atmosphere get router/550e8400-e29b-41d4-a716-446655440000

  # Get multiple routers using comma-separated UUIDs
  atmosphere get routers/uuid1,uuid2,uuid3

  # Output in JSON format
  atmosphere get routers -o json

  # Use custom OVN endpoints
  atmosphere get routers --ovn-endpoints tcp:ovn-nb-0:6641,tcp:ovn-nb-1:6641"""

_FAILOVER_EXAMPLES = """\
Examples:
  # Failover a single router
  atmosphere failover 550e8400-e29b-41d4-a716-446655440000

  # Failover multiple routers using comma-separated UUIDs
  atmosphere failover uuid1,uuid2,uuid3

  # Failover all routers
  atmosphere failover --all

  # Failover with custom timeout
  atmosphere failover uuid1 --timeout=60s"""


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the ``atmosphere`` command."""
    parser = argparse.ArgumentParser(
        prog="atmosphere",
        description="Atmosphere is a tool for managing cloud infrastructure deployments.",
    )
    commands = parser.add_subparsers(dest="command", metavar="command")

    resources = ", ".join(_default_registry().names())
    get = commands.add_parser(
        "get",
        help="Display one or many resources",
        description=(
            "Display one or many resources.\n\n"
            "Prints a table of the most important information about the specified "
            "resources.\nYou can filter the list using optional resource UUIDs.\n\n"
            f"Available resources: {resources}"
        ),
        epilog=_GET_EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    get.add_argument("args", nargs="*", metavar="resource [uuid...]")
    get.add_argument(
        "-o", "--output", default="", help="Output format. One of: (json, yaml, wide)"
    )
    get.add_argument(
        "--no-headers",
        action="store_true",
        help="When using the default output format, don't print headers",
    )
    _add_ovn_flags(get)

    failover = commands.add_parser(
        "failover",
        help="Trigger failover for one or more routers",
        description=(
            "Trigger failover for one or more routers.\n\n"
            "Moves routers from their current hosting gateway chassis to the next "
            "available one\nby swapping priorities between the highest and lowest."
        ),
        epilog=_FAILOVER_EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    failover.add_argument("uuids", nargs="*", metavar="router-uuid")
    failover.add_argument(
        "--all", dest="all_routers", action="store_true", help="Failover all routers"
    )
    failover.add_argument(
        "--timeout",
        type=_parse_duration,
        default=DEFAULT_TIMEOUT,
        help="Timeout for each router failover (default: 30s)",
    )
    _add_ovn_flags(failover)

    return parser


def _ovn_config(namespace: argparse.Namespace) -> OVNConfig:
    config = OVNConfig()
    if namespace.ovn_endpoints:
        config.endpoints = list(namespace.ovn_endpoints)
    if namespace.ovn_namespace:
        config.namespace = namespace.ovn_namespace
    return config


def _connect(config: OVNConfig) -> OVSDBClient:
    client = OVSDBClient(config.nb_endpoints())
    try:
        client.connect()
    except NBError as exc:
        raise CommandError(f"failed to connect to OVN: {exc}") from exc
    try:
        client.monitor_all()
    except NBError as exc:
        client.close()
        raise CommandError(f"failed to monitor OVN database: {exc}") from exc
    return client


def main(argv: Sequence[str] | None = None) -> int:
    """Run the command line and return the exit status."""
    parser = build_parser()
    namespace = parser.parse_args(argv)

    if namespace.command is None:
        parser.print_help()
        return 0

    try:
        if namespace.command == "get":
            registry = _default_registry()
            _resolve(registry, namespace.args)
            with _connect(_ovn_config(namespace)) as client:
                run_get(
                    client,
                    registry,
                    namespace.args,
                    namespace.output,
                    namespace.no_headers,
                    sys.stdout,
                )
        else:
            _router_uuids(namespace.uuids, namespace.all_routers)
            with _connect(_ovn_config(namespace)) as client:
                run_failover(
                    client,
                    namespace.uuids,
                    namespace.all_routers,
                    namespace.timeout,
                    sys.stdout,
                )
    except (CommandError, NBError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


def _run() -> Any:
    sys.exit(main())


if __name__ == "__main__":
    _run()