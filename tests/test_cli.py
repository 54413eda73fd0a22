import io
import json

import pytest
import yaml

from atmoctl.cli import (
    CommandError,
    build_parser,
    main,
    parse_resource_args,
    run_failover,
    run_get,
)
from atmoctl.nbdb import (
    Change,
    GatewayChassis,
    LogicalRouter,
    LogicalRouterPort,
    MemoryNB,
)
from atmoctl.ovnrouter import Manager
from atmoctl.resources import Registry, RouterResource

ROUTER_UUID = "266b4831-c71b-46f0-bfdc-a0bd189db632"
ROUTER_UUID2 = "366b4831-c71b-46f0-bfdc-a0bd189db632"
PORT_UUID1 = "1637f6e5-360b-47d0-b867-04c6f155c697"
PORT_UUID2 = "1a3a3c85-bf28-4285-9a64-44685309b49d"
CHASSIS_UUIDS = [
    "aa3fd293-3f8c-42f9-9d72-4afa984727b3",
    "bb4fd293-3f8c-42f9-9d72-4afa984727b3",
    "cc4fd293-3f8c-42f9-9d72-4afa984727b3",
]


class _StatusSync:
    """Keeps each port's hosting-chassis status on its highest-priority chassis."""

    def __init__(self, nb):
        self.nb = nb
        self.ports = set()
        nb.on_change(self)

    def __call__(self, change, row):
        if isinstance(row, LogicalRouterPort) and change is Change.ADDED:
            self.ports.add(row.uuid)
            self._refresh(row.uuid)
        elif isinstance(row, GatewayChassis) and change is Change.UPDATED:
            for uuid in list(self.ports):
                port = self.nb.get_logical_router_port(uuid)
                if row.uuid in port.gateway_chassis:
                    self._refresh(uuid)

    def _refresh(self, uuid):
        port = self.nb.get_logical_router_port(uuid)
        chassis = [self.nb.get_gateway_chassis(u) for u in port.gateway_chassis]
        best = max(chassis, key=lambda gc: gc.priority, default=None)
        self.nb.set_port_status(
            uuid, {"hosting-chassis": best.chassis_name if best else ""}
        )


def _nb(chassis_count, router_name=None):
    external_ids = {"neutron:router_name": router_name} if router_name else {}
    rows = [
        LogicalRouter(
            name="neutron-" + ROUTER_UUID,
            ports=[PORT_UUID1, PORT_UUID2],
            external_ids=external_ids,
        ),
        LogicalRouterPort(
            uuid=PORT_UUID1,
            name="lrp-1",
            networks=["172.24.4.10/24"],
            external_ids={"neutron:is_ext_gw": "True"},
            gateway_chassis=CHASSIS_UUIDS[:chassis_count],
        ),
        LogicalRouterPort(uuid=PORT_UUID2, name="lrp-2"),
    ]
    rows += [
        GatewayChassis(
            uuid=uuid,
            name=f"lrp-1_gwc-{i}",
            chassis_name=f"gwc-{i}",
            priority=i,
        )
        for i, uuid in enumerate(CHASSIS_UUIDS[:chassis_count], start=1)
    ]
    nb = MemoryNB(rows)
    _StatusSync(nb)
    return nb


def _registry():
    registry = Registry()
    registry.register(RouterResource())
    return registry


def _two_routers():
    nb = MemoryNB(
        [
            LogicalRouter(name="neutron-" + ROUTER_UUID2),
            LogicalRouter(name="neutron-" + ROUTER_UUID),
        ]
    )
    return nb


# parse_resource_args


def test_parse_resource_type_only():
    assert parse_resource_args(["routers"]) == ("routers", [])


def test_parse_space_separated_names_with_commas():
    assert parse_resource_args(["routers", "u1", "u2,u3"]) == (
        "routers",
        ["u1", "u2", "u3"],
    )


def test_parse_slash_form_lowercases_and_splits():
    assert parse_resource_args(["Router/A,b"]) == ("router", ["a", "b"])


@pytest.mark.parametrize(
    "args, message",
    [
        (["a/b/c"], "more than one slash"),
        (["/x"], "must have a single resource and name"),
        (["router/"], "must have a single resource and name"),
        (["router/x", "y"], "no need to specify additional arguments"),
        ([], "no arguments provided"),
    ],
)
def test_parse_resource_args_errors(args, message):
    with pytest.raises(CommandError, match=message):
        parse_resource_args(args)


# run_get


def test_get_table_output_lists_routers_sorted():
    out = io.StringIO()
    run_get(_two_routers(), _registry(), ["routers"], "", False, out)
    lines = out.getvalue().splitlines()
    assert lines[0].split() == ["UUID", "NAME", "AGENT", "EXTERNAL-IPS"]
    assert [line.split()[0] for line in lines[1:]] == [ROUTER_UUID, ROUTER_UUID2]
    assert lines[1].split()[2:] == ["<none>", "<none>"]


def test_get_no_headers_omits_header_row():
    out = io.StringIO()
    run_get(_two_routers(), _registry(), ["router"], "", True, out)
    lines = out.getvalue().splitlines()
    assert len(lines) == 2
    assert all("UUID" not in line for line in lines)


def test_get_wide_adds_columns():
    out = io.StringIO()
    run_get(_two_routers(), _registry(), ["routers"], "wide", False, out)
    header = out.getvalue().splitlines()[0].split()
    assert header[-2:] == ["ENABLED", "PORTS"]


def test_get_json_filters_by_uuid():
    out = io.StringIO()
    run_get(_two_routers(), _registry(), [f"router/{ROUTER_UUID2}"], "json", False, out)
    data = json.loads(out.getvalue())
    assert data["kind"] == "RouterList"
    assert [item["metadata"]["uid"] for item in data["items"]] == [ROUTER_UUID2]


def test_get_yaml_round_trips():
    out = io.StringIO()
    run_get(_two_routers(), _registry(), ["routers"], "yaml", False, out)
    data = yaml.safe_load(out.getvalue())
    assert [item["metadata"]["uid"] for item in data["items"]] == [
        ROUTER_UUID,
        ROUTER_UUID2,
    ]


def test_get_shows_agent_and_external_ips():
    out = io.StringIO()
    run_get(_nb(2), _registry(), ["routers"], "", True, out)
    cells = out.getvalue().split()
    assert cells == [ROUTER_UUID, ROUTER_UUID, "gwc-2", "172.24.4.10/24"]


def test_get_without_resource_fails():
    with pytest.raises(CommandError, match="Available resources: routers"):
        run_get(_two_routers(), _registry(), [], "", False, io.StringIO())


def test_get_unknown_resource_fails():
    with pytest.raises(CommandError, match="unknown resource type: switches"):
        run_get(_two_routers(), _registry(), ["switches"], "", False, io.StringIO())


# run_failover


def test_failover_requires_uuids_or_all():
    with pytest.raises(CommandError, match="must specify router UUIDs"):
        run_failover(_two_routers(), [], False, 1.0, io.StringIO())


def test_failover_rejects_uuids_with_all():
    with pytest.raises(CommandError, match="cannot specify router UUIDs"):
        run_failover(_two_routers(), [ROUTER_UUID], True, 1.0, io.StringIO())


def test_failover_unknown_router():
    with pytest.raises(CommandError, match='router with UUID "missing" not found'):
        run_failover(_two_routers(), [f"{ROUTER_UUID},missing"], False, 1.0, io.StringIO())


def test_failover_all_with_no_routers():
    out = io.StringIO()
    run_failover(MemoryNB(), [], True, 1.0, out)
    assert out.getvalue() == "Found 0 routers to failover\nNo routers to failover\n"


def test_failover_reports_failure():
    out = io.StringIO()
    with pytest.raises(CommandError, match="1 router\\(s\\) failed to failover"):
        run_failover(_nb(1), [ROUTER_UUID], False, 1.0, out)
    text = out.getvalue()
    assert "FAILED: " in text
    assert "only one gateway chassis" in text
    assert "Failover complete: 0 succeeded, 1 failed" in text


def test_failover_success_moves_router():
    nb = _nb(2, router_name="edge")
    out = io.StringIO()
    run_failover(nb, [ROUTER_UUID], False, 5.0, out)
    text = out.getvalue()
    assert f"Triggering failover for router edge ({ROUTER_UUID})... SUCCESS\n" in text
    assert text.endswith("\nFailover complete: 1 succeeded, 0 failed\n")
    manager = Manager(nb)
    assert manager.get_hosting_agent(manager.get_by_uuid(ROUTER_UUID)) == "gwc-1"


# build_parser


def test_parser_failover_defaults():
    ns = build_parser().parse_args(["failover", "--all"])
    assert ns.all_routers is True
    assert ns.timeout == 30.0
    assert ns.ovn_namespace == "openstack"
    assert ns.uuids == []


def test_parser_parses_durations():
    parser = build_parser()
    assert parser.parse_args(["failover", "--timeout", "1m30s", "x"]).timeout == 90.0
    assert parser.parse_args(["failover", "--timeout=500ms", "x"]).timeout == 0.5


def test_parser_rejects_bad_duration():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["failover", "--timeout", "soon", "x"])


def test_parser_collects_endpoints():
    ns = build_parser().parse_args(
        [
            "get",
            "routers",
            "--ovn-endpoints",
            "tcp:ovn-nb-0:6641,tcp:ovn-nb-1:6641",
            "--ovn-endpoints",
            "tcp:ovn-nb-2:6641",
            "-o",
            "json",
        ]
    )
    assert ns.ovn_endpoints == [
        "tcp:ovn-nb-0:6641",
        "tcp:ovn-nb-1:6641",
        "tcp:ovn-nb-2:6641",
    ]
    assert ns.output == "json"
    assert ns.args == ["routers"]


# main


def test_main_without_command_prints_help(capsys):
    assert main([]) == 0
    assert "Atmosphere is a tool for managing cloud infrastructure deployments." in (
        capsys.readouterr().out
    )


def test_main_get_without_resource_fails(capsys):
    assert main(["get"]) == 1
    assert "you must specify the type of resource to get" in capsys.readouterr().err


def test_main_get_unknown_resource_fails(capsys):
    assert main(["get", "bogus"]) == 1
    assert "unknown resource type: bogus" in capsys.readouterr().err


def test_main_failover_without_uuids_fails(capsys):
    assert main(["failover"]) == 1
    assert "you must specify router UUIDs or use --all flag" in capsys.readouterr().err


def test_main_reports_invalid_endpoint(capsys):
    assert main(["get", "routers", "--ovn-endpoints", "ftp:host:1"]) == 1
    assert "unsupported endpoint scheme" in capsys.readouterr().err