# atmoctl

A command-line tool for looking at the logical routers in an OVN northbound
database and for moving them between gateway chassis.

Routers are read from the `Logical_Router`, `Logical_Router_Port` and
`Gateway_Chassis` tables and shown the way Neutron names them: the router
UUID (the logical router name without its `neutron-` prefix), its Neutron
name (`neutron:router_name`, falling back to the UUID), the chassis hosting
its gateway port and its external IP addresses.

## Installing

```
pip install .
```

This installs the `atmosphere` command. Running it with no subcommand prints
its help.

## Listing routers

```
atmosphere get routers
atmosphere get router 550e8400-e29b-41d4-a716-446655440000
atmosphere get router/550e8400-e29b-41d4-a716-446655440000
atmosphere get routers uuid1 uuid2
atmosphere get routers/uuid1,uuid2,uuid3
```

`routers` and `router` name the same resource. Routers are printed sorted by
UUID; when UUIDs are given, only matching routers are shown. An empty result
prints nothing.

Output formats:

```
atmosphere get routers -o wide
atmosphere get routers -o json
atmosphere get routers -o yaml
atmosphere get routers --no-headers
```

The default table has the columns `UUID`, `NAME`, `AGENT` and
`EXTERNAL-IPS`; missing values show as `<none>`. The wide table adds
`ENABLED` and `PORTS`, which are always `N/A` and `0` for now.

## Failing over routers

Failover swaps the priority of the active (highest priority) gateway chassis
with the lowest priority one, then polls every half second until the
router's gateway port reports the new chassis as its `hosting-chassis`.

```
atmosphere failover 550e8400-e29b-41d4-a716-446655440000
atmosphere failover uuid1 uuid2 uuid3
atmosphere failover uuid1,uuid2,uuid3
atmosphere failover --all
atmosphere failover uuid1 --timeout 60s
```

`--timeout` applies to each router and takes durations such as `500ms`,
`30s` or `1m30s`; the default is 30 seconds. A router needs at least two
gateway chassis to be failed over. The command keeps going when one router
fails, prints a summary, and exits with status 1 if any failed. Errors are
written to standard error as `Error: ...`.

## Connecting to OVN

By default the northbound database is reached at the three members of the
`ovn-ovsdb-nb` StatefulSet in the `openstack` namespace on port 6641
(`tcp:ovn-ovsdb-nb-0.ovn-ovsdb-nb.openstack.svc.cluster.local:6641` and so
on), trying each in turn. Override with:

```
atmosphere get routers --ovn-namespace kube-system
atmosphere get routers --ovn-endpoints tcp:ovn-nb-0:6641,tcp:ovn-nb-1:6641
```

Endpoints are `tcp:host:port` (also accepted as `tcp://host:port`, with IPv6
hosts in brackets) or `unix:/path/to/socket`.

## Using it as a library

```python
from atmoctl.ovsdb import OVSDBClient
from atmoctl.ovnrouter import Manager

with OVSDBClient(["tcp:127.0.0.1:6641"], "OVN_Northbound") as client:
    client.connect(10)
    client.monitor_all()
    manager = Manager(client)
    for router in manager.list().items:
        print(router.uid, manager.get_hosting_agent(router))
```

- `atmoctl.ovsdb.OVSDBClient` speaks OVSDB JSON-RPC, keeps a cache of the
  three router tables up to date through a monitor, and updates gateway
  chassis priorities with `set_gateway_chassis_priorities`.
- `atmoctl.ovnrouter.Manager` offers `get_by_uuid`, `list`,
  `get_hosting_agent` and `failover(router, timeout, poll_interval)`; it
  raises `RouterError` on failure.
- `atmoctl.resources` holds the `Registry`, `RouterResource`, `OVNConfig`
  (with `nb_endpoints()` and `sb_endpoints()`) and the `print_table` and
  `print_object` helpers.
- `atmoctl.api` defines `Router`, `RouterList`, `RouterStatus` and
  `RouterPortInfo`, each with `to_dict()`.
- `atmoctl.nbdb.MemoryNB` offers the same client interface over in-memory
  tables, with `on_change` handlers and `set_port_status`; it is handy for
  tests.

## What it does not do

- It talks to the OVN northbound database directly over TCP or a Unix
  socket. It does not use the Kubernetes API or a kubeconfig, so the default
  cluster DNS endpoints only resolve from inside the cluster; from elsewhere
  pass `--ovn-endpoints`.
- It has no commands for running `ovn-nbctl` or `ovn-sbctl`, and it never
  connects to the southbound database, although `OVNConfig.sb_endpoints()`
  can build its addresses.
- It does not set up port forwarding to database pods.