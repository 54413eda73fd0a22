"""Reading OVN logical routers as Neutron routers and moving them between chassis."""

from __future__ import annotations

import time

from atmoctl.api import Router, RouterList, RouterPortInfo, RouterStatus
from atmoctl.nbdb import LogicalRouter, LogicalRouterPort, NBClient, NBError

ROUTER_PREFIX = "neutron-"
PORT_PREFIX = "lrp-"
ROUTER_NAME_KEY = "neutron:router_name"
EXTERNAL_GATEWAY_KEY = "neutron:is_ext_gw"
HOSTING_CHASSIS_KEY = "hosting-chassis"
DEFAULT_POLL_INTERVAL = 0.5


class RouterError(NBError):
    """Raised when a router cannot be read or failed over."""


class Manager:
    """Looks up routers in the northbound database and triggers failovers."""

    def __init__(self, client: NBClient) -> None:
        self._client = client

    def _convert(self, lr: LogicalRouter) -> Router:
        uid = lr.name.removeprefix(ROUTER_PREFIX)
        name = lr.external_ids.get(ROUTER_NAME_KEY) or uid
        status = RouterStatus(internal_uuid=lr.uuid)

        for port_uuid in lr.ports:
            try:
                lrp = self._client.get_logical_router_port(port_uuid)
            except NBError as exc:
                raise RouterError(
                    f"failed to get logical router port {port_uuid!r} "
                    f"for router {lr.name!r}: {exc}"
                ) from exc

            is_gateway = lrp.external_ids.get(EXTERNAL_GATEWAY_KEY) == "True"
            if is_gateway:
                status.external_ips.extend(lrp.networks)
                status.agent = lrp.status.get(HOSTING_CHASSIS_KEY, "")

            status.ports.append(
                RouterPortInfo(
                    uuid=lrp.name.removeprefix(PORT_PREFIX),
                    internal_uuid=lrp.uuid,
                    is_gateway=is_gateway,
                )
            )

        return Router(name=name, uid=uid, status=status)

    def _port(self, router: Router, port: RouterPortInfo) -> LogicalRouterPort:
        if port.internal_uuid is None:
            raise RouterError(
                f"logical router port {port.uuid!r} for router {router.uid!r} "
                "has no internal UUID"
            )
        try:
            return self._client.get_logical_router_port(port.internal_uuid)
        except NBError as exc:
            raise RouterError(
                f"failed to get logical router port {port.uuid!r} "
                f"for router {router.uid!r}: {exc}"
            ) from exc

    def get_by_uuid(self, uuid: str) -> Router:
        """Return the router whose Neutron UUID is ``uuid``."""
        try:
            found = self._client.find_logical_routers(f"{ROUTER_PREFIX}{uuid}")
        except NBError as exc:
            raise RouterError(f"failed to get router {uuid!r}: {exc}") from exc
        if not found:
            raise RouterError(f"router {uuid!r} not found")
        return self._convert(found[0])

    def list(self) -> RouterList:
        """Return every router; routers that cannot be read are left out."""
        result = RouterList()
        for lr in self._client.list_logical_routers():
            try:
                result.items.append(self._convert(lr))
            except NBError:
                continue
        return result

    def get_hosting_agent(self, router: Router) -> str:
        """Return the chassis currently hosting the router's gateway ports."""
        agent = ""
        for port in router.status.ports:
            if not port.is_gateway:
                continue

            lrp = self._port(router, port)
            if HOSTING_CHASSIS_KEY not in lrp.status:
                raise RouterError(
                    f"no hosting-chassis found in status for logical router port {lrp.uuid!r}"
                )
            chassis = lrp.status[HOSTING_CHASSIS_KEY]

            if not agent:
                agent = chassis
            elif agent != chassis:
                raise RouterError(
                    f"logical router ports for router {router.uid!r} are hosted on "
                    f"multiple agents: {agent!r} and {chassis!r}"
                )

        if not agent:
            raise RouterError(
                f"no hosting-chassis found for any logical router port of router {router.uid!r}"
            )
        return agent

    def failover(
        self,
        router: Router,
        timeout: float | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        """Move the router to its lowest-priority gateway chassis.

        The priorities of the highest and lowest gateway chassis are swapped,
        then the hosting agent is polled every ``poll_interval`` seconds until
        it matches the new chassis. With ``timeout`` of None this waits
        indefinitely.
        """
        deadline = None if timeout is None else time.monotonic() + timeout

        chassis = []
        for port in router.status.ports:
            lrp = self._port(router, port)
            try:
                chassis.extend(self._client.list_gateway_chassis(lrp.gateway_chassis))
            except NBError as exc:
                raise RouterError(
                    f"failed to list gateway chassis for logical router port {lrp.uuid!r}: {exc}"
                ) from exc

        if not chassis:
            raise RouterError(f"no gateway chassis found for router {router.uid!r}")
        if len(chassis) == 1:
            raise RouterError(
                f"only one gateway chassis found for router {router.uid!r}, cannot failover"
            )

        chassis.sort(key=lambda gc: gc.priority)
        next_gc, current_gc = chassis[0], chassis[-1]
        if next_gc.uuid == current_gc.uuid:
            raise RouterError(
                f"unable to determine gateway chassis to swap for router {router.uid!r}"
            )

        try:
            self._client.set_gateway_chassis_priorities(
                {current_gc.uuid: next_gc.priority, next_gc.uuid: current_gc.priority}
            )
        except NBError as exc:
            raise RouterError(f"failed to update gateway chassis priorities: {exc}") from exc

        expected = next_gc.chassis_name
        while True:
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining < poll_interval:
                    time.sleep(max(remaining, 0.0))
                    raise RouterError(
                        f"failed waiting for router {router.uid!r} to failover "
                        f"to {expected!r}: timed out"
                    )
            time.sleep(poll_interval)
            try:
                host = self.get_hosting_agent(router)
            except NBError:
                continue
            if host == expected:
                return