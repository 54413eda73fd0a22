"""Router resource types exposed by the command-line tools."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

GROUP = "atmosphere.vexxhost.io"
VERSION = "v1alpha1"
GROUP_VERSION = f"{GROUP}/{VERSION}"

# The API version stamped on router objects handed out to users.
OBJECT_API_VERSION = "atmosphere.vexxhost.com/v1alpha1"


@dataclass
class RouterPortInfo:
    """A logical router port that belongs to a router."""

    uuid: str = ""
    internal_uuid: str | None = None
    is_gateway: bool = False

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.uuid:
            data["uuid"] = self.uuid
        if self.internal_uuid is not None:
            data["internalUUID"] = self.internal_uuid
        if self.is_gateway:
            data["isGateway"] = True
        return data


@dataclass
class RouterStatus:
    """Observed state of a router."""

    agent: str = ""
    external_ips: list[str] = field(default_factory=list)
    internal_uuid: str | None = None
    ports: list[RouterPortInfo] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.agent:
            data["agent"] = self.agent
        if self.external_ips:
            data["externalIPs"] = list(self.external_ips)
        if self.internal_uuid is not None:
            data["internalUUID"] = self.internal_uuid
        if self.ports:
            data["ports"] = [port.to_dict() for port in self.ports]
        return data


@dataclass
class Router:
    """An OVN router as seen through its Neutron identity."""

    name: str = ""
    uid: str = ""
    status: RouterStatus = field(default_factory=RouterStatus)
    kind: str = "Router"
    api_version: str = OBJECT_API_VERSION

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.kind:
            data["kind"] = self.kind
        if self.api_version:
            data["apiVersion"] = self.api_version
        metadata: dict[str, Any] = {}
        if self.name:
            metadata["name"] = self.name
        if self.uid:
            metadata["uid"] = self.uid
        metadata["creationTimestamp"] = None
        data["metadata"] = metadata
        data["status"] = self.status.to_dict()
        return data


@dataclass
class RouterList:
    """A list of routers."""

    items: list[Router] = field(default_factory=list)
    kind: str = "RouterList"
    api_version: str = OBJECT_API_VERSION

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.kind:
            data["kind"] = self.kind
        if self.api_version:
            data["apiVersion"] = self.api_version
        data["metadata"] = {}
        data["items"] = [router.to_dict() for router in self.items]
        return data