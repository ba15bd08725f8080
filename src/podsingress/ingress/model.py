"""Intermediate routing model built by the aggregator and consumed by the renderer.

A fresh model is built for every pass over the cache; nothing in it survives
between passes except what is re-derived from host+path.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class Server:
    """Where a location sends traffic.

    Either a direct pod target (``ip`` or ``ip:port``) or, when
    ``is_upstream`` is set, the name of an upstream pool.
    """

    pod_name: str
    target: str
    is_upstream: bool = False

    @classmethod
    def pool(cls, upstream_name: str) -> Server:
        """Create a reference to an upstream pool."""
        return cls(pod_name="", target=upstream_name, is_upstream=True)

    def to_dict(self) -> dict[str, Any]:
        return {
            "pod_name": self.pod_name,
            "target": self.target,
            "is_upstream": self.is_upstream,
        }


@dataclass
class Location:
    """The routing decision for one host/path pair."""

    namespace: str
    path: str
    server: Server
    secret: str = ""
    """Base64 encoded API key, empty when the namespace has no secret."""

    def to_dict(self) -> dict[str, Any]:
        return {
            "namespace": self.namespace,
            "path": self.path,
            "secret": self.secret,
            "server": self.server.to_dict(),
        }


@dataclass
class Host:
    """All locations served under one host name."""

    name: str
    locations: dict[str, Location] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "locations": {p: self.locations[p].to_dict() for p in sorted(self.locations)},
        }

    def sorted_locations(self) -> list[Location]:
        return [self.locations[path] for path in sorted(self.locations)]


@dataclass
class Upstream:
    """A named pool of pod targets serving one host+path."""

    name: str
    host: str
    path: str
    servers: list[Server] = field(default_factory=list)

    @property
    def key(self) -> str:
        return self.host + self.path

    def has_target(self, target: str) -> bool:
        return any(server.target == target for server in self.servers)

    def add_server(self, server: Server) -> bool:
        """Add a member unless one with the same target is already present.

        Returns:
            True if the server was added.
        """
        if self.has_target(server.target):
            return False
        self.servers.append(server)
        return True

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "host": self.host,
            "path": self.path,
            "servers": [server.to_dict() for server in self.servers],
        }


@dataclass
class RoutingModel:
    """Hosts keyed by host name and upstreams keyed by host+path.

    ``sentinel`` marks the model produced from a cache with no pods; the
    renderer turns it into the default document.
    """

    hosts: dict[str, Host] = field(default_factory=dict)
    upstreams: dict[str, Upstream] = field(default_factory=dict)
    sentinel: bool = False

    @classmethod
    def empty(cls) -> RoutingModel:
        return cls(sentinel=True)

    @property
    def is_empty(self) -> bool:
        return self.sentinel

    def get_or_create_host(self, name: str) -> Host:
        host = self.hosts.get(name)
        if host is None:
            host = self.hosts[name] = Host(name=name)
        return host

    def sorted_hosts(self) -> list[Host]:
        return [self.hosts[name] for name in sorted(self.hosts)]

    def sorted_upstreams(self) -> list[Upstream]:
        return [self.upstreams[key] for key in sorted(self.upstreams)]

    def to_dict(self) -> dict[str, Any]:
        return {
            "empty": self.sentinel,
            "hosts": {name: self.hosts[name].to_dict() for name in sorted(self.hosts)},
            "upstreams": {key: self.upstreams[key].to_dict() for key in sorted(self.upstreams)},
        }
