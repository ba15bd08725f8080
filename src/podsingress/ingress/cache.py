"""Cache snapshot types.

The cache is what the watch layer knows about routable pods and the API key
secrets of their namespaces. The engine only ever reads it.

Snapshot file format (YAML, JSON or TOML):
    pods:
      - name: web-1
        namespace: ns1
        routes:
          - incoming: {host: a.com, path: /}
            outgoing: {ip: 10.0.0.5, port: "8080"}
    secrets:
      ns1:
        name: routing
        data:
          api-key: c2VjcmV0        # base64, as in a Secret manifest
"""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from podsingress.core.config import read_document
from podsingress.ingress.errors import CacheLoadError


@dataclass(frozen=True)
class Incoming:
    """Where a request arrives: the host name and exact nginx location path."""

    host: str
    path: str

    def to_dict(self) -> dict[str, Any]:
        return {"host": self.host, "path": self.path}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Incoming:
        return cls(host=str(data["host"]), path=str(data["path"]))


@dataclass(frozen=True)
class Outgoing:
    """Where a request is sent: the pod IP and container port."""

    ip: str
    port: str

    def to_dict(self) -> dict[str, Any]:
        return {"ip": self.ip, "port": self.port}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Outgoing:
        # YAML happily turns 8080 into an int
        return cls(ip=str(data["ip"]), port=str(data["port"]))


@dataclass(frozen=True)
class Route:
    """A binding from an incoming host/path to an outgoing ip/port."""

    incoming: Incoming
    outgoing: Outgoing

    def to_dict(self) -> dict[str, Any]:
        return {"incoming": self.incoming.to_dict(), "outgoing": self.outgoing.to_dict()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Route:
        return cls(
            incoming=Incoming.from_dict(data["incoming"]),
            outgoing=Outgoing.from_dict(data["outgoing"]),
        )


@dataclass(frozen=True)
class PodRef:
    """Identity of a pod."""

    name: str
    namespace: str

    @property
    def key(self) -> str:
        """Cache key of the pod, ``namespace/name``."""
        return f"{self.namespace}/{self.name}"


@dataclass
class CacheEntry:
    """A routable pod and the routes declared on it."""

    pod: PodRef
    routes: list[Route] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.pod.name,
            "namespace": self.pod.namespace,
            "routes": [route.to_dict() for route in self.routes],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CacheEntry:
        return cls(
            pod=PodRef(name=str(data["name"]), namespace=str(data.get("namespace", "default"))),
            routes=[Route.from_dict(r) for r in data.get("routes") or []],
        )


@dataclass
class Secret:
    """The API key secret of a namespace.

    ``data`` holds decoded bytes keyed by data field name.
    """

    name: str
    namespace: str
    data: dict[str, bytes] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "data": {k: base64.b64encode(v).decode("ascii") for k, v in self.data.items()},
        }

    @classmethod
    def from_dict(cls, namespace: str, data: dict[str, Any]) -> Secret:
        decoded: dict[str, bytes] = {}
        for key, value in (data.get("data") or {}).items():
            try:
                decoded[key] = base64.b64decode(str(value), validate=True)
            except ValueError as e:
                raise CacheLoadError(
                    f"Secret data '{key}' in namespace '{namespace}' is not valid base64"
                ) from e
        return cls(name=str(data.get("name", "")), namespace=namespace, data=decoded)


@dataclass
class Cache:
    """Snapshot of routable pods and namespace secrets.

    Must not be mutated while an aggregation pass is running over it.
    """

    pods: dict[str, CacheEntry] = field(default_factory=dict)
    secrets: dict[str, Secret] = field(default_factory=dict)

    def add_pod(self, name: str, namespace: str, routes: list[Route]) -> CacheEntry:
        """Add (or replace) a pod entry keyed by ``namespace/name``."""
        entry = CacheEntry(pod=PodRef(name=name, namespace=namespace), routes=list(routes))
        self.pods[entry.pod.key] = entry
        return entry

    def add_secret(self, namespace: str, name: str, data: dict[str, bytes]) -> Secret:
        """Register the secret of a namespace, replacing any previous one."""
        secret = Secret(name=name, namespace=namespace, data=dict(data))
        self.secrets[namespace] = secret
        return secret

    def to_dict(self) -> dict[str, Any]:
        return {
            "pods": [self.pods[key].to_dict() for key in sorted(self.pods)],
            "secrets": {ns: self.secrets[ns].to_dict() for ns in sorted(self.secrets)},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Cache:
        """Build a cache from its dictionary form.

        ``pods`` may be a list of entries (keyed by ``namespace/name``) or a
        mapping of explicit pod keys to entries.

        Raises:
            CacheLoadError: If the snapshot is missing required fields.
        """
        cache = cls()
        try:
            pods = data.get("pods") or []
            if isinstance(pods, dict):
                for key, entry_data in pods.items():
                    cache.pods[str(key)] = CacheEntry.from_dict(entry_data)
            else:
                for entry_data in pods:
                    entry = CacheEntry.from_dict(entry_data)
                    cache.pods[entry.pod.key] = entry
            for namespace, secret_data in (data.get("secrets") or {}).items():
                cache.secrets[str(namespace)] = Secret.from_dict(str(namespace), secret_data)
        except (KeyError, TypeError, AttributeError) as e:
            raise CacheLoadError(f"Invalid cache snapshot: {e!r}") from e
        return cache


def load_cache_from_file(path: str | Path) -> Cache:
    """Load a cache snapshot from a YAML, TOML or JSON file.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        CacheLoadError: If the file can't be parsed into a cache.
    """
    try:
        data = read_document(path)
    except ValueError as e:
        raise CacheLoadError(str(e)) from e

    if not isinstance(data, dict):
        raise CacheLoadError(f"Cache snapshot {path} must contain a mapping")
    return Cache.from_dict(data)
