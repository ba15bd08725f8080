"""Route aggregation.

Groups the routes of every cached pod by host and path. The first pod seen
for a host+path gets a direct location; as soon as a second, different
target shows up the location is promoted to an upstream pool named after
the host+path.

Example:
    model = aggregate(cache)
    for host in model.sorted_hosts():
        for path, location in host.locations.items():
            print(host.name, path, location.server.target)
"""

from __future__ import annotations

import base64

import structlog

from podsingress.core.config import DEFAULT_API_KEY_SECRET_DATA_FIELD
from podsingress.ingress.cache import Cache, Route, Secret
from podsingress.ingress.errors import InvalidSecretError, UpstreamNameCollisionError
from podsingress.ingress.model import Location, RoutingModel, Server, Upstream

logger = structlog.get_logger()

# Ports nginx does not need spelled out in a proxy target
DEFAULT_PORTS = ("80", "443")

UPSTREAM_NAME_PREFIX = "microservice"

_FNV32_OFFSET_BASIS = 0x811C9DC5
_FNV32_PRIME = 0x01000193


def fnv1a_32(data: str) -> int:
    """32-bit FNV-1a hash of the UTF-8 encoding of ``data``."""
    h = _FNV32_OFFSET_BASIS
    for byte in data.encode("utf-8"):
        h ^= byte
        h = (h * _FNV32_PRIME) & 0xFFFFFFFF
    return h


def upstream_name(key: str) -> str:
    """Deterministic upstream name for a host+path key."""
    return f"{UPSTREAM_NAME_PREFIX}{fnv1a_32(key)}"


def format_target(ip: str, port: str) -> str:
    """Proxy target for a pod, ``ip`` for default ports and ``ip:port`` otherwise."""
    if port in DEFAULT_PORTS:
        return ip
    return f"{ip}:{port}"


def _secret_value(secret: Secret | None, field: str) -> str:
    if secret is None:
        return ""
    if field not in secret.data:
        raise InvalidSecretError(secret.namespace, secret.name, field)
    return base64.b64encode(secret.data[field]).decode("ascii")


class Aggregator:
    """Builds a RoutingModel from one cache snapshot.

    An instance handles exactly one pass; use :func:`aggregate`.
    """

    def __init__(self, cache: Cache, api_key_field: str = DEFAULT_API_KEY_SECRET_DATA_FIELD) -> None:
        self._cache = cache
        self._api_key_field = api_key_field
        self._model = RoutingModel()
        self._names: dict[str, str] = {}

    def run(self) -> RoutingModel:
        if not self._cache.pods:
            logger.debug("cache_empty")
            return RoutingModel.empty()

        # Sorted so member order and first-secret choice don't depend on dict order
        for pod_key in sorted(self._cache.pods):
            entry = self._cache.pods[pod_key]
            for route in entry.routes:
                self._add_route(entry.pod.name, entry.pod.namespace, route)

        logger.debug(
            "routes_aggregated",
            pods=len(self._cache.pods),
            hosts=len(self._model.hosts),
            upstreams=len(self._model.upstreams),
        )
        return self._model

    def _add_route(self, pod_name: str, namespace: str, route: Route) -> None:
        host_name = route.incoming.host
        path = route.incoming.path
        host = self._model.get_or_create_host(host_name)

        secret = _secret_value(self._cache.secrets.get(namespace), self._api_key_field)
        target = format_target(route.outgoing.ip, route.outgoing.port)
        key = host_name + path
        name = upstream_name(key)

        location = host.locations.get(path)
        if location is None:
            host.locations[path] = Location(
                namespace=namespace,
                path=path,
                secret=secret,
                server=Server(pod_name=pod_name, target=target),
            )
            return

        if location.secret != secret:
            logger.warning(
                "secret_mismatch",
                host=host_name,
                path=path,
                namespace=location.namespace,
                conflicting_namespace=namespace,
            )

        if location.server.target == target:
            return

        server = Server(pod_name=pod_name, target=target)
        upstream = self._model.upstreams.get(key)
        if upstream is None:
            self._claim_name(name, key)
            self._model.upstreams[key] = Upstream(
                name=name,
                host=host_name,
                path=path,
                servers=[location.server, server],
            )
            logger.debug("upstream_created", name=name, host=host_name, path=path)
        elif upstream.add_server(server):
            logger.debug("upstream_extended", name=name, target=target, members=len(upstream.servers))

        location.server = Server.pool(name)

    def _claim_name(self, name: str, key: str) -> None:
        existing = self._names.setdefault(name, key)
        if existing != key:
            raise UpstreamNameCollisionError(name, existing, key)


def aggregate(cache: Cache, api_key_field: str = DEFAULT_API_KEY_SECRET_DATA_FIELD) -> RoutingModel:
    """Aggregate the routes of every pod in ``cache`` into a routing model.

    Args:
        cache: Snapshot to read. It is not modified.
        api_key_field: Data field of the namespace secret holding the API key.

    Returns:
        The routing model, or the empty sentinel when the cache has no pods.

    Raises:
        InvalidSecretError: If a namespace secret lacks ``api_key_field``.
        UpstreamNameCollisionError: If two host+path keys share an upstream name.
    """
    return Aggregator(cache, api_key_field).run()
