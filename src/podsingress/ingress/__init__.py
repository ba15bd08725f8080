"""podsingress Ingress Module.

Compiles a snapshot of routable pods into an nginx configuration.

Features:
- Host and exact-path routing per pod
- Promotion of shared host+path routes to load-balanced upstreams
- Stable upstream names derived from host+path
- Per-namespace API key checks on proxied locations
- Fail-closed default server for unknown hosts and empty caches

Usage:
    from podsingress.ingress import Cache, Incoming, Outgoing, Route, generate_config

    cache = Cache()
    cache.add_pod("web-1", "ns1", [
        Route(Incoming(host="a.com", path="/"), Outgoing(ip="10.0.0.5", port="8080")),
    ])
    cache.add_secret("ns1", "routing", {"api-key": b"secret"})

    print(generate_config(cache))
"""

from podsingress.ingress.aggregator import (
    Aggregator,
    aggregate,
    fnv1a_32,
    format_target,
    upstream_name,
)
from podsingress.ingress.cache import (
    Cache,
    CacheEntry,
    Incoming,
    Outgoing,
    PodRef,
    Route,
    Secret,
    load_cache_from_file,
)
from podsingress.ingress.errors import (
    CacheLoadError,
    InvalidSecretError,
    MalformedUpstreamError,
    PodsIngressError,
    RenderError,
    UpstreamNameCollisionError,
)
from podsingress.ingress.model import Host, Location, RoutingModel, Server, Upstream
from podsingress.ingress.render import (
    Renderer,
    default_document,
    generate_config,
    nginx_header_variable,
    render,
    validate_model,
)

__all__ = [
    # Cache
    "Cache",
    "CacheEntry",
    "Incoming",
    "Outgoing",
    "PodRef",
    "Route",
    "Secret",
    "load_cache_from_file",
    # Routing model
    "Host",
    "Location",
    "RoutingModel",
    "Server",
    "Upstream",
    # Aggregation
    "Aggregator",
    "aggregate",
    "fnv1a_32",
    "format_target",
    "upstream_name",
    # Rendering
    "Renderer",
    "default_document",
    "generate_config",
    "nginx_header_variable",
    "render",
    "validate_model",
    # Errors
    "PodsIngressError",
    "CacheLoadError",
    "InvalidSecretError",
    "MalformedUpstreamError",
    "RenderError",
    "UpstreamNameCollisionError",
]
