"""podsingress - nginx configuration for routable Kubernetes pods.

Re-exports the engine entry points.
"""

from podsingress.ingress import (
    Cache,
    RoutingModel,
    aggregate,
    generate_config,
    render,
)

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "Cache",
    "RoutingModel",
    "aggregate",
    "generate_config",
    "render",
]
