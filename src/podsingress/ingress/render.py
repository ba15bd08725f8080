"""nginx configuration rendering.

Turns a RoutingModel into an nginx.conf document. Hosts, paths and
upstreams are emitted in sorted order so regenerating from the same cache
produces byte-identical output.

Example:
    text = generate_config(cache)                 # aggregate + render
    text = render(aggregate(cache), port=8080)    # same, explicit port
"""

from __future__ import annotations

import re

import jinja2
import structlog

from podsingress.core.config import DEFAULT_API_KEY_HEADER, DEFAULT_PORT, IngressConfig, get_config
from podsingress.ingress.aggregator import aggregate
from podsingress.ingress.cache import Cache
from podsingress.ingress.errors import MalformedUpstreamError, RenderError
from podsingress.ingress.model import RoutingModel

logger = structlog.get_logger()

DEFAULT_SERVER_TEMPLATE = """  # Default server that will just close the connection as if there was no server available
  server {{
    listen {port} default_server;
    return 444;
  }}"""

DEFAULT_DOCUMENT_TEMPLATE = """# A very simple nginx configuration file that forces nginx to start as a daemon.
events {{}}
http {{
{default_server}
}}
daemon on;
"""

NGINX_CONF_TEMPLATE = """events {
  worker_connections 1024;
}
http {
  # http://nginx.org/en/docs/http/ngx_http_core_module.html
  types_hash_max_size 2048;
  server_names_hash_max_size 512;
  server_names_hash_bucket_size 64;
{% for upstream in upstreams %}

  # Upstream for {{ upstream.path }} traffic on {{ upstream.host }}
  upstream {{ upstream.name }} {
{% for server in upstream.servers %}
    # Pod {{ server.pod_name }}
    server {{ server.target }};
{% endfor %}
  }
{% endfor %}
{% for host in hosts %}

  server {
    listen {{ port }};
    server_name {{ host.name }};
{% for location in host.sorted_locations() %}

    location {{ location.path }} {
      proxy_set_header Host $host;
{% if location.secret %}
      # Check the Ingress API Key (namespace: {{ location.namespace }})
      if ({{ header_variable }} != '{{ location.secret }}') {
        return 403;
      }
{% endif %}
{% if location.server.is_upstream %}
      # Upstream {{ location.server.target }}
{% else %}
      # Pod {{ location.server.pod_name }}
{% endif %}
      proxy_pass http://{{ location.server.target }};
    }
{% endfor %}
  }
{% endfor %}

{{ default_server }}
}
"""

# Characters that would break out of an nginx directive argument
_UNSAFE = re.compile(r"[\s;{}'\"#\\]")

# Location modifier (exact, regex, case-insensitive regex, prefix) followed by one space
_LOCATION_MODIFIER = re.compile(r"^(?:=|~\*?|\^~) ")


def default_server(port: int = DEFAULT_PORT) -> str:
    """The catch-all server block that drops connections for unknown hosts."""
    return DEFAULT_SERVER_TEMPLATE.format(port=port)


def default_document(port: int = DEFAULT_PORT) -> str:
    """The configuration used when there is nothing to route."""
    return DEFAULT_DOCUMENT_TEMPLATE.format(default_server=default_server(port))


def nginx_header_variable(header: str) -> str:
    """nginx variable holding a request header, e.g. ``$http_x_ingress_api_key``."""
    return "$http_" + header.lower().replace("-", "_")


def validate_model(model: RoutingModel) -> None:
    """Check the upstream invariants of a routing model.

    Raises:
        MalformedUpstreamError: If a pooled location points at a missing or
            empty upstream, or an upstream lists the same target twice.
        RenderError: If a host, path or target can't be written safely. A
            path may start with one nginx location modifier (``=``, ``~``,
            ``~*`` or ``^~``) and a single space; any other whitespace or a
            directive metacharacter is rejected.
    """
    names = {upstream.name: upstream for upstream in model.upstreams.values()}

    for key, upstream in model.upstreams.items():
        if key != upstream.key:
            raise MalformedUpstreamError(f"Upstream {upstream.name} is stored under '{key}', not '{upstream.key}'")
        if not upstream.servers:
            raise MalformedUpstreamError(f"Upstream {upstream.name} ({key}) has no servers")
        targets = [server.target for server in upstream.servers]
        if len(set(targets)) != len(targets):
            raise MalformedUpstreamError(f"Upstream {upstream.name} ({key}) has duplicate targets")
        for target in targets:
            _check_token("target", target)

    for host in model.hosts.values():
        _check_token("host", host.name)
        for path, location in host.locations.items():
            _check_token("path", _LOCATION_MODIFIER.sub("", path, count=1))
            server = location.server
            if not server.is_upstream:
                _check_token("target", server.target)
                continue
            upstream = model.upstreams.get(host.name + path)
            if upstream is None or names.get(server.target) is not upstream:
                raise MalformedUpstreamError(
                    f"Location {host.name}{path} references unknown upstream {server.target}"
                )


def _check_token(kind: str, value: str) -> None:
    if not value or _UNSAFE.search(value):
        raise RenderError(f"Invalid {kind} for nginx configuration: {value!r}")


class Renderer:
    """Compiled nginx configuration template.

    The template is parsed once; rendering doesn't modify the renderer so an
    instance can be shared freely.
    """

    def __init__(self, template: str = NGINX_CONF_TEMPLATE) -> None:
        environment = jinja2.Environment(
            autoescape=False,
            undefined=jinja2.StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )
        try:
            self._template = environment.from_string(template)
        except jinja2.TemplateSyntaxError as e:
            raise RenderError(f"Failed to parse nginx.conf template: {e}") from e

    def render(
        self,
        model: RoutingModel,
        port: int = DEFAULT_PORT,
        api_key_header: str = DEFAULT_API_KEY_HEADER,
    ) -> str:
        """Render ``model`` to nginx configuration text.

        Raises:
            MalformedUpstreamError: If the model breaks an upstream invariant.
            RenderError: If the template can't be applied to the model.
        """
        if model.is_empty:
            return default_document(port)

        validate_model(model)

        try:
            return self._template.render(
                upstreams=model.sorted_upstreams(),
                hosts=model.sorted_hosts(),
                port=port,
                header_variable=nginx_header_variable(api_key_header),
                default_server=default_server(port),
            )
        except jinja2.TemplateError as e:
            raise RenderError(f"Failed to render nginx.conf template: {e}") from e


_renderer = Renderer()


def render(
    model: RoutingModel,
    port: int = DEFAULT_PORT,
    api_key_header: str = DEFAULT_API_KEY_HEADER,
) -> str:
    """Render ``model`` with the default nginx template."""
    return _renderer.render(model, port=port, api_key_header=api_key_header)


def generate_config(cache: Cache, config: IngressConfig | None = None) -> str:
    """Generate the nginx configuration for a cache snapshot.

    Args:
        cache: Snapshot of routable pods and namespace secrets.
        config: Runtime configuration, the global one when omitted.

    Returns:
        The nginx.conf document.
    """
    config = config or get_config()
    model = aggregate(cache, api_key_field=config.api_key_secret_data_field)
    text = render(model, port=config.port, api_key_header=config.api_key_header)
    logger.info(
        "nginx_config_generated",
        hosts=len(model.hosts),
        upstreams=len(model.upstreams),
        default=model.is_empty,
    )
    return text
