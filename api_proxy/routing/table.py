"""
Static, ordered prefix routing table.

Matching walks the table in declaration order and stops at the first prefix
that matches the path on a whole segment boundary. When one prefix is itself a
leading segment of another (``/a`` and ``/a/b``), the earlier entry wins.
"""

from dataclasses import dataclass
from typing import Iterable, Optional, Tuple
from urllib.parse import urlparse


@dataclass(frozen=True)
class Route:
    prefix: str
    target: str


@dataclass(frozen=True)
class RouteMatch:
    prefix: str
    target: str
    remainder: str


DEFAULT_ROUTES: Tuple[Route, ...] = (
    Route("/openai", "https://api.openai.com"),
    Route("/claude", "https://api.anthropic.com"),
    Route("/gemini", "https://generativelanguage.googleapis.com"),
    Route("/groq", "https://api.groq.com/openai"),
    Route("/xai", "https://api.x.ai"),
    Route("/cohere", "https://api.cohere.ai"),
    Route("/huggingface", "https://api-inference.huggingface.co"),
    Route("/together", "https://api.together.xyz"),
    Route("/novita", "https://api.novita.ai"),
    Route("/portkey", "https://api.portkey.ai"),
    Route("/fireworks", "https://api.fireworks.ai"),
    Route("/openrouter", "https://openrouter.ai/api"),
    Route("/discord", "https://discord.com/api"),
    Route("/telegram", "https://api.telegram.org"),
    Route("/422wolf", "https://422wolf.198990.xyz"),
    Route("/qwen", "https://qwen.198990.xyz"),
    Route("/newapi", "https://newapi.190904.xyz"),
    Route("/gbalance", "http://jp2.190904.xyz:8010"),
    Route("/gbalance2", "http://usa2.190904.xyz:8000"),
    Route("/gbalance3", "http://usa4.190904.xyz:8010"),
    Route("/gcli", "http://usa4.190904.xyz:7856"),
    Route("/cliproxy", "http://usa4.190904.xyz:8317"),
    Route(
        "/vertex",
        "https://aiplatform.googleapis.com/v1/projects/1094537026349/locations/global/publishers",
    ),
)


class RouteTable:
    """Immutable, ordered sequence of prefix routes."""

    def __init__(self, routes: Iterable[Route]):
        self._routes = tuple(routes)
        seen = set()
        for route in self._routes:
            _validate_route(route)
            if route.prefix in seen:
                raise ValueError(f"Duplicate route prefix: {route.prefix}")
            seen.add(route.prefix)

    @property
    def routes(self) -> Tuple[Route, ...]:
        return self._routes

    def __iter__(self):
        return iter(self._routes)

    def __len__(self) -> int:
        return len(self._routes)

    def match(self, path: str) -> Optional[RouteMatch]:
        """Return the first route whose prefix matches ``path`` on a segment boundary."""
        for route in self._routes:
            if path == route.prefix or path.startswith(route.prefix + "/"):
                return RouteMatch(
                    prefix=route.prefix,
                    target=route.target,
                    remainder=path[len(route.prefix):],
                )
        return None


def _validate_route(route: Route) -> None:
    if not route.prefix.startswith("/") or route.prefix == "/":
        raise ValueError(f"Route prefix must start with '/' and name a segment: {route.prefix!r}")
    if route.prefix.endswith("/"):
        raise ValueError(f"Route prefix must not end with '/': {route.prefix!r}")
    parsed = urlparse(route.target)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(
            f"Route target for {route.prefix} must be an absolute http(s) URL: {route.target!r}"
        )
    if parsed.query or parsed.fragment:
        raise ValueError(
            f"Route target for {route.prefix} must not carry a query or fragment: {route.target!r}"
        )


def parse_routes(raw: str) -> Tuple[Route, ...]:
    """
    Parse ``prefix=url`` pairs separated by commas, keeping their order.

    Blank entries are ignored. An entry without ``=`` is rejected.
    """
    routes = []
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        if "=" not in entry:
            raise ValueError(f"Invalid route entry (expected prefix=url): {entry!r}")
        prefix, target = entry.split("=", 1)
        routes.append(Route(prefix.strip(), target.strip()))
    return tuple(routes)


def build_route_table(raw: str = "") -> RouteTable:
    """Build the process route table, falling back to the default routes."""
    routes = parse_routes(raw) if raw and raw.strip() else DEFAULT_ROUTES
    return RouteTable(routes)
