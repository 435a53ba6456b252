"""
=============================================================================
ROUTER
=============================================================================

Maps (method, path) to a handler.

=============================================================================
PATTERNS
=============================================================================

Two kinds of pattern are supported, and nothing else:

    ┌──────────────────┬──────────────────────────────────────────────────┐
    │ Pattern          │ Matches                                          │
    ├──────────────────┼──────────────────────────────────────────────────┤
    │ /exec            │ exactly "/exec"                                  │
    │ /file/*path      │ anything starting with "/file/";                 │
    │                  │ the rest goes to request.path_params["path"]     │
    │ *path            │ everything (the whole path is captured)          │
    └──────────────────┴──────────────────────────────────────────────────┘

Paths are matched as received (after percent-decoding). There is no
trailing-slash normalization: "/file" does NOT match "/file/*path" and
falls through to the next route.

=============================================================================
DISPATCH
=============================================================================

    GET /file/docs/a.txt
        │
        ▼
    routes are tried in registration order, first match wins
        │
        ├── match found ──────────────► handler(request)
        │
        ├── method has no route at all ─► 405 Method Not Allowed
        │                                 (Allow: registered methods)
        │
        └── method known, no path hit ──► 404 Not Found

Methods compare case-insensitively ("get" routes like "GET").

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from .request import Request
from .response import HTTPResponse, method_not_allowed, not_found


# Handler: takes a request, returns a response
Handler = Callable[[Request], HTTPResponse]


@dataclass
class Route:
    """
    A registered route.

        Route(
            method="GET",
            pattern="/file/*path",
            handler=download,
            prefix="/file/",       # Fixed part to compare
            param_name="path",     # None for exact routes
        )
    """

    method: str
    pattern: str
    handler: Handler
    prefix: str = ""
    param_name: Optional[str] = None

    @classmethod
    def compile(cls, method: str, pattern: str, handler: Handler) -> "Route":
        """
        Build a route from a pattern string.

        A final segment of the form "*name" turns the pattern into a
        prefix match; "*" inside any other segment is literal.
        """
        _, sep, tail = pattern.rpartition("/")
        last = tail if sep else pattern
        if last.startswith("*"):
            fixed = pattern[:len(pattern) - len(last)]
            return cls(
                method=method.upper(),
                pattern=pattern,
                handler=handler,
                prefix=fixed,
                param_name=last[1:] or "wildcard",
            )
        return cls(method=method.upper(), pattern=pattern, handler=handler, prefix=pattern)

    @property
    def is_prefix(self) -> bool:
        return self.param_name is not None

    def matches(self, path: str) -> Optional[Dict[str, str]]:
        """
        Match a path against this route.

        Returns:
            Captured parameters (empty for exact routes), or None.
        """
        if self.is_prefix:
            if path.startswith(self.prefix):
                return {self.param_name: path[len(self.prefix):]}
            return None
        return {} if path == self.prefix else None


@dataclass
class RouteMatch:
    """Result of a successful match: the route and its captured params."""
    route: Route
    params: Dict[str, str] = field(default_factory=dict)


class Router:
    """
    Ordered route table.

    Usage:
        router = Router()
        router.add_route("GET", "/file/*path", files.download)
        router.add_route("POST", "/exec", bridge.handle)

        response = router.handle(request)
        # files.download sees request.path_params["path"]
    """

    def __init__(self):
        self._routes: List[Route] = []

    # =========================================================================
    # ROUTE REGISTRATION
    # =========================================================================

    def add_route(self, method: str, pattern: str, handler: Handler) -> Route:
        """
        Register a route. Routes are tried in the order they are added,
        so register specific prefixes before catch-alls.
        """
        route = Route.compile(method, pattern, handler)
        self._routes.append(route)
        return route

    @property
    def methods(self) -> List[str]:
        """Registered methods, in first-registration order."""
        seen: List[str] = []
        for route in self._routes:
            if route.method not in seen:
                seen.append(route.method)
        return seen

    # =========================================================================
    # MATCHING AND DISPATCH
    # =========================================================================

    def match(self, method: str, path: str) -> Optional[RouteMatch]:
        """Return the first route matching method and path, or None."""
        method = method.upper()
        for route in self._routes:
            if route.method != method:
                continue
            params = route.matches(path)
            if params is not None:
                return RouteMatch(route=route, params=params)
        return None

    def handle(self, request: Request) -> HTTPResponse:
        """
        Dispatch a request to its handler.

        The handler's response (or exception) is passed through as is;
        handlers map their own failures to statuses.
        """
        match = self.match(request.method, request.path)
        if match:
            request.path_params = match.params
            return match.route.handler(request)

        if request.method.upper() not in self.methods:
            return method_not_allowed(self.methods)

        return not_found()
