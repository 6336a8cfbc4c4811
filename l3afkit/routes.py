"""HTTP routes and a small router that matches them."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable

log = logging.getLogger(__name__)

_PARAM = re.compile(r"\{([^}:]+)(?::([^}]+))?\}")


@dataclass(frozen=True)
class Route:
    """An endpoint and the action it supports."""

    method: str
    path: str
    handler_func: Callable


@dataclass
class _Entry:
    route: Route
    pattern: "re.Pattern[str] | None"
    names: list[str]


def _compile(path: str):
    if not path.startswith("/"):
        raise ValueError(f"routing pattern must begin with '/': {path!r}")
    if "{" not in path and "*" not in path:
        return None, []
    parts = []
    names = []
    pos = 0
    for match in _PARAM.finditer(path):
        parts.append(re.escape(path[pos:match.start()]))
        names.append(match.group(1))
        parts.append(f"(?P<_p{len(names) - 1}>{match.group(2) or '[^/]+'})")
        pos = match.end()
    tail = path[pos:]
    if "*" in tail:
        if not tail.endswith("*") or tail.count("*") > 1:
            raise ValueError(f"wildcard '*' must be the last part of a route: {path!r}")
        parts.append(re.escape(tail[:-1]))
        names.append("*")
        parts.append(f"(?P<_p{len(names) - 1}>.*)")
    else:
        parts.append(re.escape(tail))
    return re.compile("".join(parts) + r"\Z"), names


class Router:
    """Matches a method and path to a route handler and its path parameters."""

    def __init__(self):
        self._entries: dict[tuple[str, str], _Entry] = {}

    @property
    def routes(self):
        return [entry.route for entry in self._entries.values()]

    def add(self, route):
        """Register a route, replacing any with the same method and path."""
        pattern, names = _compile(route.path)
        key = (route.method.upper(), route.path)
        self._entries[key] = _Entry(route=route, pattern=pattern, names=names)
        log.info("Route added:%r", route)

    def resolve(self, method, path):
        """Return (handler, params) for a request, or None if nothing matches."""
        method = method.upper()
        static = self._entries.get((method, path))
        if static is not None and static.pattern is None:
            return static.route.handler_func, {}
        for (entry_method, _), entry in self._entries.items():
            if entry_method != method or entry.pattern is None:
                continue
            match = entry.pattern.match(path)
            if match:
                params = {name: match.group(f"_p{i}") for i, name in enumerate(entry.names)}
                return entry.route.handler_func, params
        return None


def new_router(routes):
    """Build a router loaded with the given routes."""
    router = Router()
    for route in routes:
        router.add(route)
    return router