"""Path pattern matching shared by the route table and the access policy.

Two pattern forms are supported:

* exact paths, e.g. ``/api/auth/login``
* prefix wildcards ending in ``/**``, e.g. ``/api/product/**``, which match
  the prefix itself and every path below it
"""

from typing import Iterable, List, Optional, Sequence, Tuple

from gateway.errors import NoRouteMatched
from gateway.models.route import Route

WILDCARD_SUFFIX = "/**"


def _normalize(path: str) -> str:
    if len(path) > 1 and path.endswith("/"):
        return path.rstrip("/") or "/"
    return path


def is_wildcard(pattern: str) -> bool:
    return pattern.endswith(WILDCARD_SUFFIX)


def pattern_prefix(pattern: str) -> str:
    """Literal part of a pattern (the pattern itself for exact paths)."""
    if is_wildcard(pattern):
        return pattern[: -len(WILDCARD_SUFFIX)]
    return pattern


def pattern_matches(pattern: str, path: str) -> bool:
    """Check whether ``path`` is matched by ``pattern``."""
    path = _normalize(path)
    if not is_wildcard(pattern):
        return path == _normalize(pattern)

    prefix = pattern_prefix(pattern)
    if not prefix:
        return True
    return path == prefix or path.startswith(prefix + "/")


def pattern_specificity(pattern: str) -> Tuple[int, int]:
    """Sort key: longer literal prefix first, exact beats wildcard on ties."""
    return (len(pattern_prefix(pattern)), 0 if is_wildcard(pattern) else 1)


def any_pattern_matches(patterns: Iterable[str], path: str) -> bool:
    return any(pattern_matches(pattern, path) for pattern in patterns)


def find_route(routes: Sequence[Route], path: str) -> Optional[Route]:
    """Select the most specific route for ``path``.

    Ties on specificity are broken by declaration order.
    """
    best: Optional[Route] = None
    best_key: Optional[Tuple[int, int]] = None
    for route in routes:
        if not pattern_matches(route.path_pattern, path):
            continue
        key = pattern_specificity(route.path_pattern)
        # strict comparison keeps the earliest declared route on ties
        if best_key is None or key > best_key:
            best, best_key = route, key
    return best


def match_route(routes: Sequence[Route], path: str) -> Route:
    """Like :func:`find_route` but raises ``NoRouteMatched`` when nothing matches."""
    route = find_route(routes, path)
    if route is None:
        raise NoRouteMatched(f"No route found for path: {path}")
    return route


def duplicate_patterns(routes: Sequence[Route]) -> List[str]:
    """Patterns declared by more than one route (later ones are unreachable)."""
    seen = set()
    duplicates = []
    for route in routes:
        if route.path_pattern in seen:
            duplicates.append(route.path_pattern)
        seen.add(route.path_pattern)
    return duplicates
