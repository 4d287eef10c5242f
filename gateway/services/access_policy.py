"""Access policy: which paths may be served without a bearer token."""

from typing import Iterable, Tuple

from gateway.services.path_matcher import any_pattern_matches


class AccessPolicy:
    """Decides per request path whether authentication is required."""

    def __init__(self, public_patterns: Iterable[str]):
        """Initialize access policy.

        Args:
            public_patterns: Exact paths or ``/**`` prefixes that bypass
                token verification
        """
        self.public_patterns: Tuple[str, ...] = tuple(public_patterns)

    def is_public(self, path: str) -> bool:
        return any_pattern_matches(self.public_patterns, path)

    def requires_authentication(self, path: str) -> bool:
        return not self.is_public(path)
