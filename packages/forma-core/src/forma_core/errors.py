"""Custom exception hierarchy for forma-core.

This module defines the exception classes used throughout forma-core:
- FormaError: Base exception for all forma-related errors
- ConfigurationError: Raised when a platform document cannot be parsed or validated
- PlatformNotFoundError: Raised when a named platform cannot be located
- ExtensionCycleError: Raised when an ``extends`` chain revisits a platform
- CircularDependencyError: Raised when a build order cannot be derived
- InvalidationError: Raised for an unknown invalidation strategy

User-facing messages are safe to display. Technical details are logged
internally via structlog and never attached to the message itself.

Disk cache I/O failures and per-node compile failures are deliberately absent
from this hierarchy: the former degrade to cache misses, the latter are
recorded on the build result (see ``forma_core.build.models.NodeFailure``).
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

import structlog

logger = structlog.get_logger(__name__)


class FormaError(Exception):
    """Root of every error forma-core raises on purpose.

    The message passed in is what callers show to people. Anything more
    technical goes in ``internal_details``, which is written to the
    structlog ``forma_error`` event and kept off the message.

    Example:
        >>> raise FormaError(
        ...     "Platform config invalid",
        ...     internal_details="elements.button.element: expected str, got int",
        ... )
    """

    def __init__(self, user_message: str, *, internal_details: str | None = None) -> None:
        super().__init__(user_message)
        self.user_message = user_message
        if internal_details:
            self._log_details(internal_details)

    def _log_details(self, details: str) -> None:
        logger.error(
            "forma_error",
            error_type=type(self).__name__,
            user_message=self.user_message,
            internal_details=details,
        )


class ConfigurationError(FormaError):
    """Raised when a platform document cannot be parsed or validated.

    Provides file path and field context for actionable error messages.

    Attributes:
        file_path: Path to the configuration file (if known).
        field_path: Dot-separated path to the invalid field (e.g., "elements.button").

    Example:
        >>> raise ConfigurationError(
        ...     "Invalid platform document",
        ...     file_path="default/platforms/html.yaml",
        ...     field_path="extractors.styles",
        ... )
    """

    def __init__(
        self,
        user_message: str,
        *,
        file_path: str | None = None,
        field_path: str | None = None,
        internal_details: str | None = None,
    ) -> None:
        where = ", ".join(
            part
            for part in (
                f"in {file_path}" if file_path else "",
                f"field '{field_path}'" if field_path else "",
            )
            if part
        )
        message = f"{user_message} ({where})" if where else user_message
        super().__init__(message, internal_details=internal_details)
        self.file_path = file_path
        self.field_path = field_path


class PlatformNotFoundError(FormaError):
    """Raised when a named platform cannot be found in any search tier.

    Always includes the searched locations for actionable feedback.

    Attributes:
        platform: Name of the requested platform.
        searched: Locations that were checked, in resolution order.

    Example:
        >>> raise PlatformNotFoundError("htmx", ["library/platforms/htmx.yaml"])
        # User sees: "Platform 'htmx' not found. Searched: library/platforms/htmx.yaml"
    """

    def __init__(
        self,
        platform: str,
        searched: Sequence[str],
        *,
        internal_details: str | None = None,
    ) -> None:
        searched_str = ", ".join(searched) if searched else "none"
        super().__init__(
            f"Platform '{platform}' not found. Searched: {searched_str}",
            internal_details=internal_details,
        )
        self.platform = platform
        self.searched = list(searched)


class ExtensionCycleError(FormaError):
    """Raised when a platform ``extends`` chain revisits a platform.

    Attributes:
        chain: The full chain, ending with the repeated name.

    Example:
        >>> raise ExtensionCycleError(["css", "html", "css"])
        # User sees: "Platform extension cycle: css -> html -> css"
    """

    def __init__(self, chain: Sequence[str]) -> None:
        super().__init__(f"Platform extension cycle: {' -> '.join(chain)}")
        self.chain = list(chain)


class CircularDependencyError(FormaError):
    """Raised when the build planner finds no ready node while nodes remain.

    Attributes:
        remaining: Node ids that could not be ordered.
        visited: Node ids ordered before the planner got stuck.
        order: Partial build order computed so far.
    """

    def __init__(
        self,
        remaining: Iterable[str],
        *,
        visited: Iterable[str] = (),
        order: Sequence[str] = (),
    ) -> None:
        self.remaining = sorted(remaining)
        self.visited = sorted(visited)
        self.order = list(order)
        super().__init__(
            f"Circular dependency detected among: {', '.join(self.remaining)}",
            internal_details=f"ordered={self.order}",
        )


class InvalidationError(FormaError):
    """Raised when an invalidation request names an unknown strategy."""

    def __init__(self, strategy: str, available: Iterable[str]) -> None:
        available_str = ", ".join(sorted(available))
        super().__init__(
            f"Unknown invalidation strategy '{strategy}'. Available: {available_str}"
        )
        self.strategy = strategy
