"""Exception hierarchy for the migration pipeline.

Phase-level failures are raised and recorded; they are never retried by the
core. Partial load failures are reported on ``LoadResult`` instead.
"""

from __future__ import annotations

from ferry.models.platforms import ContentType


class MigrationError(Exception):
    """Base class for every error raised by the migration core."""


class ConfigurationError(MigrationError):
    """No plugin is registered for the requested platform or pair."""


class AuthenticationError(MigrationError):
    """An extractor or loader reported it cannot reach its platform."""


class ExtractionError(MigrationError):
    """The source could not be read (network, auth, missing export)."""


class BundleValidationError(MigrationError):
    """The bundle is structurally unusable for the target."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        super().__init__(f"Bundle validation failed: {'; '.join(self.errors)}")


class ContentOverflowError(MigrationError):
    """Content exceeds a hard limit under the ``error`` overflow strategy."""

    def __init__(self, content_type: ContentType, size: int, limit: int, unit: str = "chars") -> None:
        self.content_type = content_type
        self.size = size
        self.limit = limit
        self.overflow = size - limit
        super().__init__(
            f"{content_type.value} exceed limit by {self.overflow} {unit} "
            f"({size} > {limit}) and overflow strategy is 'error'"
        )


class MigrationNotFoundError(MigrationError):
    """No persisted state exists for a migration id."""


class MigrationResumeError(MigrationError):
    """The persisted migration is terminal and cannot be continued."""


class CheckpointCorruptedError(MigrationError):
    """A checkpoint snapshot does not match its recorded checksum."""


__all__ = [
    "AuthenticationError",
    "BundleValidationError",
    "CheckpointCorruptedError",
    "ConfigurationError",
    "ContentOverflowError",
    "ExtractionError",
    "MigrationError",
    "MigrationNotFoundError",
    "MigrationResumeError",
]
