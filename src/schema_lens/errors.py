"""Exception and warning types raised by schema_lens."""

from __future__ import annotations

import logging
import warnings
from typing import Optional, Type

logger = logging.getLogger(__name__)


class SchemaLensError(Exception):
    """Base class for all schema_lens errors."""


class CatalogAccessError(SchemaLensError):
    """
    The target database or its catalog could not be read.

    Fatal to the introspection pass that raised it. ``cause`` holds the
    underlying driver exception.
    """

    def __init__(
        self,
        message: str,
        database: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.database = database
        self.cause = cause


class ConfigError(SchemaLensError):
    """Connection configuration is missing or invalid."""


class CacheError(SchemaLensError):
    """A schema cache entry could not be written."""


class PartialMetadataWarning(UserWarning):
    """Detail for one table or view could not be fetched; it was emitted empty."""


class ViewAnalysisSkipped(UserWarning):
    """Relationship extraction for one view failed; it contributed no edges."""


def warn_degraded(message: str, category: Type[UserWarning], stacklevel: int = 3) -> None:
    """
    Emit a warning for a result that was degraded but still returned.

    A warnings filter set to "error" turns the warning into an exception;
    it is kept as a log record instead so the degraded result survives.
    """
    try:
        warnings.warn(message, category, stacklevel=stacklevel)
    except category:
        logger.debug(f"{category.__name__} raised by warnings filter, continuing: {message}")
