# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2024-2026 SYMFLUENCE Team <dev@symfluence.org>

"""
Custom exception hierarchy for worldfile generation.

Every fatal condition raised while building a worldfile derives from
WorldGenError, so callers can stop a run with a single except clause.
The only recoverable condition (an unrecognised template operator) is
logged and never raised.
"""

import logging
from contextlib import contextmanager
from typing import Optional


class WorldGenError(Exception):
    """
    Base exception for all worldfile generation errors.

    All custom exceptions in this package inherit from this class.
    """
    pass


class ConfigurationError(WorldGenError):
    """
    Configuration-related errors.

    Raised when:
    - The configuration file cannot be loaded or parsed
    - Configuration values fail validation
    """
    pass


class InputError(WorldGenError):
    """
    Missing or unusable inputs.

    Raised when:
    - A template, cell table or rules file does not exist
    - The output worldfile exists and overwriting was not allowed
    - A map referenced by the template is absent from the cell table
    - Raster inputs disagree in shape or resolution
    """
    pass


class TemplateError(WorldGenError):
    """
    Template semantic errors.

    Raised when:
    - Level markers are missing, duplicated or out of nesting order
    - A literal value cannot be read as a number
    - Aspatial rules are supplied but the template has no asp_rule variable
    """
    pass


class HierarchyError(WorldGenError):
    """
    Level hierarchy consistency errors.

    Raised when:
    - The cell table holds more than one world ID
    - A patch carries more than one canopy stratum ID
    """
    pass


class AggregationError(WorldGenError):
    """
    Aggregated value lookup failures.

    Raised when a level-ID key has no aggregated value, which means the
    level matrix and the aggregation grouping disagree.
    """
    pass


class AspatialRuleError(WorldGenError):
    """
    Aspatial patch consistency errors.

    Raised when:
    - A spatial patch maps to zero or several rule IDs
    - A rule ID is not defined in the rule set
    - A rule-only variable has no value for a family or stratum
    - A family has no pct_family_area or no stratum table
    """
    pass


class WorldfileWriteError(WorldGenError):
    """
    Output sink failures.

    Raised when the worldfile cannot be opened or written.
    """
    pass


# =============================================================================
# Validation Helpers
# =============================================================================


def require(condition: bool, message: str, error_type: type = None) -> None:
    """
    Validate a condition, raising an exception if it fails.

    This replaces assert statements with proper validation that cannot be
    disabled with python -O.

    Args:
        condition: The condition that must be True
        message: Error message if condition is False
        error_type: Exception type to raise (default: WorldGenError)

    Example:
        >>> require(len(world_ids) == 1, "Expected one world ID")
    """
    if error_type is None:
        error_type = WorldGenError
    if not condition:
        raise error_type(message)


@contextmanager
def worldgen_error_handler(
    operation: str,
    logger: Optional[logging.Logger] = None,
    error_type: type = WorldGenError
):
    """
    Context manager for standardized error handling.

    WorldGenError subclasses pass through unchanged; any other exception is
    wrapped in ``error_type`` so callers only need to handle the package
    hierarchy.

    Example:
        >>> with worldgen_error_handler("reading cell table", logger, error_type=InputError):
        ...     frame = pd.read_csv(path)
    """
    try:
        yield
    except WorldGenError:
        if logger:
            logger.error(f"Error during {operation}")
        raise
    except Exception as e:
        if logger:
            logger.error(f"Error during {operation}: {e}")
        raise error_type(f"Error during {operation}: {e}") from e
