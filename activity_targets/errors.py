from __future__ import annotations


class ActivityTargetsError(Exception):
    """Base class for errors raised by the aggregation and target layers."""


class DataUnavailable(ActivityTargetsError):
    """The activity server or its presence bucket could not be reached."""


class InvalidInput(ActivityTargetsError, ValueError):
    """Rejected before any state is touched."""


class PersistenceFailure(ActivityTargetsError):
    """The target configuration could not be written."""
