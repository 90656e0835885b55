"""Error taxonomy for the grid reconciliation engine."""

from __future__ import annotations


class DeepgridError(Exception):
    """Base class for all engine errors."""


class ConfigurationError(DeepgridError):
    """Invalid GridConfig (range, level count or size)."""


class GeometryError(DeepgridError):
    """Tick/lot/min/max combination cannot produce a valid ladder."""


class GatewayReadError(DeepgridError):
    """Mid price, book params or open orders could not be fetched."""


class SubmissionError(DeepgridError):
    """Batch failed to submit or was rejected by the exchange."""


class UnknownLevelWarning(UserWarning):
    """A closed order's price does not sit on any known grid level."""
