"""Error taxonomy shared by the data client, the core and the API layer."""


class TimeGeometryError(Exception):
    """Base class for all application errors."""


class InsufficientDataError(TimeGeometryError):
    """Historical series missing or shorter than the minimum window.

    Query paths turn this into an empty result rather than a failure.
    """


class DataSourceError(TimeGeometryError):
    """The market data collaborator could not supply bars."""

    def __init__(self, symbol: str, message: str) -> None:
        super().__init__(message)
        self.symbol = symbol


class SymbolNotFoundError(DataSourceError):
    """The exchange does not list the requested symbol."""


class UpstreamUnavailableError(DataSourceError):
    """The exchange API failed or stayed unreachable after retries."""


class ComputationError(TimeGeometryError):
    """An internal invariant was violated (malformed or unordered bars)."""
