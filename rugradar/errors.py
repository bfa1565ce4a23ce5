class RugradarError(Exception):
    """Base class for errors raised by rugradar."""


class ChainCallError(RugradarError):
    """Every RPC endpoint and retry attempt failed for a call."""

    def __init__(self, method: str, cause: BaseException | None = None):
        self.method = method
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"All RPC endpoints failed for {method}{detail}")


class MarketDataError(RugradarError):
    """Market snapshot could not be produced for a mint."""


class ValidationError(RugradarError):
    """Request rejected before any I/O (bad mint, empty mint set)."""


class AutoTradeDisabled(RugradarError):
    """Autotrade policy or execution engine is switched off for the user."""
