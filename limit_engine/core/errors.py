"""
Error taxonomy for the order lifecycle.

Adapters translate library exceptions (requests, web3) into these types so
the monitor and executor only reason about what a failure means for the
order, never about where it came from.
"""


class LimitEngineError(Exception):
    """Base class for all engine errors."""


class TransientExternalError(LimitEngineError):
    """Oracle, planner or RPC unreachable, rate-limited or timed out.

    The affected order is retried on a later tick with no state change.
    """


class PriceUnavailable(TransientExternalError):
    pass


class QuoteUnavailable(TransientExternalError):
    pass


class ChainError(TransientExternalError):
    pass


class ChainTimeout(ChainError):
    """Transaction was broadcast but no receipt arrived in time."""

    def __init__(self, message: str, tx_hash: str | None = None):
        super().__init__(message)
        self.tx_hash = tx_hash


class TransactionReverted(ChainError):
    def __init__(self, message: str, tx_hash: str | None = None):
        super().__init__(message)
        self.tx_hash = tx_hash


class InvalidOrderInput(LimitEngineError, ValueError):
    """Malformed order or wallet input; rejected before anything is stored."""


class OrderNotFound(LimitEngineError, LookupError):
    pass


class PartialExecutionFailure(LimitEngineError):
    """A swap-plan step failed after an earlier step was already confirmed."""

    def __init__(self, message: str, confirmed_tx_hashes: list[str] | None = None):
        super().__init__(message)
        self.confirmed_tx_hashes = list(confirmed_tx_hashes or [])


class TerminalConflict(LimitEngineError):
    """Compare-and-transition lost: the order is finalized or leased elsewhere."""


class VaultError(LimitEngineError):
    pass
