# surety_oracle/errors.py
"""
Exception hierarchy for the oracle coordination layer.

Per-actor and per-event failures are logged and absorbed by the
coordinator and dispatcher. Only BootstrapError and ConfigError are fatal.
"""


class OracleError(Exception):
    """Root of every error raised by surety_oracle."""


class ConfigError(OracleError):
    pass


class BootstrapError(OracleError):
    """The node cannot enter the serving phase."""


class LedgerError(OracleError):
    """A ledger interaction failed (network, RPC or contract level)."""


class TransactionRejected(LedgerError):
    def __init__(self, message, tx_hash=None):
        super().__init__(message)
        self.tx_hash = tx_hash


class SubscriptionError(LedgerError):
    """The request-event stream broke."""


class RegistryFrozenError(OracleError):
    pass


class RegistryNotReadyError(OracleError):
    pass


class DuplicateActorError(OracleError):
    pass
