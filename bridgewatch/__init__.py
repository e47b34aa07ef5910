"""
Bridgewatch

Read-side core of a rollup bridge indexer: frontier and confirmation-gap
queries for the rollup, and status derivation for withdrawals.

Submodules are loaded on first attribute access:

    from bridgewatch.database_sqlite import DatabaseSQLite
    from bridgewatch.rollup import RollupReader
    from bridgewatch.withdrawals import WithdrawalReader
"""

__version__ = "0.1.0"


def __getattr__(name):
    """Lazy module loading so importing the package stays cheap."""
    if name == 'DatabaseSQLite':
        from .database_sqlite import DatabaseSQLite
        return DatabaseSQLite
    elif name == 'RollupReader':
        from .rollup import RollupReader
        return RollupReader
    elif name == 'WithdrawalReader':
        from .withdrawals import WithdrawalReader
        return WithdrawalReader
    raise AttributeError(f"module 'bridgewatch' has no attribute {name!r}")

__all__ = ['DatabaseSQLite', 'RollupReader', 'WithdrawalReader']
