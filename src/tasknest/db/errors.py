# src/tasknest/db/errors.py

from __future__ import annotations


class DatabaseInitError(RuntimeError):
    """Fatal startup failure: the application must not run against this database."""

    stage = "init"


class LedgerError(DatabaseInitError):
    stage = "ledger"


class MigrationError(DatabaseInitError):
    """A pending migration unit failed; its transaction was rolled back."""

    stage = "migrate"

    def __init__(self, name: str, cause: BaseException) -> None:
        super().__init__(f"Migration {name} failed: {cause}")
        self.name = name


class ReconcileError(DatabaseInitError):
    stage = "reconcile"


class BootstrapError(DatabaseInitError):
    stage = "bootstrap"


class NotFoundError(LookupError):
    """Requested row does not exist."""
