"""
Integrity Controller Module

Suspends trigger and foreign-key enforcement on the target session while a
data-only chunk is loaded, by switching session_replication_role to
'replica'.

suspend() hands back an IntegritySuspension token that remembers the
original role and restores it at most once. Each SET is committed right
away: a SET made inside a transaction that is later rolled back (for
example by a failed COPY batch) would otherwise be undone with it.

Failures on this path are recorded and never abort the chunk; a failed
capture falls back to the default 'origin' role.
"""

from typing import Optional
import logging

from mssql_pg_loader.exceptions import IntegrityControlError
from mssql_pg_loader.migration_log import MigrationLogger

logger = logging.getLogger(__name__)

DEFAULT_MODE = 'origin'
BYPASS_MODE = 'replica'
KNOWN_MODES = ('origin', 'replica', 'local')


def _set_mode_sql(mode: str) -> str:
    return f"SET session_replication_role = {mode};"


class IntegritySuspension:
    """Capability token: integrity is suspended, restore it with original_mode."""

    def __init__(self, connection, original_mode: str, migration_log: MigrationLogger):
        self._connection = connection
        self._migration_log = migration_log
        self.original_mode = original_mode
        self.restored = False
        self.restore_failed = False

    def restore(self) -> bool:
        """
        Switch the session back to the original role.

        Runs at most once; later calls are no-ops. Failures are recorded,
        not raised.

        Returns:
            False if the session may still be in bypass mode
        """
        if self.restored:
            return not self.restore_failed
        self.restored = True

        sql = _set_mode_sql(self.original_mode)
        try:
            with self._connection.cursor() as cursor:
                cursor.execute(sql)
            self._connection.commit()
            logger.debug(f"Restored session_replication_role to {self.original_mode}")
            return True
        except Exception as e:
            error = IntegrityControlError(f"Could not restore session_replication_role: {e}", statement=sql)
            self.restore_failed = True
            self._migration_log.record_error(f"\t--[IntegritySuspension::restore] {error}", sql)
            _rollback_quietly(self._connection)
            return False

    def __enter__(self) -> "IntegritySuspension":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.restore()


class IntegrityController:
    """Capture and bypass referential-integrity enforcement for one session."""

    def __init__(self, migration_log: MigrationLogger):
        self._migration_log = migration_log

    def suspend(self, connection) -> IntegritySuspension:
        """
        Capture the session's role and switch it to 'replica'.

        Args:
            connection: Target psycopg2 connection (not released here)

        Returns:
            IntegritySuspension holding the role to restore
        """
        sql = "SHOW session_replication_role;"
        original_mode = DEFAULT_MODE

        try:
            with connection.cursor() as cursor:
                cursor.execute(sql)
                row = cursor.fetchone()
                original_mode = _known_mode(row[0] if row else None)
                sql = _set_mode_sql(BYPASS_MODE)
                cursor.execute(sql)
            connection.commit()
            logger.info(f"Suspended triggers and FK checks (session_replication_role was {original_mode})")
        except Exception as e:
            error = IntegrityControlError(f"Could not suspend integrity enforcement: {e}", statement=sql)
            self._migration_log.record_error(f"\t--[IntegrityController::suspend] {error}", sql)
            _rollback_quietly(connection)

        return IntegritySuspension(connection, original_mode, self._migration_log)


def _known_mode(mode: Optional[str]) -> str:
    if mode in KNOWN_MODES:
        return mode
    logger.warning(f"Unexpected session_replication_role {mode!r}; restoring to {DEFAULT_MODE}")
    return DEFAULT_MODE


def _rollback_quietly(connection) -> None:
    try:
        connection.rollback()
    except Exception:
        logger.exception("Exception occurred during PostgreSQL rollback")
