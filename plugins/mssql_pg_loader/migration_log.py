"""
Migration Log Module

Writes loader messages to the Python logger and to plain-text files in the
migration logs directory:

- all.log: every message
- errors-only.log: errors with the statement that failed
- <table>.log: table-scoped rejected-data entries

File write failures are reported as warnings and never interrupt loading.
"""

from datetime import datetime
from typing import Optional
import logging
import os

from mssql_pg_loader.utils import sanitize_table_name, truncate_string

logger = logging.getLogger(__name__)


class MigrationLogger:
    """Logger collaborator used by the loader components."""

    ALL_LOG = 'all.log'
    ERRORS_LOG = 'errors-only.log'

    def __init__(self, logs_dir: str):
        """
        Args:
            logs_dir: Directory receiving the log files (created on first write)
        """
        self.logs_dir = logs_dir

    @property
    def all_log_path(self) -> str:
        return os.path.join(self.logs_dir, self.ALL_LOG)

    @property
    def errors_log_path(self) -> str:
        return os.path.join(self.logs_dir, self.ERRORS_LOG)

    def table_log_path(self, table_name: str) -> str:
        """Path of the rejected-data file for a table."""
        return os.path.join(self.logs_dir, f"{sanitize_table_name(table_name)}.log")

    def log(self, message: str, file_path: Optional[str] = None) -> None:
        """
        Log a message.

        Args:
            message: Text to log
            file_path: File to append to instead of all.log
        """
        logger.info(message)
        self._append(file_path or self.all_log_path, message)

    def record_error(self, message: str, statement: Optional[str] = None) -> None:
        """
        Log an error together with the statement that caused it.

        Args:
            message: Error description
            statement: SQL statement that failed, if any
        """
        text = message if not statement else f"{message}\n\tSQL: {truncate_string(statement)}"
        logger.error(text)
        self._append(self.errors_log_path, text)
        self._append(self.all_log_path, text)

    def _append(self, path: str, text: str) -> None:
        try:
            os.makedirs(os.path.dirname(path) or '.', exist_ok=True)
            with open(path, 'a', encoding='utf-8') as fh:
                fh.write(f"[{datetime.now().isoformat(sep=' ', timespec='seconds')}] {text}\n")
        except OSError as e:
            logger.warning(f"Could not write log file {path}: {e}")
