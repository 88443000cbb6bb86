"""Structured audit logging for package transactions.

Every transaction is recorded in /var/log/pkgsys/audit.log as JSON, one
event per line: when it starts and how it ends. The log is append-only
and a failure to write it never affects the transaction itself.
"""

import json
import logging
import os
import time
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)

AUDIT_LOG_DIR = Path("/var/log/pkgsys")
AUDIT_LOG_FILE = AUDIT_LOG_DIR / "audit.log"


class AuditLogger:
    """Append-only JSON audit logger."""

    def __init__(self, log_path: Path = None):
        self._log_path = log_path or AUDIT_LOG_FILE
        self._fd = None

    def _ensure_open(self) -> bool:
        """Open log file, creating directory if needed. Returns True on success."""
        if self._fd is not None:
            return True
        try:
            self._log_path.parent.mkdir(parents=True, exist_ok=True)
            self._fd = open(self._log_path, 'a')
            return True
        except OSError as e:
            logger.debug(f"Cannot open audit log {self._log_path}: {e}")
            return False

    def _write(self, event: dict):
        if not self._ensure_open():
            return
        event.setdefault('timestamp', time.time())
        event.setdefault('pid', os.getpid())
        try:
            self._fd.write(json.dumps(event, ensure_ascii=False) + '\n')
            self._fd.flush()
        except OSError as e:
            logger.debug(f"Cannot write to audit log: {e}")

    def close(self):
        if self._fd:
            try:
                self._fd.close()
            except OSError:
                pass
            self._fd = None

    def log_transaction_start(self, to_install: List[str], to_remove: List[str]):
        self._write({
            'event': 'transaction_start',
            'install': list(to_install),
            'remove': list(to_remove),
        })

    def log_transaction_complete(
        self,
        to_install: List[str],
        to_remove: List[str],
        success: bool,
        reason: Optional[str] = None,
        packages: List[str] = None
    ):
        """Log how a transaction ended.

        Args:
            success: Final boolean outcome
            reason: Failure reason name, None on success
            packages: Offending packages (failed or remaining)
        """
        self._write({
            'event': 'transaction_complete',
            'install': list(to_install),
            'remove': list(to_remove),
            'success': success,
            'reason': reason,
            'packages': list(packages or []),
        })
