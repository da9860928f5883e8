from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from ..db.base import BaseDBManager
from ..models.ledger import LedgerEntry, LedgerEventType

logger = logging.getLogger(__name__)


class LedgerLogger:
    """
    Audit trail for balance-affecting events.

    Every entry is stored through the ``BaseDBManager`` first; that copy is
    authoritative. It is then appended to ``file_path`` as one JSON object per
    line. A failed append is reported on the module logger and never reaches
    the caller, since the balance change it describes has already happened.
    """

    def __init__(self, db: BaseDBManager, file_path: Path) -> None:
        self._db = db
        self._file_path = file_path
        self._file_path.parent.mkdir(parents=True, exist_ok=True)

    async def record(
        self,
        event_type: LedgerEventType,
        message: str,
        *,
        user_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        correlation_id: Optional[str] = None,
    ) -> LedgerEntry:
        entry = await self._db.add_ledger_entry(
            LedgerEntry(
                event_type=event_type,
                user_id=user_id,
                message=message,
                details=details or {},
                correlation_id=correlation_id,
            )
        )
        self._mirror(entry)
        return entry

    async def log_transaction(self, *, user_id: str, message: str, **kwargs: Any) -> LedgerEntry:
        return await self.record(LedgerEventType.TRANSACTION, message, user_id=user_id, **kwargs)

    async def log_error(self, *, message: str, **kwargs: Any) -> LedgerEntry:
        return await self.record(LedgerEventType.ERROR, message, **kwargs)

    async def log_reconciliation(self, *, user_id: str, message: str, **kwargs: Any) -> LedgerEntry:
        """Delivered operation whose charge could not be committed."""
        return await self.record(LedgerEventType.RECONCILIATION, message, user_id=user_id, **kwargs)

    def _mirror(self, entry: LedgerEntry) -> None:
        line = json.dumps(entry.model_dump(mode="json"), default=str)
        try:
            with self._file_path.open("a", encoding="utf-8") as f:
                f.write(line + "\n")
        except OSError as exc:
            logger.warning(
                "Ledger file mirror write failed (%s, %s): %s",
                self._file_path,
                entry.event_type.value,
                exc,
            )
