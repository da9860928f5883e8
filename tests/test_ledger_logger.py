from __future__ import annotations

import json
import logging

import pytest

from credit_gate.db.memory import InMemoryDBManager
from credit_gate.logging.ledger_logger import LedgerLogger
from credit_gate.models.ledger import LedgerEventType


@pytest.mark.asyncio
async def test_entries_written_to_db_and_file(tmp_path):
    db = InMemoryDBManager()
    path = tmp_path / "logs" / "ledger.log"
    ledger = LedgerLogger(db=db, file_path=path)

    await ledger.log_transaction(
        user_id="user-1", message="Credits charged", details={"amount": 10}, correlation_id="req-1"
    )
    await ledger.log_error(message="Provider failed", details={"provider": "openai"})
    await ledger.log_reconciliation(
        user_id="user-1", message="Operation delivered without charge", details={"amount": 10}
    )

    assert [e.event_type for e in db.ledger_entries] == [
        LedgerEventType.TRANSACTION,
        LedgerEventType.ERROR,
        LedgerEventType.RECONCILIATION,
    ]
    lines = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
    assert [line["event_type"] for line in lines] == ["transaction", "error", "reconciliation"]
    assert lines[0]["correlation_id"] == "req-1"
    assert lines[1]["user_id"] is None


@pytest.mark.asyncio
async def test_file_mirror_failure_is_logged_not_raised(tmp_path, caplog):
    db = InMemoryDBManager()
    path = tmp_path / "ledger.log"
    path.mkdir()
    ledger = LedgerLogger(db=db, file_path=path)

    with caplog.at_level(logging.WARNING, logger="credit_gate.logging.ledger_logger"):
        entry = await ledger.log_transaction(
            user_id="user-1", message="Credits charged", details={"amount": 10}
        )

    assert entry.id is not None
    assert len(db.ledger_entries) == 1
    assert "Ledger file mirror write failed" in caplog.text
