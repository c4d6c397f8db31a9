from unittest.mock import MagicMock

import pytest
from sqlalchemy import select

from src.audit import AuditSink
from src.models.system_log import LogLevel, SystemLog


@pytest.mark.asyncio
async def test_record_writes_system_log(session_factory):
    sink = AuditSink(session_factory, service="test-service")

    await sink.record(LogLevel.info, "Maintenance scan completed", {"processed": 3})

    async with session_factory() as session:
        logs = (await session.execute(select(SystemLog))).scalars().all()
    assert len(logs) == 1
    assert logs[0].level == LogLevel.info
    assert logs[0].service == "test-service"
    assert logs[0].details == {"processed": 3}
    assert "Maintenance scan completed" in repr(logs[0])


@pytest.mark.asyncio
async def test_record_swallows_failures():
    broken_factory = MagicMock(side_effect=RuntimeError("database is locked"))
    sink = AuditSink(broken_factory)

    # Must not raise
    await sink.record(LogLevel.error, "Notification creation failed", {"user_id": 1})


@pytest.mark.asyncio
async def test_record_swallows_unserializable_metadata(session_factory):
    sink = AuditSink(session_factory)

    await sink.record(LogLevel.info, "odd", {"value": object()})
