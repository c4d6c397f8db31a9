from __future__ import annotations

from typing import Any, Dict, Optional

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.models.system_log import LogLevel, SystemLog

_LOGURU_LEVELS = {
    LogLevel.error: "ERROR",
    LogLevel.warn: "WARNING",
    LogLevel.info: "INFO",
    LogLevel.debug: "DEBUG",
}


class AuditSink:
    """Append-only audit trail backed by the ``system_logs`` table.

    ``record`` never raises: a broken audit trail must not fail the
    operation it is describing.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        service: str = "notification-scheduler",
    ):
        self.session_factory = session_factory
        self.service = service

    async def record(
        self,
        level: LogLevel,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
        trace: Optional[str] = None,
    ) -> None:
        try:
            logger.log(_LOGURU_LEVELS[level], f"[audit] {message} {metadata or {}}")
            async with self.session_factory() as session:
                session.add(
                    SystemLog(
                        level=level,
                        message=message,
                        service=self.service,
                        details=metadata,
                        trace=trace,
                    )
                )
                await session.commit()
        except Exception as e:
            logger.warning(f"Audit record dropped ({message}): {e}")
