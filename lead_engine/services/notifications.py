# lead_engine/services/notifications.py
import asyncio
import logging
from typing import Set
from uuid import UUID

logger = logging.getLogger(__name__)


class NotificationSender:
    """Delivery channel for agent notifications (email, SMS, push live outside the engine)."""

    async def send(self, agent_id: UUID, message: str) -> None:
        raise NotImplementedError


class LoggingNotificationSender(NotificationSender):
    async def send(self, agent_id: UUID, message: str) -> None:
        logger.info("Notify agent %s: %s", agent_id, message)


class NotificationDispatcher:
    """
    Fire-and-forget wrapper around a sender.

    ``notify`` returns immediately; the send runs as a background task bounded
    by ``timeout`` and any failure is logged, never raised to the engine.
    """

    def __init__(self, sender: NotificationSender, timeout: float = 5.0):
        self.sender = sender
        self.timeout = timeout
        self._pending: Set[asyncio.Task] = set()

    def notify(self, agent_id: UUID, message: str) -> asyncio.Task:
        task = asyncio.create_task(self._deliver(agent_id, message))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _deliver(self, agent_id: UUID, message: str) -> None:
        try:
            await asyncio.wait_for(self.sender.send(agent_id, message), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("Notification to agent %s timed out after %.1fs", agent_id, self.timeout)
        except Exception as e:
            logger.error("Notification to agent %s failed: %s", agent_id, e)

    async def drain(self) -> None:
        """Wait for in-flight notifications (used on shutdown and in tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
