# lead_engine/scheduler/context.py
import random
from dataclasses import dataclass, field
from typing import Optional

from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from lead_engine.core.config import Settings
from lead_engine.scheduler.clock import Clock, SystemClock
from lead_engine.services.lead_assignment import LeadAssignmentManager
from lead_engine.services.locks import SourceLockRegistry, source_locks
from lead_engine.services.notifications import NotificationDispatcher


@dataclass
class SchedulerContext:
    """Everything a job needs, owned by the process entry point and passed in explicitly."""

    session_factory: async_sessionmaker
    settings: Settings
    clock: Clock = field(default_factory=SystemClock)
    rng: random.Random = field(default_factory=random.Random)
    notifier: Optional[NotificationDispatcher] = None
    source_locks: SourceLockRegistry = field(default_factory=lambda: source_locks)
    redis: Optional[Redis] = None

    def assignment_manager(self, db: AsyncSession) -> LeadAssignmentManager:
        return LeadAssignmentManager(db, locks=self.source_locks, notifier=self.notifier, now=self.clock.now)
