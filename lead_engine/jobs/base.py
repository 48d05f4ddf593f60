# lead_engine/jobs/base.py
import asyncio
import logging
from datetime import datetime
from typing import Any, Optional, Sequence, TYPE_CHECKING

from sqlalchemy.ext.asyncio import AsyncSession

from lead_engine.core.exceptions import CandidateChanged, LeadEngineError, error_for_kind
from lead_engine.schemas.assignment import AssignmentResult
from lead_engine.schemas.automation import ItemError, JobResult
from lead_engine.services.settings_gate import SettingsGate

if TYPE_CHECKING:
    from lead_engine.scheduler.context import SchedulerContext

logger = logging.getLogger(__name__)

PROCESSED = "processed"
SKIPPED = "skipped"


class RotationJob:
    """
    Template shared by every periodic job:

    1. feature switch and (optionally) office-hours gate, otherwise skip,
    2. one bounded, oldest-first batch of candidates,
    3. each candidate handled in its own session under a timeout; the lead is
       re-checked once locked and skipped if it no longer qualifies, a failure
       is logged against the item and the batch carries on,
    4. a ``JobResult`` summary which the scheduler writes to the activity log.

    Per-run values (thresholds, configured agent ids) come from ``load_params``
    and are handed to the other hooks; the job instance itself holds no run
    state.

    Errors raised while gating or fetching the batch propagate: the scheduler
    reports them as a job failure.
    """

    name: str = ""
    feature_key: Optional[str] = None
    feature_default: bool = True
    requires_office_hours: bool = False

    async def run(self, ctx: "SchedulerContext") -> JobResult:
        now = ctx.clock.now()
        result = JobResult(job_name=self.name, started_at=now)

        async with ctx.session_factory() as db:
            gate = SettingsGate(db, ctx.settings)
            skip_reason = await self.check_gates(gate, now)
            if skip_reason:
                logger.info("%s skipped: %s", self.name, skip_reason)
                return self._finish(ctx, result, status="skipped", message=skip_reason)
            params = await self.load_params(ctx, gate, now)
            candidates = await self.fetch_candidates(ctx, db, params, now)

        logger.info("%s: %d candidate(s)", self.name, len(candidates))
        for item in candidates:
            item_id = self.item_id(item)
            try:
                async with ctx.session_factory() as db:
                    outcome = await asyncio.wait_for(
                        self.process_item(ctx, db, item, params, now),
                        timeout=ctx.settings.item_timeout_seconds,
                    )
            except asyncio.TimeoutError:
                self._item_failed(result, item_id, "timeout", f"timed out after {ctx.settings.item_timeout_seconds}s")
                continue
            except CandidateChanged as e:
                logger.info("%s: item %s skipped: %s", self.name, item_id, e.message)
                result.skipped += 1
                continue
            except LeadEngineError as e:
                self._item_failed(result, item_id, e.kind, e.message)
                continue
            except Exception as e:
                self._item_failed(result, item_id, type(e).__name__, str(e))
                continue

            if outcome == SKIPPED:
                result.skipped += 1
            else:
                result.processed += 1

        message = f"{result.processed} processed, {result.skipped} skipped, {result.failed} failed"
        return self._finish(ctx, result, status="completed", message=message)

    # ---- hooks ----
    async def check_gates(self, gate: SettingsGate, now: datetime) -> Optional[str]:
        if self.feature_key and not await gate.get_bool(self.feature_key, self.feature_default):
            return f"{self.feature_key} is off"
        if self.requires_office_hours and not await gate.is_within_office_hours(now):
            return "outside office hours"
        return None

    async def load_params(self, ctx: "SchedulerContext", gate: SettingsGate, now: datetime) -> Any:
        return None

    async def fetch_candidates(
        self, ctx: "SchedulerContext", db: AsyncSession, params: Any, now: datetime
    ) -> Sequence[Any]:
        raise NotImplementedError

    async def process_item(
        self, ctx: "SchedulerContext", db: AsyncSession, item: Any, params: Any, now: datetime
    ) -> str:
        raise NotImplementedError

    def item_id(self, item: Any) -> str:
        return str(item["lead_id"])

    # ---- helpers ----
    @staticmethod
    def ensure_success(outcome: AssignmentResult) -> str:
        if outcome.error_kind == CandidateChanged.kind:
            logger.info("Lead %s skipped: %s", outcome.lead_id, outcome.message)
            return SKIPPED
        if not outcome.success:
            raise error_for_kind(outcome.error_kind or "", outcome.message)
        return PROCESSED

    def _item_failed(self, result: JobResult, item_id: str, kind: str, message: str) -> None:
        logger.error("%s: item %s failed (%s): %s", self.name, item_id, kind, message)
        result.failed += 1
        result.errors.append(ItemError(item_id=item_id, kind=kind, message=message))

    def _finish(self, ctx: "SchedulerContext", result: JobResult, status: str, message: str) -> JobResult:
        result.status = status
        result.message = message
        result.finished_at = ctx.clock.now()
        return result


def batch_limit(ctx: "SchedulerContext") -> int:
    return ctx.settings.job_batch_size
