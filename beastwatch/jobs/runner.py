"""JobRunner -- one reconciliation and notification pass.

Pipeline per run:
1. Fetch vitals, ownership and tokens concurrently (any failure aborts)
2. Reconcile into subjects (unresolvable pets are skipped)
3. Per subject: decay to now, evaluate rules, gate on owner cooldown,
   dispatch every alert, record the cooldown after a successful send

Fetch failures abort a run, and push credential (auth) failures mark it
failed once it finishes. Store and other dispatch errors are contained
to the subject or alert they concern and counted in the RunReport.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Literal

from beastwatch.care.decay import compute_current_vitals
from beastwatch.care.reconciler import Reconciler
from beastwatch.care.rules import RuleEngine
from beastwatch.care.schemas import Alert, NotifiableSubject
from beastwatch.config import Settings
from beastwatch.errors import CooldownStoreError, FetchFailed
from beastwatch.notify.dispatcher import DispatchResult, Dispatcher
from beastwatch.notify.gate import CooldownGate
from beastwatch.source.pages import PageFetcher

logger = logging.getLogger(__name__)

TEST_ALERT = Alert(kind="test", title="🔔 Test Notification", body="Check your beast.")

ENTITY_TYPES = ("vitals", "ownership", "tokens")


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class RunReport:
    """Outcome of one run, returned to the trigger."""

    started_at: int
    status: Literal["ok", "error"] = "ok"
    error: str | None = None
    fetched: dict[str, int] = field(default_factory=dict)
    subjects: int = 0
    unresolved: int = 0
    alerts: int = 0
    suppressed: int = 0
    store_errors: int = 0
    subject_errors: int = 0
    sent: int = 0
    failed: int = 0
    invalid_tokens: int = 0
    auth_failures: int = 0
    test_mode: bool = False

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def count_failure(self, result: DispatchResult, token: str, invalid: set[str]) -> None:
        self.failed += 1
        if result.error is None:
            return
        if result.error.kind == "invalid_token":
            invalid.add(token)
            self.invalid_tokens = len(invalid)
        elif result.error.kind == "auth":
            self.auth_failures += 1


class JobRunner:
    """Orchestrates fetch -> reconcile -> decay -> rules -> gate -> dispatch.

    All collaborators are injected; the runner holds no global state. Runs
    in the same process are serialised by a lock.
    """

    def __init__(
        self,
        fetcher: PageFetcher,
        reconciler: Reconciler,
        rules: RuleEngine,
        gate: CooldownGate,
        dispatcher: Dispatcher,
        settings: Settings,
    ) -> None:
        self._fetcher = fetcher
        self._reconciler = reconciler
        self._rules = rules
        self._gate = gate
        self._dispatcher = dispatcher
        self._settings = settings
        self._lock = asyncio.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    async def run(self, now: int | None = None) -> RunReport:
        """Execute one run and return its report. Never raises for fetch errors."""
        async with self._lock:
            run_at = now if now is not None else now_ms()
            report = RunReport(started_at=run_at)

            if self._settings.test_mode:
                await self._run_test_mode(report)
            else:
                try:
                    await self._run_pipeline(run_at, report)
                except FetchFailed as e:
                    report.status = "error"
                    report.error = str(e)
                    logger.error("Run aborted: %s", e)
                    return report

                logger.info(
                    "Run complete: %d subject(s), %d alert(s), %d sent, %d failed, "
                    "%d suppressed by cooldown, %d store error(s)",
                    report.subjects, report.alerts, report.sent, report.failed,
                    report.suppressed, report.store_errors,
                )

            if report.auth_failures:
                report.status = "error"
                report.error = (
                    f"Push provider rejected credentials for {report.auth_failures} send(s)"
                )
                logger.error("Run failed: %s", report.error)
            return report

    async def _run_test_mode(self, report: RunReport) -> None:
        report.test_mode = True
        token = self._settings.test_token
        result = await self._dispatcher.send(token, TEST_ALERT)
        report.alerts = 1
        if result.ok:
            report.sent = 1
            logger.info("Test notification sent to configured test token")
        else:
            report.count_failure(result, token, set())

    async def _fetch_all(self) -> list[list[Any]]:
        """Fetch every entity type concurrently; one failure cancels the rest."""
        tasks = [asyncio.create_task(self._fetcher.fetch_all(t)) for t in ENTITY_TYPES]
        try:
            return await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _run_pipeline(self, run_at: int, report: RunReport) -> None:
        vitals, ownership, tokens = await self._fetch_all()
        report.fetched = {
            "vitals": len(vitals),
            "ownership": len(ownership),
            "tokens": len(tokens),
        }

        subjects = self._reconciler.reconcile(vitals, ownership, tokens)
        report.subjects = len(subjects)
        report.unresolved = len(self._reconciler.unresolved)

        # Same-owner subjects run sequentially so they share one cooldown check
        by_owner: dict[str, list[NotifiableSubject]] = {}
        for subject in subjects:
            by_owner.setdefault(subject.owner_id, []).append(subject)

        semaphore = asyncio.Semaphore(self._settings.dispatch_concurrency)
        invalid: set[str] = set()

        async def process_owner(owner_subjects: list[NotifiableSubject]) -> None:
            async with semaphore:
                for subject in owner_subjects:
                    try:
                        await self._process_subject(subject, run_at, report, invalid)
                    except Exception:
                        report.subject_errors += 1
                        logger.exception("Failed to process pet %s", subject.pet_id)

        await asyncio.gather(*(process_owner(subs) for subs in by_owner.values()))

    async def _process_subject(
        self, subject: NotifiableSubject, run_at: int, report: RunReport, invalid: set[str]
    ) -> None:
        current = subject.with_snapshot(compute_current_vitals(subject.snapshot, run_at))
        alerts = self._rules.evaluate(current)
        if not alerts:
            return
        report.alerts += len(alerts)

        try:
            admitted = await self._gate.admit(subject.owner_id, run_at)
        except CooldownStoreError as e:
            report.store_errors += 1
            logger.warning("Skipping pet %s: %s", subject.pet_id, e)
            return
        if not admitted:
            report.suppressed += 1
            return

        sent = 0
        for alert in alerts:
            result = await self._dispatcher.send(subject.device_token, alert)
            if result.ok:
                sent += 1
                logger.info(
                    "Notification sent for pet %s (owner %s): %s",
                    subject.pet_id, subject.owner_id, alert.title,
                )
            else:
                report.count_failure(result, subject.device_token, invalid)
        report.sent += sent

        if sent:
            try:
                await self._gate.record(subject.owner_id, run_at)
            except CooldownStoreError as e:
                report.store_errors += 1
                logger.warning("Could not record cooldown for pet %s: %s", subject.pet_id, e)
