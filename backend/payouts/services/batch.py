"""Independent-unit batch execution and processing-run bookkeeping.

A batch is N units, each run in its own transaction. A unit that raises is
rolled back alone and recorded in ``BatchResult.failed``; the rest carry on.
With a session factory, units run on a bounded thread pool with one session
each. Without one, they run in order on the caller's session, one SAVEPOINT
per unit.
"""

from collections.abc import Callable, Iterable, Iterator
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from contextlib import contextmanager

import structlog
from sqlalchemy.orm import Session, sessionmaker

from db.enums import RunStatus, RunType
from db.models import ProcessingRuns
from payouts.services._helpers import dump_json, new_id, now_iso
from payouts.services._tx import atomic
from payouts.services.schemas.results import BatchResult, UnitOutcome

logger = structlog.get_logger(__name__)

SessionFactory = sessionmaker[Session]
Unit = Callable[[Session, str], UnitOutcome]


class BatchRunner:
    def __init__(
        self,
        session: Session,
        session_factory: SessionFactory | None = None,
        max_workers: int = 1,
    ) -> None:
        self.session: Session = session
        self.session_factory: SessionFactory | None = session_factory
        self.max_workers: int = max(1, max_workers)

    @property
    def parallel(self) -> bool:
        return self.session_factory is not None and self.max_workers > 1

    @contextmanager
    def scope(self) -> Iterator[Session]:
        """Own session and transaction when a factory is set, else a SAVEPOINT on ours.

        With a factory the caller's session is never touched, so it holds no
        lock the units could wait on.
        """
        if self.session_factory is None:
            with atomic(self.session):
                yield self.session
            return
        with self.session_factory() as session:
            with session.begin():
                yield session

    def _run_one(
        self,
        unit: Unit,
        item_id: str,
        benign: tuple[type[Exception], ...],
    ) -> UnitOutcome:
        try:
            with self.scope() as session:
                return unit(session, item_id)
        except benign as exc:
            logger.info("Unit skipped", item_id=item_id, reason=str(exc))
            return UnitOutcome(skipped=True, reason=getattr(exc, "code", type(exc).__name__))

    def run(
        self,
        items: Iterable[str],
        unit: Unit,
        benign: tuple[type[Exception], ...] = (),
    ) -> BatchResult:
        """Run ``unit`` for every item id. Never raises for a single item's failure."""
        result: BatchResult = BatchResult()
        ids: list[str] = list(items)

        if not self.parallel:
            for item_id in ids:
                try:
                    result.record_success(item_id, self._run_one(unit, item_id, benign))
                except Exception as e:
                    logger.warning("Unit failed", item_id=item_id, error=str(e))
                    result.record_failure(item_id, e)
            return result

        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            futures: dict[Future[UnitOutcome], str] = {
                pool.submit(self._run_one, unit, item_id, benign): item_id for item_id in ids
            }
            for future in as_completed(futures):
                item_id = futures[future]
                try:
                    result.record_success(item_id, future.result())
                except Exception as e:
                    logger.warning("Unit failed", item_id=item_id, error=str(e))
                    result.record_failure(item_id, e)
        return result

    # ------------------------------------------------------------------
    # Processing runs
    # ------------------------------------------------------------------

    def start_run(self, run_type: RunType, period: str | None = None) -> str:
        run_id: str = new_id()
        with self.scope() as session:
            session.add(
                ProcessingRuns(
                    run_id=run_id,
                    run_type=run_type.value,
                    started_at=now_iso(),
                    status=RunStatus.RUNNING.value,
                    period=period,
                )
            )
            session.flush()
        logger.info("Run started", run_id=run_id, run_type=run_type.value, period=period)
        return run_id

    def finish_run(
        self,
        run_id: str,
        result: BatchResult | None = None,
        error: Exception | None = None,
    ) -> None:
        with self.scope() as session:
            run: ProcessingRuns | None = session.get(ProcessingRuns, run_id)
            if run is None:
                return
            if result is not None:
                run.records_processed = result.processed
                run.records_created = len(result.succeeded)
                run.records_skipped = len(result.skipped)
                run.records_failed = len(result.failed)
                if result.failed:
                    run.error_details = dump_json({"failed": list(result.failed)})
            if error is not None:
                run.status = RunStatus.FAILED.value
                run.error_details = dump_json({"error": str(error)})
            elif result is not None and result.failed:
                run.status = (
                    RunStatus.FAILED.value if not result.succeeded and not result.skipped
                    else RunStatus.PARTIAL.value
                )
            else:
                run.status = RunStatus.SUCCESS.value
            run.completed_at = now_iso()
            session.flush()
        logger.info(
            "Run finished",
            run_id=run_id,
            **(result.tally() if result is not None else {}),
            error=str(error) if error else None,
        )
