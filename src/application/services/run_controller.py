"""Single-flight drain of the staging queue."""

from src.application.dtos.staging import PublishOutcomeKind, RunSummary
from src.application.services.progress import RunStateStore
from src.application.services.publish_pipeline import PublishPipeline
from src.application.services.run_log import RunLogService
from src.application.services.staging_ledger import StagingLedger
from src.commons.settings.models import Settings
from src.commons.telemetry import get_logger, timed
from src.domain.exceptions import RunAlreadyActiveError
from src.domain.models.run_log import RunLogName


class RunController:
    """Drains processable staging items through the publish pipeline.

    At most one drain runs per process. Items are published strictly one
    after another. A failed item is counted and the run moves on; an item
    removed mid-run is passed over without counting.

    A quota stop ends the run and leaves the remaining items untouched.
    """

    def __init__(
        self,
        ledger: StagingLedger,
        pipeline: PublishPipeline,
        run_state: RunStateStore,
        run_log: RunLogService,
        settings: Settings,
    ) -> None:
        self._ledger = ledger
        self._pipeline = pipeline
        self._run_state = run_state
        self._run_log = run_log
        self._batch_limit = settings.staging.process_batch_limit
        self._logger = get_logger(__name__)

    @timed(threshold_ms=1000)
    async def drain(self) -> RunSummary:
        """Publish the oldest processable items.

        Returns:
            Counts, whether quota stopped the run, and the final run state.

        Raises:
            RunAlreadyActiveError: Another run holds the slot.
        """
        candidates = await self._ledger.list_processable(self._batch_limit)
        if not self._run_state.try_start_run(candidates):
            raise RunAlreadyActiveError(self._run_state.get_state())

        processed = 0
        failed = 0
        quota_stopped = False
        lines = [f"Process run started, pending count: {len(candidates)}"]
        self._logger.info("Drain run started", extra={"total_items": len(candidates)})

        try:
            for item in candidates:
                self._run_state.update_progress(processed, failed, item.id)
                outcome = await self._pipeline.publish(item, lines)

                if outcome.kind == PublishOutcomeKind.QUOTA_STOPPED:
                    quota_stopped = True
                    break
                if outcome.kind == PublishOutcomeKind.SKIPPED:
                    self._run_state.update_progress(processed, failed, None)
                    continue
                if outcome.kind == PublishOutcomeKind.PUBLISHED:
                    processed += 1
                else:
                    failed += 1
                self._run_state.update_progress(processed, failed, None)
                lines.append(
                    f"{item.id} Done. Processed: {processed}, Failed: {failed}"
                )

            lines.append(
                f"Run finished. Processed: {processed}, Failed: {failed}, "
                f"QuotaStopped: {quota_stopped}"
            )
        except Exception as e:
            lines.append(f"Process run failed: {e}")
            raise
        finally:
            self._run_state.end_run()
            await self._run_log.append(RunLogName.PUBLISH_RUN, lines)

        self._logger.info(
            "Drain run finished",
            extra={
                "processed": processed,
                "failed": failed,
                "quota_stopped": quota_stopped,
                "total_items": len(candidates),
            },
        )
        return RunSummary(
            processed=processed,
            failed=failed,
            quota_stopped=quota_stopped,
            total=len(candidates),
            state=self._run_state.get_state(),
        )
