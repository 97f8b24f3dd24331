"""Full item sync runner.

Drives begin → batches → complete inside one call, the way the scheduled
sync does, and records the run's start time as the new "last successful
run" marker once the import completes.
"""

import logging
from typing import Optional

from item_import.engine import ItemImportEngine
from item_import.models import ImportBatchResult, ImportStats

logger = logging.getLogger(__name__)


SYSTEM_OWNER = "system:item-sync"


class ItemSyncRunner:
    """Runs a whole import in-process.

    Usage:
        runner = ItemSyncRunner(engine)
        result = await runner.run(force_full_import=True)
    """

    def __init__(self, engine: ItemImportEngine, owner_id: str = SYSTEM_OWNER, batch_size: int = 25):
        self.engine = engine
        self.owner_id = owner_id
        self.batch_size = batch_size

    async def run(
        self,
        force_full_import: Optional[bool] = None,
        force_taxonomy_refresh: bool = False,
        batch_size: Optional[int] = None,
    ) -> ImportBatchResult:
        """Import every row, then persist the last-run marker.

        Raises:
            SoftOneError: The initial ERP query failed
        """
        state = await self.engine.begin(
            self.owner_id,
            force_full_import=force_full_import,
            force_taxonomy_refresh=force_taxonomy_refresh,
        )

        size = batch_size or self.batch_size
        warnings = []
        while True:
            result = self.engine.run_batch(state, self.owner_id, size)
            warnings.extend(result.warnings)
            state = result.state
            if result.complete:
                break

        record_successful_run(self.engine, result)
        logger.info(
            f"Item sync finished: {state.stats.processed} rows "
            f"({state.stats.created} created, {state.stats.updated} updated, {state.stats.skipped} skipped)"
        )
        return ImportBatchResult(
            state=state,
            batch=ImportStats(**state.stats.model_dump()),
            complete=True,
            warnings=warnings,
            stale_processed=result.stale_processed,
        )


def record_successful_run(engine: ItemImportEngine, result: ImportBatchResult) -> None:
    """Persist the completed run's start timestamp for the next delta window."""
    if result.complete:
        engine.last_run.set(result.state.started_at)
