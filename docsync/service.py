import asyncio
import os

import restate
from hypercorn.asyncio import serve
from hypercorn.config import Config
from loguru import logger

from .config import SyncSettings
from .errors import FatalSyncError
from .indexing import run_sync
from .logging_setup import configure_logging
from .models import ReconcileRequest, ReconcileResult
from .report import RunReport

reconciler_service = restate.Service("Reconciler")


def to_result(report: RunReport) -> ReconcileResult:
    return ReconcileResult(
        counts=report.counts(),
        failures=[f"{o.action.value} {o.name}: {o.reason}" for o in report.failures],
        exit_code=report.exit_code,
    )


@reconciler_service.handler("Reconcile")
async def reconcile_handler(ctx: restate.Context, req: ReconcileRequest) -> ReconcileResult:
    try:
        settings = SyncSettings.from_env(root=req.root)
        report = await asyncio.to_thread(run_sync, settings, req.dry_run)
    except FatalSyncError as e:
        logger.error("Reconcile of '{}' aborted: {}", req.root, e)
        raise restate.TerminalError(str(e)) from e
    return to_result(report)


app = restate.app([reconciler_service])


if __name__ == "__main__":
    configure_logging(os.environ.get("DOCSYNC_LOG_LEVEL"), log_file=os.environ.get("DOCSYNC_LOG_FILE"))
    host = os.environ.get("DOCSYNC_HOST", "0.0.0.0")
    port = os.environ.get("DOCSYNC_PORT", "9092")

    config = Config()
    config.bind = [f"{host}:{port}"]

    asyncio.run(serve(app, config))
