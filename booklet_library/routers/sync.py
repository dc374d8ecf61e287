"""
Sync API endpoints
Run a full pull → dedupe → push sweep on demand and report sync status.
"""

from typing import Optional

from fastapi import APIRouter, Depends

from booklet_library.sync.orchestrator import SyncOrchestrator, SyncReport
from booklet_library.sync.outbox import SyncOutbox
from booklet_library.routers.deps import get_orchestrator, get_outbox

router = APIRouter(prefix="/sync", tags=["sync"])


@router.post("", response_model=SyncReport)
async def run_sync(orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """
    Sweep every collection now.
    success is true when at least one pull/push step reached the remote.
    """
    return await orchestrator.sync_all()


@router.get("/status")
def sync_status(
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
    outbox: Optional[SyncOutbox] = Depends(get_outbox),
):
    last: Optional[SyncReport] = orchestrator.last_report
    return {
        "remote_configured": orchestrator.engine.client.configured,
        "timer_running": orchestrator.running,
        "interval_seconds": orchestrator.interval,
        "outbox_pending": outbox.pending_count() if outbox else 0,
        "last_report": last.model_dump() if last else None,
    }
