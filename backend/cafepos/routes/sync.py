# Overview: Replication status and manual trigger.

from flask import Blueprint

from ..storage import get_sync_queue
from ..decorators import json_errors

sync_bp = Blueprint("sync", __name__, url_prefix="/api/sync")


@sync_bp.get("/status")
@json_errors("load sync status")
def sync_status_route():
    queue = get_sync_queue()
    if queue is None:
        # Document primary: writes already land in the remote store
        return {"enabled": False}
    return {"enabled": True, **queue.status()}


@sync_bp.post("/run")
@json_errors("run sync pass")
def sync_run_route():
    queue = get_sync_queue()
    if queue is None:
        return {"enabled": False}
    result = queue.run_once()
    return {"enabled": True, "result": result.to_dict()}, 200 if result.ok else 503
