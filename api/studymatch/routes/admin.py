from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.encoders import jsonable_encoder

from ..deps import require_admin_token
from ..schemas import CycleRunResponse, StatsRecomputeResponse

router = APIRouter()
scaffold_router = APIRouter()


def _json(data: Any) -> Any:
    return jsonable_encoder(data)


@scaffold_router.get("/health")
def admin_scaffold_health() -> dict[str, str]:
    return {"status": "ok", "module": "admin"}


@router.post("/admin/matching/run-cycle", response_model=CycleRunResponse)
def run_matching_cycle(_: None = Depends(require_admin_token)) -> dict[str, Any]:
    from .. import main as m

    result = m.build_cycle_orchestrator().run(datetime.now(timezone.utc))
    return _json(result.to_dict())


@router.post("/admin/stats/recompute", response_model=StatsRecomputeResponse)
def recompute_stats(user_id: str | None = None, _: None = Depends(require_admin_token)) -> dict[str, Any]:
    from .. import main as m

    tracker = m.build_stats_tracker()
    if user_id:
        return _json(tracker.recompute_many([user_id]))
    return _json(tracker.recompute_all())
