from fastapi import APIRouter, Request

from trip_planner.db.migrate import get_schema_version

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health", summary="Liveness and schema version")
async def health(request: Request):
    settings = request.app.state.settings
    return {"status": "ok", "schema_version": get_schema_version(settings.db_path)}
