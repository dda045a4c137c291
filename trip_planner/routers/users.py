from fastapi import APIRouter, Depends

from trip_planner.core.errors import NotFoundError
from trip_planner.core.security import CurrentUser, get_current_user, get_db
from trip_planner.db.dal import Database
from trip_planner.models.user import UserOut

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("/me", response_model=UserOut, summary="Current user profile")
async def me(
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    row = db.get_user(user.id)
    if not row:
        raise NotFoundError("User not found")
    return UserOut(**row)
