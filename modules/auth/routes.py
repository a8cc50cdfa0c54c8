"""
Auth Routes
============
Session introspection. Sign-up / sign-in live at the identity provider.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from config.database import get_db
from modules.auth.deps import require_login
from modules.canteen.service import canteen_service
from modules.user.models import SessionContext

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.get("/me")
async def me(
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_login),
):
    data = {
        "success": True,
        "id": ctx.user_id,
        "email": ctx.email,
        "name": ctx.name,
        "role": ctx.role.value,
    }
    if ctx.is_admin:
        canteen = canteen_service.get_admin_canteen(db, ctx)
        data["canteen_id"] = canteen.id if canteen else None
    return data
