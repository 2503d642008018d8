from typing import List, Optional

from fastapi import APIRouter, Depends, Header
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.api.deps import get_actor
from app.config import settings
from app.db import get_db
from app.errors import Forbidden
from app.identity import Actor
from app.schemas.canteen_schema import CanteenOut
from app.services.auto_advancer import run_sweep
from app.services.canteen_service import CanteenService

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.post("/auto-advance", summary="Run the order auto-advance sweep now")
def auto_advance(
    db: Session = Depends(get_db),
    x_scheduler_token: Optional[str] = Header(None),
):
    if settings.AUTO_ADVANCE_TOKEN and x_scheduler_token != settings.AUTO_ADVANCE_TOKEN:
        raise Forbidden("Invalid scheduler token")
    report = run_sweep(db)
    if report.skipped:
        status = 409
    else:
        status = 200 if report.ok else 500
    return JSONResponse(status_code=status, content=report.as_dict())


@router.get("/canteens/pending", response_model=List[CanteenOut], summary="Canteens awaiting approval")
def pending_canteens(db: Session = Depends(get_db), actor: Optional[Actor] = Depends(get_actor)):
    return CanteenService(db).list_pending(actor)
