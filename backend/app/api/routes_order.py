import json
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from app.api.deps import get_actor
from app.api.serializers import order_out
from app.config import settings
from app.db import SessionLocal, get_db
from app.identity import Actor, require_actor
from app.logger import logger
from app.schemas.order_schema import OrderStatsOut, StatusUpdateIn
from app.services.order_query import LiveOrderView, OrderQueryService
from app.services.order_status import OrderStatusService

router = APIRouter(tags=["orders"])


def _sse(event: str, data) -> str:
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"


async def _order_events(request: Request, actor: Actor, limit: Optional[int]):
    """
    Server-sent events carrying the caller's full order list: one snapshot on
    connect, then a fresh one after every change to the order tables.
    ``limit`` caps the number of snapshots sent before the stream ends.
    """
    db = SessionLocal()
    view = None
    try:
        view = await run_in_threadpool(LiveOrderView, db, actor)
        logger.debug("order stream opened for {} ({})", actor.id, actor.role.value)
        snapshot = await run_in_threadpool(lambda: [order_out(o) for o in view.orders])
        yield _sse("orders", snapshot)
        sent = 1
        while limit is None or sent < limit:
            if await request.is_disconnected():
                break
            changed = await run_in_threadpool(view.poll, settings.ORDER_STREAM_HEARTBEAT_SECONDS)
            if not changed:
                yield ": keep-alive\n\n"
                continue
            snapshot = await run_in_threadpool(lambda: [order_out(o) for o in view.orders])
            yield _sse("orders", snapshot)
            sent += 1
    finally:
        if view is not None:
            view.close()
        db.close()
        logger.debug("order stream closed for {}", actor.id)


@router.get("", summary="Orders visible to the caller, newest first")
def list_orders(db: Session = Depends(get_db), actor: Optional[Actor] = Depends(get_actor)):
    orders = OrderQueryService(db).list_orders(actor)
    return [order_out(o) for o in orders]


@router.get("/stats", response_model=OrderStatsOut, summary="Dashboard figures")
def order_stats(db: Session = Depends(get_db), actor: Optional[Actor] = Depends(get_actor)):
    stats = OrderQueryService(db).stats(actor)
    return OrderStatsOut(**stats.__dict__)


@router.get("/stream", summary="Live order list as server-sent events")
def stream_orders(
    request: Request,
    limit: Optional[int] = Query(None, ge=1),
    actor: Optional[Actor] = Depends(get_actor),
):
    actor = require_actor(actor)
    return StreamingResponse(
        _order_events(request, actor, limit),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.get("/{order_id}", summary="Single order")
def get_order(
    order_id: int, db: Session = Depends(get_db), actor: Optional[Actor] = Depends(get_actor)
):
    return order_out(OrderQueryService(db).get_order(actor, order_id))


@router.post("/{order_id}/status", summary="Move an order to its next status")
def update_status(
    order_id: int,
    payload: StatusUpdateIn,
    db: Session = Depends(get_db),
    actor: Optional[Actor] = Depends(get_actor),
):
    order = OrderStatusService(db).update_status(actor, order_id, payload.status)
    return {
        "message": f"Order status changed to {order.status.replace('_', ' ')}",
        "order": order_out(order),
    }


@router.post("/{order_id}/cancel", summary="Cancel an order")
def cancel_order(
    order_id: int, db: Session = Depends(get_db), actor: Optional[Actor] = Depends(get_actor)
):
    order = OrderStatusService(db).cancel_order(actor, order_id)
    return {"message": "Order cancelled", "order": order_out(order)}
