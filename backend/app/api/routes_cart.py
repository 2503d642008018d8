from typing import Optional

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.api.deps import get_actor, get_cart_token
from app.api.serializers import cart_out, order_out
from app.db import get_db
from app.identity import Actor, require_actor
from app.schemas.order_schema import CartItemIn, CartQuantityIn, CheckoutIn
from app.services.cart_service import CartDraft, CartService
from app.services.order_service import OrderService

router = APIRouter(tags=["cart"])


def _remember(response: Response, draft: CartDraft):
    response.set_cookie("cart_uuid", draft.token, httponly=False, samesite="Lax")


@router.get("/api/cart", summary="Get cart")
def get_cart(
    db: Session = Depends(get_db),
    actor: Optional[Actor] = Depends(get_actor),
    token: Optional[str] = Depends(get_cart_token),
):
    # reading never creates a draft; anonymous callers always see an empty cart
    return cart_out(CartService(db).peek_cart(token, actor))


@router.post("/api/cart/items", summary="Add one unit of a menu item")
def add_item(
    payload: CartItemIn,
    response: Response,
    db: Session = Depends(get_db),
    actor: Optional[Actor] = Depends(get_actor),
    token: Optional[str] = Depends(get_cart_token),
):
    svc = CartService(db)
    draft = svc.get_cart(token, actor)
    message = svc.add_menu_item(draft, payload.menu_item_id)
    _remember(response, draft)
    return {"message": message, "cart": cart_out(draft)}


@router.patch("/api/cart/items/{item_id}", summary="Set item quantity (0 removes)")
def update_quantity(
    item_id: int,
    payload: CartQuantityIn,
    response: Response,
    db: Session = Depends(get_db),
    actor: Optional[Actor] = Depends(get_actor),
    token: Optional[str] = Depends(get_cart_token),
):
    draft = CartService(db).get_cart(token, actor)
    draft.update_quantity(item_id, payload.quantity)
    _remember(response, draft)
    return cart_out(draft)


@router.delete("/api/cart/items/{item_id}", summary="Remove item")
def remove_item(
    item_id: int,
    response: Response,
    db: Session = Depends(get_db),
    actor: Optional[Actor] = Depends(get_actor),
    token: Optional[str] = Depends(get_cart_token),
):
    draft = CartService(db).get_cart(token, actor)
    draft.remove_item(item_id)
    _remember(response, draft)
    return cart_out(draft)


@router.delete("/api/cart", summary="Clear cart")
def clear_cart(
    response: Response,
    db: Session = Depends(get_db),
    actor: Optional[Actor] = Depends(get_actor),
    token: Optional[str] = Depends(get_cart_token),
):
    draft = CartService(db).get_cart(token, actor)
    draft.clear()
    _remember(response, draft)
    return cart_out(draft)


@router.post("/api/cart/checkout", summary="Place orders for everything in the cart")
def checkout(
    payload: Optional[CheckoutIn] = None,
    db: Session = Depends(get_db),
    actor: Optional[Actor] = Depends(get_actor),
    token: Optional[str] = Depends(get_cart_token),
):
    require_actor(actor)
    draft = CartService(db).get_cart(token, actor)
    result = OrderService(db).submit_cart(
        actor, draft, notes=payload.notes if payload else None
    )
    body = {
        "message": result.message,
        "orders": [order_out(o) for o in result.orders],
        "failed_canteens": [
            {"canteen_id": f.canteen_id, "canteen_name": f.canteen_name, "reason": f.reason}
            for f in result.failures
        ],
        "cart": cart_out(draft),
    }
    return JSONResponse(status_code=201 if result.complete else 207, content=body)


@router.post("/api/session/end", summary="Sign-out hook: drop the user's carts")
def end_session(
    db: Session = Depends(get_db),
    actor: Optional[Actor] = Depends(get_actor),
):
    actor = require_actor(actor)
    cleared = CartService(db).end_session(actor)
    return {"ok": True, "carts_cleared": cleared}
