from app.models.order import Order
from app.schemas.order_schema import OrderOut
from app.services.cart_service import CartDraft
from app.services.order_status import allowed_next


def order_out(order: Order) -> dict:
    out = OrderOut.model_validate(order)
    out.allowed_next = allowed_next(order.status)
    return out.model_dump(mode="json")


def cart_out(draft: CartDraft) -> dict:
    return {
        "cart_uuid": draft.token,
        "items": [
            {
                "id": it.item_id,
                "name": it.name,
                "price": str(it.unit_price),
                "quantity": it.quantity,
                "canteen_id": it.canteen_id,
                "canteen_name": it.canteen_name,
                "image_url": it.image_url,
                "subtotal": str(it.subtotal),
            }
            for it in draft.items
        ],
        "total_items": draft.total_items,
        "total_amount": str(draft.total_amount),
    }
