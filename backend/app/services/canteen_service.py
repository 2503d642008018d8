from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from app.errors import CanteenAppError, Conflict, Forbidden, NotFound
from app.identity import Actor, require_actor
from app.logger import logger
from app.models.canteen import Canteen
from app.models.menu_item import MenuItem
from app.repositories.canteen_repo import CanteenRepository
from app.repositories.menu_repo import MenuRepository
from app.utils.transactions import smart_transaction

MENU_FIELDS = (
    "name",
    "description",
    "price",
    "category",
    "is_vegetarian",
    "is_available",
    "preparation_time",
    "image_url",
)


class CanteenService:
    def __init__(self, db: Session):
        self.db = db
        self.canteens = CanteenRepository(db)
        self.menu = MenuRepository(db)

    # canteens

    def register_canteen(self, actor: Optional[Actor], **fields) -> Canteen:
        actor = require_actor(actor)
        if not actor.is_staff:
            raise Forbidden("Only canteen staff can register a canteen")
        if not fields.get("name") or not fields.get("location"):
            raise CanteenAppError("Please fill in all required fields")
        if self.canteens.get_by_staff(actor.id):
            raise Conflict("You have already registered a canteen")
        with smart_transaction(self.db):
            canteen = self.canteens.create(actor.id, **fields)
        logger.info("canteen {} registered by {}; awaiting approval", canteen.id, actor.id)
        return canteen

    def approve_canteen(self, actor: Optional[Actor], canteen_id: int) -> Canteen:
        actor = require_actor(actor)
        if not actor.is_admin:
            raise Forbidden("Only admins can approve canteens")
        canteen = self.canteens.get(canteen_id)
        if not canteen:
            raise NotFound(f"Canteen {canteen_id} not found")
        if not canteen.is_approved:
            with smart_transaction(self.db):
                canteen.is_approved = True
            logger.info("canteen {} approved by {}", canteen_id, actor.id)
        return canteen

    def list_canteens(self, actor: Optional[Actor]) -> List[Canteen]:
        return self.canteens.list(approved_only=not (actor and actor.is_admin))

    def list_pending(self, actor: Optional[Actor]) -> List[Canteen]:
        actor = require_actor(actor)
        if not actor.is_admin:
            raise Forbidden("Only admins can review canteen registrations")
        return self.canteens.list_pending()

    def get_my_canteen(self, actor: Optional[Actor]) -> Canteen:
        actor = require_actor(actor)
        canteen = self.canteens.get_by_staff(actor.id)
        if not canteen:
            raise NotFound("You have not registered a canteen yet")
        return canteen

    # menu

    def _owned_canteen(self, actor: Actor, canteen_id: int) -> Canteen:
        canteen = self.canteens.get(canteen_id)
        if not canteen:
            raise NotFound(f"Canteen {canteen_id} not found")
        if not actor.is_admin and canteen.staff_user_id != actor.id:
            raise Forbidden("You can only manage your own canteen's menu")
        return canteen

    def _owned_item(self, actor: Actor, item_id: int) -> MenuItem:
        item = self.menu.get(item_id)
        if not item:
            raise NotFound(f"Menu item {item_id} not found")
        self._owned_canteen(actor, item.canteen_id)
        return item

    def list_menu(
        self, actor: Optional[Actor], canteen_id: int, include_unavailable: bool = False
    ) -> List[MenuItem]:
        canteen = self.canteens.get(canteen_id)
        manager = actor is not None and (
            actor.is_admin or (canteen is not None and canteen.staff_user_id == actor.id)
        )
        if not canteen or not (canteen.is_approved or manager):
            raise NotFound(f"Canteen {canteen_id} not found")
        return self.menu.list_for_canteen(canteen_id, include_unavailable and manager)

    def add_menu_item(self, actor: Optional[Actor], canteen_id: int, **fields) -> MenuItem:
        actor = require_actor(actor)
        self._owned_canteen(actor, canteen_id)
        if not fields.get("name") or fields.get("price") is None:
            raise CanteenAppError("Please fill in all required fields")
        if Decimal(fields["price"]) <= 0:
            raise CanteenAppError("Price must be positive")
        data = {k: v for k, v in fields.items() if k in MENU_FIELDS and v is not None}
        with smart_transaction(self.db):
            item = self.menu.add(canteen_id, **data)
        return item

    def update_menu_item(self, actor: Optional[Actor], item_id: int, **fields) -> MenuItem:
        actor = require_actor(actor)
        item = self._owned_item(actor, item_id)
        if fields.get("price") is not None and Decimal(fields["price"]) <= 0:
            raise CanteenAppError("Price must be positive")
        data = {k: v for k, v in fields.items() if k in MENU_FIELDS and v is not None}
        with smart_transaction(self.db):
            self.menu.update(item, **data)
        return item

    def toggle_availability(self, actor: Optional[Actor], item_id: int) -> MenuItem:
        actor = require_actor(actor)
        item = self._owned_item(actor, item_id)
        with smart_transaction(self.db):
            self.menu.update(item, is_available=not item.is_available)
        return item

    def delete_menu_item(self, actor: Optional[Actor], item_id: int):
        actor = require_actor(actor)
        item = self._owned_item(actor, item_id)
        if self.menu.is_referenced_by_orders(item_id):
            raise Conflict("Item appears in past orders; mark it unavailable instead")
        with smart_transaction(self.db):
            self.menu.delete(item)
