"""
Cart drafts: items a customer has picked but not yet ordered.

A draft lives in memory only. It is held by the CartStore under the token the
client keeps in its ``cart_uuid`` cookie and is bound to the identity that
uses it. Only signed-in identities keep a draft; it is cleared when their
session ends or after a stretch of inactivity.
"""
import threading
import uuid
from collections import OrderedDict
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.errors import CanteenAppError, NotFound
from app.identity import Actor, require_actor
from app.logger import logger
from app.repositories.menu_repo import MenuRepository
from app.utils.clock import utcnow


@dataclass(frozen=True)
class CartDraftItem:
    item_id: int
    name: str
    unit_price: Decimal
    canteen_id: int
    canteen_name: str
    quantity: int = 1
    image_url: Optional[str] = None

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity


class CartDraft:
    def __init__(self, token: str, owner_id: Optional[str] = None):
        self.token = token
        self.owner_id = owner_id
        self.touched_at = utcnow()
        # reentrant: update_quantity and bind go through remove_item / clear
        self._lock = threading.RLock()
        self._items: "OrderedDict[int, CartDraftItem]" = OrderedDict()

    @property
    def items(self) -> List[CartDraftItem]:
        with self._lock:
            return list(self._items.values())

    @property
    def is_empty(self) -> bool:
        with self._lock:
            return not self._items

    @property
    def total_items(self) -> int:
        return sum(it.quantity for it in self.items)

    @property
    def total_amount(self) -> Decimal:
        return sum((it.subtotal for it in self.items), Decimal("0"))

    def get(self, item_id: int) -> Optional[CartDraftItem]:
        with self._lock:
            return self._items.get(item_id)

    def add_item(self, item: CartDraftItem) -> str:
        """Add one unit of ``item``; returns the confirmation shown to the user."""
        with self._lock:
            existing = self._items.get(item.item_id)
            if existing:
                self._items[item.item_id] = replace(existing, quantity=existing.quantity + 1)
            else:
                self._items[item.item_id] = replace(item, quantity=1)
        return f"{item.name} added to cart"

    def update_quantity(self, item_id: int, quantity: int):
        with self._lock:
            if quantity <= 0:
                self.remove_item(item_id)
                return
            existing = self._items.get(item_id)
            if existing:
                self._items[item_id] = replace(existing, quantity=quantity)

    def remove_item(self, item_id: int):
        with self._lock:
            self._items.pop(item_id, None)

    def clear(self):
        with self._lock:
            self._items.clear()

    def groups_by_canteen(self) -> "OrderedDict[int, List[CartDraftItem]]":
        groups: "OrderedDict[int, List[CartDraftItem]]" = OrderedDict()
        for it in self.items:
            groups.setdefault(it.canteen_id, []).append(it)
        return groups

    def bind(self, user_id: str):
        """Attach the draft to a signed-in identity, dropping another identity's items."""
        with self._lock:
            if self.owner_id is not None and self.owner_id != user_id:
                logger.info("cart {} changed hands; clearing draft", self.token)
                self.clear()
            self.owner_id = user_id


class CartStore:
    """
    Process-local registry of drafts keyed by cart token.

    Only signed-in identities get a stored draft. Drafts idle longer than
    ``idle_after`` are forgotten, and past ``max_drafts`` the least recently
    used one goes first.
    """

    def __init__(self, max_drafts: Optional[int] = None, idle_after: Optional[timedelta] = None):
        self.max_drafts = settings.CART_MAX_DRAFTS if max_drafts is None else max_drafts
        self.idle_after = (
            timedelta(minutes=settings.CART_IDLE_MINUTES) if idle_after is None else idle_after
        )
        self._lock = threading.Lock()
        self._drafts: "OrderedDict[str, CartDraft]" = OrderedDict()

    def __len__(self) -> int:
        with self._lock:
            return len(self._drafts)

    def _evict_locked(self, now: datetime):
        cutoff = now - self.idle_after
        # least recently used first, so stop at the first fresh draft
        while self._drafts:
            token, draft = next(iter(self._drafts.items()))
            if draft.touched_at >= cutoff:
                break
            self._drafts.popitem(last=False)
            draft.clear()
            logger.debug("cart {} expired after inactivity", token)
        while len(self._drafts) > self.max_drafts:
            token, draft = self._drafts.popitem(last=False)
            draft.clear()
            logger.info("cart store full; dropped cart {}", token)

    def _touch_locked(self, draft: CartDraft, now: datetime):
        draft.touched_at = now
        self._drafts.move_to_end(draft.token)

    def find(self, token: Optional[str], actor: Actor) -> Optional[CartDraft]:
        """The stored draft for ``token`` as seen by ``actor``, without creating one."""
        now = utcnow()
        with self._lock:
            self._evict_locked(now)
            draft = self._drafts.get(token) if token else None
            if draft is None:
                return None
            self._touch_locked(draft, now)
        draft.bind(actor.id)
        return draft

    def get_or_create(self, token: Optional[str], actor: Actor) -> CartDraft:
        now = utcnow()
        with self._lock:
            self._evict_locked(now)
            draft = self._drafts.get(token) if token else None
            if draft is None:
                draft = CartDraft(token or uuid.uuid4().hex)
                self._drafts[draft.token] = draft
            self._touch_locked(draft, now)
            self._evict_locked(now)
        draft.bind(actor.id)
        return draft

    def on_session_end(self, user_id: str) -> int:
        """Clear and forget every draft bound to ``user_id``; returns how many."""
        with self._lock:
            tokens = [t for t, d in self._drafts.items() if d.owner_id == user_id]
            for t in tokens:
                self._drafts.pop(t).clear()
        if tokens:
            logger.info("session ended for {}; cleared {} cart(s)", user_id, len(tokens))
        return len(tokens)

    def reset(self):
        with self._lock:
            self._drafts.clear()


cart_store = CartStore()


class CartService:
    def __init__(self, db: Session, store: CartStore = None):
        self.db = db
        self.store = store if store is not None else cart_store
        self.menu_repo = MenuRepository(db)

    def peek_cart(self, token: Optional[str], actor: Optional[Actor]) -> CartDraft:
        """
        The caller's draft for reading. Nothing is stored: anonymous callers and
        unknown tokens get an empty, unsaved draft.
        """
        draft = self.store.find(token, actor) if actor else None
        return draft or CartDraft(token or uuid.uuid4().hex, actor.id if actor else None)

    def get_cart(self, token: Optional[str], actor: Optional[Actor]) -> CartDraft:
        """The caller's draft for changing; carts belong to signed-in identities only."""
        actor = require_actor(actor)
        return self.store.get_or_create(token, actor)

    def add_menu_item(self, draft: CartDraft, menu_item_id: int) -> str:
        item = self.menu_repo.get(menu_item_id)
        if not item or not item.canteen.is_approved:
            raise NotFound("Menu item not found")
        if not item.is_available:
            raise CanteenAppError(f"{item.name} is currently unavailable")
        message = draft.add_item(
            CartDraftItem(
                item_id=item.id,
                name=item.name,
                unit_price=Decimal(item.price),
                canteen_id=item.canteen_id,
                canteen_name=item.canteen.name,
                image_url=item.image_url,
            )
        )
        logger.debug("cart {}: {}", draft.token, message)
        return message

    def end_session(self, actor: Actor) -> int:
        return self.store.on_session_end(actor.id)
