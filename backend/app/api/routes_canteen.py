from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import get_actor
from app.db import get_db
from app.identity import Actor
from app.schemas.canteen_schema import (
    CanteenIn,
    CanteenOut,
    MenuItemIn,
    MenuItemOut,
    MenuItemPatch,
)
from app.services.canteen_service import CanteenService

router = APIRouter(prefix="/api", tags=["canteens"])


@router.get("/canteens", response_model=List[CanteenOut], summary="List canteens")
def list_canteens(db: Session = Depends(get_db), actor: Optional[Actor] = Depends(get_actor)):
    return CanteenService(db).list_canteens(actor)


@router.post("/canteens", response_model=CanteenOut, status_code=201, summary="Register a canteen")
def register_canteen(
    payload: CanteenIn,
    db: Session = Depends(get_db),
    actor: Optional[Actor] = Depends(get_actor),
):
    return CanteenService(db).register_canteen(actor, **payload.model_dump())


@router.get("/canteens/mine", response_model=CanteenOut, summary="Canteen owned by the caller")
def my_canteen(db: Session = Depends(get_db), actor: Optional[Actor] = Depends(get_actor)):
    return CanteenService(db).get_my_canteen(actor)


@router.post("/canteens/{canteen_id}/approve", response_model=CanteenOut, summary="Approve a canteen")
def approve_canteen(
    canteen_id: int,
    db: Session = Depends(get_db),
    actor: Optional[Actor] = Depends(get_actor),
):
    return CanteenService(db).approve_canteen(actor, canteen_id)


@router.get("/canteens/{canteen_id}/menu", response_model=List[MenuItemOut], summary="Menu")
def list_menu(
    canteen_id: int,
    include_unavailable: bool = False,
    db: Session = Depends(get_db),
    actor: Optional[Actor] = Depends(get_actor),
):
    return CanteenService(db).list_menu(actor, canteen_id, include_unavailable)


@router.post(
    "/canteens/{canteen_id}/menu",
    response_model=MenuItemOut,
    status_code=201,
    summary="Add menu item",
)
def add_menu_item(
    canteen_id: int,
    payload: MenuItemIn,
    db: Session = Depends(get_db),
    actor: Optional[Actor] = Depends(get_actor),
):
    return CanteenService(db).add_menu_item(actor, canteen_id, **payload.model_dump())


@router.patch("/menu-items/{item_id}", response_model=MenuItemOut, summary="Edit menu item")
def update_menu_item(
    item_id: int,
    payload: MenuItemPatch,
    db: Session = Depends(get_db),
    actor: Optional[Actor] = Depends(get_actor),
):
    return CanteenService(db).update_menu_item(
        actor, item_id, **payload.model_dump(exclude_unset=True)
    )


@router.post("/menu-items/{item_id}/toggle", response_model=MenuItemOut, summary="Toggle availability")
def toggle_menu_item(
    item_id: int,
    db: Session = Depends(get_db),
    actor: Optional[Actor] = Depends(get_actor),
):
    return CanteenService(db).toggle_availability(actor, item_id)


@router.delete("/menu-items/{item_id}", summary="Delete menu item")
def delete_menu_item(
    item_id: int,
    db: Session = Depends(get_db),
    actor: Optional[Actor] = Depends(get_actor),
):
    CanteenService(db).delete_menu_item(actor, item_id)
    return {"ok": True}
