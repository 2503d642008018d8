from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class CanteenIn(BaseModel):
    name: str
    location: str
    description: Optional[str] = None
    opening_hours: Optional[str] = None
    image_url: Optional[str] = None


class CanteenOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    name: str
    description: Optional[str] = None
    location: str
    opening_hours: Optional[str] = None
    image_url: Optional[str] = None
    is_approved: bool
    staff_user_id: str
    created_at: datetime


class MenuItemIn(BaseModel):
    name: str
    price: Decimal = Field(..., gt=0)
    description: Optional[str] = None
    category: Optional[str] = None
    is_vegetarian: bool = False
    is_available: bool = True
    preparation_time: int = Field(15, ge=0)
    image_url: Optional[str] = None


class MenuItemPatch(BaseModel):
    name: Optional[str] = None
    price: Optional[Decimal] = Field(None, gt=0)
    description: Optional[str] = None
    category: Optional[str] = None
    is_vegetarian: Optional[bool] = None
    is_available: Optional[bool] = None
    preparation_time: Optional[int] = Field(None, ge=0)
    image_url: Optional[str] = None


class MenuItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    canteen_id: int
    name: str
    description: Optional[str] = None
    price: Decimal
    category: Optional[str] = None
    is_vegetarian: bool
    is_available: bool
    preparation_time: int
    image_url: Optional[str] = None
