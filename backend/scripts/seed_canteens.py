#!/usr/bin/env python3
"""
Seed canteens and their menus from a JSON file, or a small built-in demo set.

The JSON is a list of canteens, each with a "menu" list:
    [{"name": "...", "location": "...", "staff_user_id": "...", "approved": true,
      "menu": [{"name": "...", "price": 120, "category": "..."}]}]

Usage:
    python scripts/seed_canteens.py --file canteens.json
"""
import argparse
import json
import os
import sys
from decimal import Decimal

# allow running from repo/scripts
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from app.db import SessionLocal, init_db
from app.logger import logger
from app.repositories.canteen_repo import CanteenRepository
from app.repositories.menu_repo import MenuRepository

DEMO_CANTEENS = [
    {
        "name": "Main Block Canteen",
        "location": "Main Block, Ground Floor",
        "opening_hours": "8:00 AM - 8:00 PM",
        "staff_user_id": "staff-main",
        "approved": True,
        "menu": [
            {"name": "Veg Thali", "price": 120, "category": "Meals", "is_vegetarian": True},
            {"name": "Chicken Biryani", "price": 180, "category": "Meals"},
            {"name": "Masala Chai", "price": 20, "category": "Beverages", "is_vegetarian": True},
        ],
    },
    {
        "name": "Library Cafe",
        "location": "Central Library, 1st Floor",
        "opening_hours": "9:00 AM - 6:00 PM",
        "staff_user_id": "staff-library",
        "approved": True,
        "menu": [
            {"name": "Cold Coffee", "price": 60, "category": "Beverages", "is_vegetarian": True},
            {"name": "Paneer Sandwich", "price": 80, "category": "Snacks", "is_vegetarian": True},
        ],
    },
]

CANTEEN_KEYS = ("name", "location", "description", "opening_hours", "image_url")
MENU_KEYS = ("name", "description", "category", "is_vegetarian", "is_available", "preparation_time", "image_url")


def seed(entries):
    db = SessionLocal()
    canteens = CanteenRepository(db)
    menu = MenuRepository(db)
    created = 0
    try:
        for entry in entries:
            staff = entry.get("staff_user_id")
            if not staff or not entry.get("name"):
                logger.warning("skipping canteen entry without name/staff_user_id: {}", entry)
                continue
            if canteens.get_by_staff(staff):
                continue
            c = canteens.create(staff, **{k: entry[k] for k in CANTEEN_KEYS if k in entry})
            c.is_approved = bool(entry.get("approved", False))
            for item in entry.get("menu", []):
                menu.add(
                    c.id,
                    price=Decimal(str(item["price"])),
                    **{k: item[k] for k in MENU_KEYS if k in item},
                )
            created += 1
        db.commit()
        logger.info("Seeded canteens: {}", created)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("--file", "-f", help="Path to a canteen JSON list (default: built-in demo data)")
    args = parser.parse_args()
    init_db()
    if args.file:
        if not os.path.exists(args.file):
            print("File not found:", args.file)
            sys.exit(1)
        with open(args.file, "r", encoding="utf-8") as f:
            seed(json.load(f))
    else:
        seed(DEMO_CANTEENS)
