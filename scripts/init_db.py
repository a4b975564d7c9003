"""
Storefront API - Database Initialization
==========================================
Creates all tables if they don't exist.
Safe to run multiple times (CREATE IF NOT EXISTS).

Usage:
    python scripts/init_db.py
    python scripts/init_db.py --drop   # Drop and recreate all tables
"""

import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import inspect

from config.settings import DATABASE_URL
from config.database import Database

# Import ALL models so Base.metadata knows about them
from modules.user.models import User  # noqa
from modules.customer.address_models import Address  # noqa
from modules.catalog.models import Category, Brand, Product, ProductVariant, ProductImage  # noqa
from modules.cart.models import Cart, CartItem  # noqa
from modules.order.models import Order, OrderLineItem, OrderTransaction  # noqa
from modules.wishlist.models import WishlistItem  # noqa


def init_db(database: Database, drop_first=False):
    if drop_first:
        print("Dropping all tables...")
        database.drop_all()
        print("Done.")

    print("Creating all tables...")
    database.create_all()

    # List created tables
    tables = inspect(database.engine).get_table_names()
    print(f"\nTables in database ({len(tables)}):")
    for t in sorted(tables):
        print(f"  - {t}")
    print("\nDatabase initialized successfully!")


if __name__ == "__main__":
    drop = "--drop" in sys.argv
    if drop:
        confirm = input("This will DROP all tables. Type 'yes': ")
        if confirm.strip().lower() != "yes":
            print("Aborted.")
            sys.exit(0)
    database = Database(DATABASE_URL)
    try:
        init_db(database, drop_first=drop)
    finally:
        database.dispose()
