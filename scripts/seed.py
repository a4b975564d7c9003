"""
Storefront API - Database Seeder
==================================
Seeds accounts, addresses and a small fashion catalog for local testing.

Usage:
    python scripts/seed.py          # Seed (skips rows that already exist)
    python scripts/seed.py --reset  # Drop all tables, recreate and reseed

Modules seeded:
  1. Owner + admin accounts
  2. Customer accounts with a default shipping address
  3. Brands
  4. Categories (with one level of sub-categories)
  5. Products with size variants and images

Every seeded account uses the password "password".
"""

import sys
import os
from decimal import Decimal

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config.settings import DATABASE_URL
from config.database import Database
from common.helpers import slugify
from common.security import hash_password
from modules.user.models import User, UserRole
from modules.customer.address_models import Address, AddressType
from modules.catalog.models import Category, Brand, Product, ProductVariant, ProductImage, Gender
from modules.cart.models import Cart, CartItem  # noqa
from modules.order.models import Order, OrderLineItem, OrderTransaction  # noqa
from modules.wishlist.models import WishlistItem  # noqa

SEED_PASSWORD = "password"

STAFF = [
    {"email": "owner@ecommerce.com", "first_name": "Owner", "last_name": "System", "role": UserRole.OWNER},
    {"email": "admin1@ecommerce.com", "first_name": "Admin", "last_name": "One", "role": UserRole.ADMIN},
    {"email": "admin2@ecommerce.com", "first_name": "Admin", "last_name": "Two", "role": UserRole.ADMIN},
]

CUSTOMERS = [
    {"email": "user1@example.com", "first_name": "João", "last_name": "Silva"},
    {"email": "user2@example.com", "first_name": "Maria", "last_name": "Santos"},
    {"email": "user3@example.com", "first_name": "Pedro", "last_name": "Oliveira"},
]

BRANDS = ["Nike", "Adidas", "Zara", "Levi's"]

CATEGORIES = {
    "Clothing": ["T-Shirts", "Jeans", "Jackets"],
    "Footwear": ["Sneakers", "Boots"],
}

# (name, brand, category, gender, price, sizes, stock per size)
PRODUCTS = [
    ("Classic Cotton Tee", "Zara", "T-Shirts", Gender.UNISEX, "19.90", ["S", "M", "L", "XL"], 25),
    ("Slim Fit 511 Jeans", "Levi's", "Jeans", Gender.MALE, "89.95", ["30", "32", "34", "36"], 10),
    ("Windrunner Jacket", "Nike", "Jackets", Gender.UNISEX, "109.99", ["S", "M", "L"], 8),
    ("Air Max 90", "Nike", "Sneakers", Gender.UNISEX, "149.99", ["39", "40", "41", "42", "43"], 5),
    ("Stan Smith", "Adidas", "Sneakers", Gender.UNISEX, "99.95", ["38", "39", "40", "41", "42"], 12),
    ("Leather Ankle Boots", "Zara", "Boots", Gender.FEMALE, "69.95", ["36", "37", "38", "39"], 6),
]


def seed_users(db):
    print("\n[1/5] Staff accounts")
    password_hash = hash_password(SEED_PASSWORD)
    for data in STAFF:
        existing = db.query(User).filter(User.email == data["email"]).first()
        if existing:
            print(f"  = exists: {data['email']}")
            continue
        db.add(User(
            email=data["email"],
            password_hash=password_hash,
            first_name=data["first_name"],
            last_name=data["last_name"],
            role=data["role"].value,
        ))
        print(f"  + {data['role'].value}: {data['email']}")

    print("\n[2/5] Customers")
    for data in CUSTOMERS:
        existing = db.query(User).filter(User.email == data["email"]).first()
        if existing:
            print(f"  = exists: {data['email']}")
            continue
        user = User(password_hash=password_hash, role=UserRole.USER.value, **data)
        db.add(user)
        db.flush()
        db.add(Address(
            user_id=user.id,
            type=AddressType.SHIPPING.value,
            address_line_1=f"Rua {user.first_name}, {user.id * 7}",
            city="Lisboa",
            state="Lisboa",
            postal_code="1000-001",
            country="Portugal",
            is_default=True,
        ))
        print(f"  + {user.first_name} {user.last_name}: {user.email}")
    db.flush()


def seed_catalog(db):
    print("\n[3/5] Brands")
    brands = {}
    for name in BRANDS:
        slug = slugify(name)
        brand = db.query(Brand).filter(Brand.slug == slug).first()
        if not brand:
            brand = Brand(name=name, slug=slug)
            db.add(brand)
            print(f"  + {name}")
        brands[name] = brand

    print("\n[4/5] Categories")
    categories = {}
    for order, (parent_name, children) in enumerate(CATEGORIES.items()):
        parent = db.query(Category).filter(Category.slug == slugify(parent_name)).first()
        if not parent:
            parent = Category(name=parent_name, slug=slugify(parent_name), sort_order=order)
            db.add(parent)
            db.flush()
            print(f"  + {parent_name}")
        for child_order, child_name in enumerate(children):
            child = db.query(Category).filter(Category.slug == slugify(child_name)).first()
            if not child:
                child = Category(
                    name=child_name, slug=slugify(child_name),
                    parent_id=parent.id, sort_order=child_order,
                )
                db.add(child)
                print(f"    + {child_name}")
            categories[child_name] = child
    db.flush()

    print("\n[5/5] Products")
    for name, brand_name, category_name, gender, price, sizes, stock in PRODUCTS:
        slug = slugify(name)
        if db.query(Product.id).filter(Product.slug == slug).first():
            print(f"  = exists: {name}")
            continue
        product = Product(
            name=name,
            slug=slug,
            description=f"{name} by {brand_name}.",
            price=Decimal(price),
            gender=gender.value,
            brand_id=brands[brand_name].id,
            category_id=categories[category_name].id,
            is_featured=stock <= 6,
            is_new=True,
        )
        db.add(product)
        db.flush()
        for size in sizes:
            db.add(ProductVariant(
                product_id=product.id,
                sku=f"{slug.upper()}-{size}",
                title=f"{name} - {size}",
                size=size,
                stock=stock,
                price=Decimal(price),
            ))
        db.add(ProductImage(
            product_id=product.id,
            image_url=f"https://picsum.photos/seed/{slug}/800/800",
            alt_text=name,
            sort_order=0,
            is_primary=True,
        ))
        print(f"  + {name} ({len(sizes)} sizes x {stock})")
    db.flush()


def seed(database: Database):
    db = database.session()
    try:
        print("=" * 50)
        print("  Storefront API - Seeder")
        print("=" * 50)

        database.create_all()
        seed_users(db)
        seed_catalog(db)
        db.commit()
        print("\nSeed complete.")
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    database = Database(DATABASE_URL)
    try:
        if "--reset" in sys.argv:
            print("Dropping all tables...")
            database.drop_all()
        seed(database)
    finally:
        database.dispose()
