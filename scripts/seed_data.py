from __future__ import annotations

import argparse

from services.storefront.app.db.database import db_session
from services.storefront.app.db.init_db import init_db
from services.storefront.app.db.models import Company, Product, User


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed a couple of companies and products")
    parser.add_argument("--buyer-id", default="u-1")
    parser.add_argument("--admin-id", default="admin-1")
    parser.add_argument("--stock", type=int, default=25)
    args = parser.parse_args()

    init_db()

    db = db_session()
    try:
        for company_id, name in (("co-a", "Acme Outfitters"), ("co-b", "Borealis Home")):
            if db.get(Company, company_id) is None:
                db.add(Company(id=company_id, name=name))
            owner_id = f"{company_id}-owner"
            if db.get(User, owner_id) is None:
                db.add(
                    User(
                        id=owner_id,
                        display_name=f"{name} owner",
                        user_type="company",
                        company_id=company_id,
                    )
                )

        for uid, name, user_type in (
            (args.buyer_id, "Buyer 1", "user"),
            (args.admin_id, "Admin", "admin"),
        ):
            if db.get(User, uid) is None:
                db.add(User(id=uid, display_name=name, user_type=user_type))

        for product_id, company_id, name, price, image in (
            ("p-jacket", "co-a", "Rain jacket", 50.0, "img/jacket-1.jpg"),
            ("p-boots", "co-a", "Hiking boots", 89.5, "img/boots-1.jpg"),
            ("p-lamp", "co-b", "Desk lamp", 30.0, "img/lamp-1.jpg"),
        ):
            if db.get(Product, product_id) is None:
                db.add(
                    Product(
                        id=product_id,
                        company_id=company_id,
                        name=name,
                        price=price,
                        stock=args.stock,
                        images_json=[image],
                    )
                )

        db.commit()
        print("Seeded companies=co-a,co-b products=3")
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    raise SystemExit(main())
