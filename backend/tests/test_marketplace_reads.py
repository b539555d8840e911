from __future__ import annotations

import os
import time
import unittest
from datetime import datetime, timedelta

from yellowjersey import create_app
from yellowjersey.extensions import db
from yellowjersey.models import Product, Purchase, StoreCategory, StoreService, User
from yellowjersey.utils.jwt_utils import create_token


class MarketplaceReadsTestCase(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._prev_db_uri = os.getenv("SQLALCHEMY_DATABASE_URI")
        cls._prev_db_url = os.getenv("DATABASE_URL")
        db_uri = "sqlite:///:memory:"
        os.environ["SQLALCHEMY_DATABASE_URI"] = db_uri
        os.environ["DATABASE_URL"] = db_uri
        cls.app = create_app()
        cls.app.config.update(TESTING=True)
        with cls.app.app_context():
            db.create_all()
        cls.client = cls.app.test_client()

    @classmethod
    def tearDownClass(cls):
        if cls._prev_db_uri is None:
            os.environ.pop("SQLALCHEMY_DATABASE_URI", None)
        else:
            os.environ["SQLALCHEMY_DATABASE_URI"] = cls._prev_db_uri
        if cls._prev_db_url is None:
            os.environ.pop("DATABASE_URL", None)
        else:
            os.environ["DATABASE_URL"] = cls._prev_db_url

    def _seed_user(self, label: str, **kw) -> int:
        with self.app.app_context():
            row = User(name=label, email=f"{label}-{time.time_ns()}@yellowjersey.test", **kw)
            row.set_password("Passw0rd!")
            db.session.add(row)
            db.session.commit()
            return int(row.id)

    def _seed_product(self, seller_id: int, name: str, **kw) -> int:
        kw.setdefault("price", 900.0)
        with self.app.app_context():
            row = Product(user_id=seller_id, display_name=name, **kw)
            db.session.add(row)
            db.session.commit()
            return int(row.id)

    def test_product_listing_filters(self):
        seller = self._seed_user("lister")
        tag = str(time.time_ns())
        gravel = self._seed_product(seller, f"Canyon Grizl {tag}", marketplace_category="Bicycles", marketplace_subcategory="Gravel")
        self._seed_product(seller, f"Canyon Aeroad {tag}", marketplace_category="Bicycles", marketplace_subcategory="Road")
        self._seed_product(seller, f"Canyon Lux {tag}", marketplace_category="Bicycles", listing_status="sold")
        self._seed_product(seller, f"Canyon Spectral {tag}", marketplace_category="Bicycles", is_active=False)

        res = self.client.get(f"/api/marketplace/products?search={tag}")
        body = res.get_json(force=True) or {}
        self.assertEqual(body.get("total"), 2)
        self.assertFalse(body.get("hasMore"))

        res = self.client.get(f"/api/marketplace/products?search={tag}&subcategory=Gravel")
        self.assertEqual([p["id"] for p in (res.get_json(force=True) or {}).get("products") or []], [gravel])

        res = self.client.get(f"/api/marketplace/products?search={tag}&pageSize=1")
        paged = res.get_json(force=True) or {}
        self.assertEqual(len(paged.get("products") or []), 1)
        self.assertTrue(paged.get("hasMore"))

    def test_product_detail_includes_store(self):
        store_id = self._seed_user("store", account_type="bicycle_store", bicycle_store=True, business_name="Ashburton Cycles")
        product_id = self._seed_product(store_id, "Trek Fuel EX")
        body = self.client.get(f"/api/marketplace/products/{product_id}").get_json(force=True) or {}
        product = body.get("product") or {}
        self.assertEqual(product["seller"]["name"], "Ashburton Cycles")
        self.assertEqual(product["store"]["business_name"], "Ashburton Cycles")
        self.assertEqual(self.client.get("/api/marketplace/products/999999").status_code, 404)

    def test_store_page_groups_categories(self):
        store_id = self._seed_user("store", account_type="bicycle_store", bicycle_store=True, business_name="Fitzroy Bikes")
        road = self._seed_product(store_id, "BMC Teammachine")
        hidden = self._seed_product(store_id, "BMC Sold", listing_status="sold")
        with self.app.app_context():
            cat = StoreCategory(user_id=store_id, name="Road", source="custom", display_order=0)
            cat.product_ids = [road, hidden]
            db.session.add(cat)
            db.session.add(StoreService(user_id=store_id, name="Bike Fit", display_order=0))
            db.session.add(StoreService(user_id=store_id, name="Retired", display_order=1, is_active=False))
            db.session.commit()

        body = self.client.get(f"/api/marketplace/store/{store_id}").get_json(force=True) or {}
        self.assertEqual(body["store"]["business_name"], "Fitzroy Bikes")
        self.assertEqual([p["id"] for p in body["categories"][0]["products"]], [road])
        self.assertEqual([s["name"] for s in body["services"]], ["Bike Fit"])

        individual = self._seed_user("individual")
        self.assertEqual(self.client.get(f"/api/marketplace/store/{individual}").status_code, 404)

    def test_purchases_by_mode_and_status(self):
        buyer = self._seed_user("buyer")
        seller = self._seed_user("seller")
        statuses = [("paid", "held"), ("shipped", "held"), ("delivered", "auto_released"), ("paid", "disputed")]
        with self.app.app_context():
            for i, (status, funds) in enumerate(statuses):
                product = Product(user_id=seller, display_name=f"Item {i}", price=100.0 + i, listing_status="sold")
                db.session.add(product)
                db.session.flush()
                db.session.add(
                    Purchase(
                        order_number=f"ORD-20260101-{time.time_ns() % 10**8}{i}",
                        buyer_id=buyer,
                        seller_id=seller,
                        product_id=int(product.id),
                        item_price=100.0 + i,
                        total_amount=100.5 + i,
                        status=status,
                        payment_status="paid",
                        funds_status=funds,
                        purchase_date=datetime.utcnow() - timedelta(hours=i),
                    )
                )
            db.session.commit()

        self.assertEqual(self.client.get("/api/marketplace/purchases").status_code, 401)
        buyer_headers = {"Authorization": f"Bearer {create_token(buyer)}"}
        seller_headers = {"Authorization": f"Bearer {create_token(seller)}"}

        body = self.client.get("/api/marketplace/purchases", headers=buyer_headers).get_json(force=True) or {}
        self.assertEqual(body["counts"], {"all": 4, "active": 3, "completed": 1, "disputes": 1, "archived": 0})
        self.assertEqual(body["pagination"]["total"], 4)
        first = body["purchases"][0]
        self.assertEqual(first["product"]["display_name"], "Item 0")
        self.assertEqual(first["seller"]["id"], seller)

        active = self.client.get("/api/marketplace/purchases?status=active", headers=buyer_headers).get_json(force=True) or {}
        self.assertEqual(active["pagination"]["total"], 3)
        disputed = self.client.get("/api/marketplace/purchases?status=disputed", headers=buyer_headers).get_json(force=True) or {}
        self.assertEqual(disputed["pagination"]["total"], 1)

        selling = self.client.get(
            "/api/marketplace/purchases?mode=selling&pageSize=3", headers=seller_headers
        ).get_json(force=True) or {}
        self.assertEqual(selling["pagination"]["totalPages"], 2)
        self.assertEqual(selling["purchases"][0]["buyer"]["id"], buyer)
        self.assertNotIn("seller", selling["purchases"][0])

        bad = self.client.get("/api/marketplace/purchases?mode=renting", headers=buyer_headers)
        self.assertEqual(bad.status_code, 400)


if __name__ == "__main__":
    unittest.main()
