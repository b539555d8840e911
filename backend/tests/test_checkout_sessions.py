from __future__ import annotations

import os
import time
import unittest
from datetime import datetime, timedelta
from unittest import mock

from yellowjersey import create_app
from yellowjersey.extensions import db
from yellowjersey.integrations.payments.mock_provider import MockPaymentsProvider
from yellowjersey.models import Offer, Product, User
from yellowjersey.services.checkout_service import compute_fees, reference_number
from yellowjersey.utils.jwt_utils import create_token


class RecordingPaymentsProvider(MockPaymentsProvider):
    def __init__(self):
        self.requests = []

    def create_checkout_session(self, req):
        self.requests.append(req)
        return super().create_checkout_session(req)


class CheckoutFeesTestCase(unittest.TestCase):
    def test_fee_breakdown(self):
        fees = compute_fees(1000.0, 15.0)
        self.assertEqual(fees["buyer_fee"], 5.0)
        self.assertEqual(fees["platform_fee"], 30.0)
        self.assertEqual(fees["seller_payout"], 970.0)
        self.assertEqual(fees["total_amount"], 1020.0)

    def test_fee_rounding(self):
        fees = compute_fees(333.33)
        self.assertEqual(fees["buyer_fee"], 1.67)
        self.assertEqual(fees["platform_fee"], 10.0)
        self.assertEqual(fees["seller_payout"], 323.33)
        self.assertEqual(fees["total_amount"], 335.0)

    def test_reference_number_shape(self):
        ref = reference_number("ORD", datetime(2026, 3, 9))
        prefix, day, suffix = ref.split("-")
        self.assertEqual(prefix, "ORD")
        self.assertEqual(day, "20260309")
        self.assertEqual(len(suffix), 5)
        self.assertTrue(suffix.isalnum() and suffix.upper() == suffix)


class CheckoutEndpointsTestCase(unittest.TestCase):
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

    def _seed_user(self, label: str) -> tuple[int, dict]:
        with self.app.app_context():
            suffix = str(time.time_ns())
            row = User(name=label, email=f"{label}-{suffix}@yellowjersey.test")
            row.set_password("Passw0rd!")
            db.session.add(row)
            db.session.commit()
            return int(row.id), {"Authorization": f"Bearer {create_token(int(row.id))}"}

    def _seed_product(self, seller_id: int, **kw) -> int:
        kw.setdefault("price", 1000.0)
        with self.app.app_context():
            row = Product(user_id=seller_id, display_name="Giant Trance X", **kw)
            db.session.add(row)
            db.session.commit()
            return int(row.id)

    def _seed_offer(self, product_id: int, buyer_id: int, seller_id: int, **kw) -> int:
        kw.setdefault("status", "accepted")
        kw.setdefault("payment_status", "pending")
        kw.setdefault("payment_deadline", datetime.utcnow() + timedelta(hours=48))
        with self.app.app_context():
            row = Offer(
                product_id=product_id,
                buyer_id=buyer_id,
                seller_id=seller_id,
                original_price=1000.0,
                offer_amount=800.0,
                expires_at=datetime.utcnow() + timedelta(days=7),
                **kw,
            )
            db.session.add(row)
            db.session.commit()
            return int(row.id)

    def test_requires_sign_in(self):
        res = self.client.post("/api/stripe/create-checkout", json={"productId": 1})
        self.assertEqual(res.status_code, 401)
        self.assertEqual((res.get_json(force=True) or {}).get("error"), "Unauthorised - please sign in to purchase")

    def test_product_checkout_builds_session(self):
        seller_id, _ = self._seed_user("seller")
        buyer_id, headers = self._seed_user("buyer")
        product_id = self._seed_product(seller_id)
        provider = RecordingPaymentsProvider()
        with mock.patch("yellowjersey.services.checkout_service.build_payments_provider", return_value=provider):
            res = self.client.post(
                "/api/stripe/create-checkout",
                headers=headers,
                json={"productId": product_id, "deliveryMethod": "uber_express"},
            )
        self.assertEqual(res.status_code, 200)
        body = res.get_json(force=True) or {}
        self.assertTrue(body.get("sessionId", "").startswith("cs_mock_"))
        self.assertIn("session_id=", body.get("url") or "")
        self.assertEqual(body["breakdown"]["delivery_cost"], 15.0)
        self.assertEqual(body["breakdown"]["total_amount"], 1020.0)

        req = provider.requests[0]
        self.assertEqual([item.unit_amount_cents for item in req.line_items], [100000, 1500, 500])
        self.assertEqual(req.metadata["buyer_id"], str(buyer_id))
        self.assertEqual(req.metadata["seller_payout"], "970.00")
        self.assertEqual(req.metadata["delivery_method"], "uber_express")
        self.assertTrue(req.collect_shipping)
        self.assertEqual(req.currency, "aud")

    def test_pickup_skips_delivery_line(self):
        seller_id, _ = self._seed_user("seller")
        _buyer_id, headers = self._seed_user("buyer")
        product_id = self._seed_product(seller_id, price=200.0)
        provider = RecordingPaymentsProvider()
        with mock.patch("yellowjersey.services.checkout_service.build_payments_provider", return_value=provider):
            res = self.client.post("/api/stripe/create-checkout", headers=headers, json={"productId": product_id})
        self.assertEqual(res.status_code, 200)
        req = provider.requests[0]
        self.assertEqual(len(req.line_items), 2)
        self.assertFalse(req.collect_shipping)

    def test_shipping_uses_listing_cost(self):
        seller_id, _ = self._seed_user("seller")
        _buyer_id, headers = self._seed_user("buyer")
        product_id = self._seed_product(seller_id, shipping_available=True, shipping_cost=45.5)
        res = self.client.post(
            "/api/stripe/create-checkout",
            headers=headers,
            json={"productId": product_id, "deliveryMethod": "shipping"},
        )
        self.assertEqual((res.get_json(force=True) or {})["breakdown"]["delivery_cost"], 45.5)

    def test_product_checkout_rejections(self):
        seller_id, seller_headers = self._seed_user("seller")
        _buyer_id, headers = self._seed_user("buyer")
        product_id = self._seed_product(seller_id)
        sold_id = self._seed_product(seller_id, listing_status="sold", sold_at=datetime.utcnow())
        inactive_id = self._seed_product(seller_id, is_active=False)

        cases = [
            (seller_headers, {"productId": product_id}, 400),
            (headers, {"productId": sold_id}, 400),
            (headers, {"productId": inactive_id}, 400),
            (headers, {"productId": 999999}, 404),
            (headers, {}, 400),
            (headers, {"productId": product_id, "deliveryMethod": "drone"}, 400),
        ]
        for req_headers, payload, expected in cases:
            res = self.client.post("/api/stripe/create-checkout", headers=req_headers, json=payload)
            self.assertEqual(res.status_code, expected, payload)

    def test_disabled_provider_is_503(self):
        seller_id, _ = self._seed_user("seller")
        _buyer_id, headers = self._seed_user("buyer")
        product_id = self._seed_product(seller_id)
        with mock.patch.dict(os.environ, {"PAYMENTS_PROVIDER": "disabled"}):
            res = self.client.post("/api/stripe/create-checkout", headers=headers, json={"productId": product_id})
        self.assertEqual(res.status_code, 503)

    def test_offer_checkout_uses_offer_amount(self):
        seller_id, _ = self._seed_user("seller")
        buyer_id, headers = self._seed_user("buyer")
        product_id = self._seed_product(seller_id)
        offer_id = self._seed_offer(product_id, buyer_id, seller_id)
        provider = RecordingPaymentsProvider()
        with mock.patch("yellowjersey.services.checkout_service.build_payments_provider", return_value=provider):
            res = self.client.post("/api/stripe/create-checkout-offer", headers=headers, json={"offerId": offer_id})
        self.assertEqual(res.status_code, 200)
        body = res.get_json(force=True) or {}
        self.assertEqual(body["breakdown"]["item_price"], 800.0)
        self.assertEqual(body["breakdown"]["total_amount"], 804.0)
        meta = provider.requests[0].metadata
        self.assertEqual(meta["offer_id"], str(offer_id))
        self.assertEqual(meta["payment_type"], "offer")
        self.assertEqual(meta["original_price"], "1000.00")
        with self.app.app_context():
            self.assertEqual(db.session.get(Offer, offer_id).stripe_session_id, body["sessionId"])

    def test_offer_checkout_rejections(self):
        seller_id, _ = self._seed_user("seller")
        buyer_id, headers = self._seed_user("buyer")
        _other_id, other_headers = self._seed_user("other")
        product_id = self._seed_product(seller_id)
        accepted = self._seed_offer(product_id, buyer_id, seller_id)
        pending = self._seed_offer(product_id, buyer_id, seller_id, status="pending", payment_status=None)
        paid = self._seed_offer(product_id, buyer_id, seller_id, payment_status="paid")
        late = self._seed_offer(
            product_id, buyer_id, seller_id, payment_deadline=datetime.utcnow() - timedelta(hours=1)
        )

        cases = [
            (other_headers, accepted, 403),
            (headers, pending, 400),
            (headers, paid, 400),
            (headers, late, 400),
            (headers, 999999, 404),
        ]
        for req_headers, offer_id, expected in cases:
            res = self.client.post("/api/stripe/create-checkout-offer", headers=req_headers, json={"offerId": offer_id})
            self.assertEqual(res.status_code, expected, offer_id)
        res = self.client.post("/api/stripe/create-checkout-offer", headers=headers, json={})
        self.assertEqual(res.status_code, 400)


if __name__ == "__main__":
    unittest.main()
