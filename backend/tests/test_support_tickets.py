from __future__ import annotations

import os
import time
import unittest
from datetime import datetime, timedelta

from yellowjersey import create_app
from yellowjersey.extensions import db
from yellowjersey.models import Product, Purchase, SupportTicket, TicketAttachment, User
from yellowjersey.services.ticket_service import determine_priority
from yellowjersey.utils.jwt_utils import create_token


class TicketPriorityTestCase(unittest.TestCase):
    def test_priority_rules(self):
        self.assertEqual(determine_priority("damaged", None), "high")
        self.assertEqual(determine_priority("wrong_item", "released"), "high")
        self.assertEqual(determine_priority("item_not_received", "held"), "high")
        self.assertEqual(determine_priority("general_question", "held"), "medium")
        self.assertEqual(determine_priority("shipping_issue", "released"), "medium")


class SupportTicketsTestCase(unittest.TestCase):
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

    def _seed_purchase(self, buyer_id: int, seller_id: int, funds_status: str = "held") -> int:
        with self.app.app_context():
            product = Product(user_id=seller_id, display_name="Orbea Orca", price=3000.0, listing_status="sold", is_active=False)
            db.session.add(product)
            db.session.flush()
            now = datetime.utcnow()
            purchase = Purchase(
                order_number=f"ORD-{now.strftime('%Y%m%d')}-{str(time.time_ns())[-5:]}",
                buyer_id=buyer_id,
                seller_id=seller_id,
                product_id=int(product.id),
                item_price=3000.0,
                total_amount=3015.0,
                status="paid",
                payment_status="paid",
                funds_status=funds_status,
                funds_release_at=now + timedelta(days=7),
            )
            db.session.add(purchase)
            db.session.commit()
            return int(purchase.id)

    def _ticket_payload(self, purchase_id: int, category: str = "item_not_received", **extra) -> dict:
        payload = {
            "purchaseId": purchase_id,
            "category": category,
            "subject": "Bike never arrived",
            "description": "Tracking has not moved for ten days.",
        }
        payload.update(extra)
        return payload

    def test_create_ticket_validation(self):
        buyer_id, buyer_headers = self._seed_user("buyer")
        seller_id, seller_headers = self._seed_user("seller")
        purchase_id = self._seed_purchase(buyer_id, seller_id)

        self.assertEqual(self.client.post("/api/support/tickets", json={}).status_code, 401)
        res = self.client.post("/api/support/tickets", headers=buyer_headers, json={"purchaseId": purchase_id})
        self.assertEqual(res.status_code, 400)
        res = self.client.post("/api/support/tickets", headers=buyer_headers, json=self._ticket_payload(purchase_id, "lost_keys"))
        self.assertEqual(res.status_code, 400)
        res = self.client.post("/api/support/tickets", headers=buyer_headers, json=self._ticket_payload(999999))
        self.assertEqual(res.status_code, 404)
        res = self.client.post("/api/support/tickets", headers=seller_headers, json=self._ticket_payload(purchase_id))
        self.assertEqual(res.status_code, 403)

    def test_dispute_ticket_holds_funds_and_blocks_duplicates(self):
        buyer_id, buyer_headers = self._seed_user("buyer")
        seller_id, _ = self._seed_user("seller")
        purchase_id = self._seed_purchase(buyer_id, seller_id)

        res = self.client.post(
            "/api/support/tickets",
            headers=buyer_headers,
            json=self._ticket_payload(purchase_id, attachments=[{"url": "https://cdn.example.com/tracking.png"}, {"fileName": "no-url"}]),
        )
        self.assertEqual(res.status_code, 201)
        ticket = (res.get_json(force=True) or {}).get("ticket") or {}
        self.assertEqual(ticket.get("status"), "open")
        self.assertEqual(ticket.get("priority"), "high")
        self.assertTrue(ticket.get("ticket_number", "").startswith("TKT-"))
        self.assertEqual(ticket.get("seller_id"), seller_id)

        with self.app.app_context():
            self.assertEqual(db.session.get(Purchase, purchase_id).funds_status, "disputed")
            attachments = TicketAttachment.query.filter_by(ticket_id=ticket["id"]).all()
            self.assertEqual([a.file_name for a in attachments], ["tracking.png"])

        dup = self.client.post("/api/support/tickets", headers=buyer_headers, json=self._ticket_payload(purchase_id))
        self.assertEqual(dup.status_code, 409)
        self.assertEqual((dup.get_json(force=True) or {}).get("existingTicketId"), ticket["id"])

    def test_general_question_leaves_funds_alone(self):
        buyer_id, buyer_headers = self._seed_user("buyer")
        seller_id, _ = self._seed_user("seller")
        purchase_id = self._seed_purchase(buyer_id, seller_id)
        res = self.client.post(
            "/api/support/tickets",
            headers=buyer_headers,
            json=self._ticket_payload(purchase_id, "general_question"),
        )
        self.assertEqual(((res.get_json(force=True) or {}).get("ticket") or {}).get("priority"), "medium")
        with self.app.app_context():
            self.assertEqual(db.session.get(Purchase, purchase_id).funds_status, "held")

    def test_messages_move_ticket_status(self):
        buyer_id, buyer_headers = self._seed_user("buyer")
        seller_id, seller_headers = self._seed_user("seller")
        _outsider_id, outsider_headers = self._seed_user("outsider")
        purchase_id = self._seed_purchase(buyer_id, seller_id)
        created = self.client.post("/api/support/tickets", headers=buyer_headers, json=self._ticket_payload(purchase_id))
        ticket_id = ((created.get_json(force=True) or {}).get("ticket") or {})["id"]
        url = f"/api/support/tickets/{ticket_id}/messages"

        self.assertEqual(self.client.post(url, headers=buyer_headers, json={"message": "  "}).status_code, 400)
        self.assertEqual(self.client.post(url, headers=outsider_headers, json={"message": "hi"}).status_code, 403)

        res = self.client.post(url, headers=buyer_headers, json={"message": "Any update?"})
        self.assertEqual(res.status_code, 201)
        self.assertEqual(((res.get_json(force=True) or {}).get("message") or {}).get("sender_type"), "buyer")
        with self.app.app_context():
            self.assertEqual(db.session.get(SupportTicket, ticket_id).status, "awaiting_response")

        self.client.post(url, headers=seller_headers, json={"message": "Checking with the courier."})
        with self.app.app_context():
            self.assertEqual(db.session.get(SupportTicket, ticket_id).status, "in_review")

        listing = self.client.get(url, headers=seller_headers)
        self.assertEqual(len((listing.get_json(force=True) or {}).get("messages") or []), 3)

        detail = self.client.get(f"/api/support/tickets/{ticket_id}", headers=seller_headers)
        body = detail.get_json(force=True) or {}
        self.assertEqual(body.get("userRole"), "seller")
        self.assertEqual(body["purchase"]["id"], purchase_id)
        actions = [h["action"] for h in body.get("history") or []]
        self.assertEqual(actions.count("status_changed"), 2)
        self.assertEqual(self.client.get(f"/api/support/tickets/{ticket_id}", headers=outsider_headers).status_code, 403)

    def test_close_only_after_resolution(self):
        buyer_id, buyer_headers = self._seed_user("buyer")
        seller_id, seller_headers = self._seed_user("seller")
        purchase_id = self._seed_purchase(buyer_id, seller_id)
        created = self.client.post("/api/support/tickets", headers=buyer_headers, json=self._ticket_payload(purchase_id))
        ticket_id = ((created.get_json(force=True) or {}).get("ticket") or {})["id"]
        url = f"/api/support/tickets/{ticket_id}"

        self.assertEqual(self.client.patch(url, headers=buyer_headers, json={"status": "closed"}).status_code, 400)
        with self.app.app_context():
            row = db.session.get(SupportTicket, ticket_id)
            row.status = "resolved"
            db.session.commit()
        self.assertEqual(self.client.patch(url, headers=seller_headers, json={"status": "closed"}).status_code, 400)
        res = self.client.patch(url, headers=buyer_headers, json={"status": "closed"})
        self.assertEqual(res.status_code, 200)
        ticket = (res.get_json(force=True) or {}).get("ticket") or {}
        self.assertEqual(ticket.get("status"), "closed")
        self.assertIsNotNone(ticket.get("closed_at"))

        blocked = self.client.post(f"{url}/messages", headers=buyer_headers, json={"message": "thanks"})
        self.assertEqual(blocked.status_code, 400)

        # a closed ticket no longer blocks a new one
        again = self.client.post("/api/support/tickets", headers=buyer_headers, json=self._ticket_payload(purchase_id))
        self.assertEqual(again.status_code, 201)

    def test_list_tickets_filters(self):
        buyer_id, buyer_headers = self._seed_user("buyer")
        seller_id, seller_headers = self._seed_user("seller")
        first = self._seed_purchase(buyer_id, seller_id)
        second = self._seed_purchase(buyer_id, seller_id)
        self.client.post("/api/support/tickets", headers=buyer_headers, json=self._ticket_payload(first))
        created = self.client.post("/api/support/tickets", headers=buyer_headers, json=self._ticket_payload(second))
        with self.app.app_context():
            row = db.session.get(SupportTicket, ((created.get_json(force=True) or {}).get("ticket") or {})["id"])
            row.status = "resolved"
            db.session.commit()

        res = self.client.get("/api/support/tickets", headers=seller_headers)
        body = res.get_json(force=True) or {}
        self.assertEqual(body.get("count"), 2)
        self.assertEqual(body["tickets"][0]["message_count"], 1)
        self.assertTrue(body["tickets"][0]["order_number"].startswith("ORD-"))

        active = self.client.get("/api/support/tickets?status=active", headers=buyer_headers)
        self.assertEqual((active.get_json(force=True) or {}).get("count"), 1)
        resolved = self.client.get("/api/support/tickets?status=resolved", headers=buyer_headers)
        self.assertEqual((resolved.get_json(force=True) or {}).get("count"), 1)
        bad = self.client.get("/api/support/tickets?status=lost", headers=buyer_headers)
        self.assertEqual(bad.status_code, 400)

    def test_faqs_filter_by_category(self):
        everything = (self.client.get("/api/support/faqs").get_json(force=True) or {}).get("faqs") or []
        damaged = (self.client.get("/api/support/faqs?category=damaged").get_json(force=True) or {}).get("faqs") or []
        self.assertGreater(len(everything), len(damaged))
        self.assertTrue(damaged)
        self.assertTrue(all(f["category"] == "damaged" for f in damaged))


if __name__ == "__main__":
    unittest.main()
