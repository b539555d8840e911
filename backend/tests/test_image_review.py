from __future__ import annotations

import os
import shutil
import tempfile
import time
import unittest
from unittest import mock

from yellowjersey import create_app
from yellowjersey.extensions import db
from yellowjersey.models import CanonicalProduct, Product, ProductImage, User
from yellowjersey.utils import storage
from yellowjersey.utils.jwt_utils import create_token


class ImageReviewTestCase(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._prev_db_uri = os.getenv("SQLALCHEMY_DATABASE_URI")
        cls._prev_db_url = os.getenv("DATABASE_URL")
        cls._prev_upload_dir = os.getenv("UPLOAD_DIR")
        cls._upload_dir = tempfile.mkdtemp(prefix="yj-uploads-")
        os.environ["UPLOAD_DIR"] = cls._upload_dir
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
        if cls._prev_upload_dir is None:
            os.environ.pop("UPLOAD_DIR", None)
        else:
            os.environ["UPLOAD_DIR"] = cls._prev_upload_dir
        shutil.rmtree(cls._upload_dir, ignore_errors=True)

    def _seed_user(self, role: str) -> User:
        suffix = str(time.time_ns())
        row = User(name=f"{role}-{suffix[-4:]}", email=f"{role}-{suffix}@yellowjersey.test", role=role)
        row.set_password("Passw0rd!")
        db.session.add(row)
        db.session.commit()
        return row

    def _headers(self, role: str = "admin") -> dict:
        with self.app.app_context():
            user = self._seed_user(role)
            token = create_token(int(user.id))
        return {"Authorization": f"Bearer {token}"}

    def _seed_canonical(self, image_count: int, *, with_listing: bool = True) -> tuple[int, list[int], int | None]:
        with self.app.app_context():
            canonical = CanonicalProduct(normalized_name="Shimano Ultegra R8100 Groupset")
            db.session.add(canonical)
            db.session.commit()
            ids = []
            for i in range(image_count):
                row = ProductImage(
                    canonical_product_id=int(canonical.id),
                    external_url=f"https://images.example.com/ultegra-{i}.jpg",
                    card_url=f"https://cdn.example.com/ultegra-{i}-card.jpg",
                    sort_order=i,
                    source="discovery",
                )
                db.session.add(row)
                db.session.flush()
                ids.append(int(row.id))
            listing_id = None
            if with_listing:
                seller = self._seed_user("buyer")
                listing = Product(
                    user_id=int(seller.id),
                    canonical_product_id=int(canonical.id),
                    display_name="Ultegra groupset",
                    price=1200.0,
                )
                db.session.add(listing)
                db.session.flush()
                listing_id = int(listing.id)
            db.session.commit()
            return int(canonical.id), ids, listing_id

    def test_status_toggle_cycles_through_states(self):
        headers = self._headers()
        _cid, ids, _lid = self._seed_canonical(1, with_listing=False)
        seen = []
        for _ in range(3):
            res = self.client.post(f"/api/admin/images/{ids[0]}/status", headers=headers)
            self.assertEqual(res.status_code, 200)
            seen.append(((res.get_json(force=True) or {}).get("image") or {}).get("approval_status"))
        self.assertEqual(seen, ["approved", "rejected", "pending"])

        explicit = self.client.post(f"/api/admin/images/{ids[0]}/status", headers=headers, json={"status": "rejected"})
        self.assertEqual(((explicit.get_json(force=True) or {}).get("image") or {}).get("approval_status"), "rejected")
        bad = self.client.post(f"/api/admin/images/{ids[0]}/status", headers=headers, json={"status": "archived"})
        self.assertEqual(bad.status_code, 400)

    def test_admin_routes_require_admin_role(self):
        _cid, ids, _lid = self._seed_canonical(1, with_listing=False)
        res = self.client.post(f"/api/admin/images/{ids[0]}/status", headers=self._headers("buyer"))
        self.assertEqual(res.status_code, 403)
        res = self.client.post(f"/api/admin/images/{ids[0]}/status")
        self.assertEqual(res.status_code, 401)

    def test_batch_approval_enforces_limit_and_rejects_rest(self):
        headers = self._headers()
        cid, ids, listing_id = self._seed_canonical(7)

        too_many = self.client.post(
            "/api/admin/images/approve",
            headers=headers,
            json={"canonicalProductId": cid, "imageIds": ids[:6]},
        )
        self.assertEqual(too_many.status_code, 400)
        body = too_many.get_json(force=True) or {}
        self.assertEqual(body.get("requested"), 6)
        self.assertEqual(body.get("max"), 5)

        ok = self.client.post(
            "/api/admin/images/approve",
            headers=headers,
            json={"canonicalProductId": cid, "imageIds": ids[:3], "primaryImageId": ids[1]},
        )
        self.assertEqual(ok.status_code, 200)
        result = ok.get_json(force=True) or {}
        self.assertEqual(result.get("approved"), 3)
        self.assertEqual(result.get("rejected"), 4)

        with self.app.app_context():
            rows = {int(r.id): r for r in ProductImage.query.filter_by(canonical_product_id=cid).all()}
            self.assertEqual(sum(1 for r in rows.values() if r.approval_status == "approved"), 3)
            self.assertTrue(rows[ids[1]].is_primary)
            listing = db.session.get(Product, listing_id)
            doc = listing.get_images()
            self.assertEqual(len(doc), 3)
            self.assertEqual(doc[0]["id"], ids[1])
            self.assertTrue(doc[0]["isPrimary"])
            self.assertEqual(listing.primary_image_url, "https://cdn.example.com/ultegra-1-card.jpg")

        # 3 already approved + 3 more breaks the cap
        over = self.client.post(
            "/api/admin/images/approve",
            headers=headers,
            json={"canonicalProductId": cid, "imageIds": ids[3:6]},
        )
        self.assertEqual(over.status_code, 400)
        self.assertEqual((over.get_json(force=True) or {}).get("alreadyApproved"), 3)

    def test_reject_others_accepts_string_false(self):
        headers = self._headers()
        cid, ids, _lid = self._seed_canonical(3, with_listing=False)
        res = self.client.post(
            "/api/admin/images/approve",
            headers=headers,
            json={"canonicalProductId": cid, "imageIds": ids[:1], "rejectOthers": "false"},
        )
        self.assertEqual(res.status_code, 200)
        self.assertEqual((res.get_json(force=True) or {}).get("rejected"), 0)
        with self.app.app_context():
            statuses = sorted(r.approval_status for r in ProductImage.query.filter_by(canonical_product_id=cid).all())
        self.assertEqual(statuses, ["approved", "pending", "pending"])

    def test_canonical_sync_does_not_overwrite_listing_images(self):
        headers = self._headers()
        cid, ids, listing_id = self._seed_canonical(2)
        with self.app.app_context():
            listing = db.session.get(Product, listing_id)
            listing.set_images([{"id": 0, "url": "https://cdn.example.com/seller-own.jpg"}])
            db.session.commit()
        self.client.post("/api/admin/images/approve", headers=headers, json={"canonicalProductId": cid, "imageIds": ids})
        with self.app.app_context():
            doc = db.session.get(Product, listing_id).get_images()
            self.assertEqual([d["url"] for d in doc], ["https://cdn.example.com/seller-own.jpg"])

    def test_mark_complete_requires_single_primary(self):
        headers = self._headers()
        cid, ids, _lid = self._seed_canonical(3, with_listing=False)
        none_approved = self.client.post(f"/api/admin/images/products/{cid}/complete", headers=headers)
        self.assertEqual(none_approved.status_code, 400)

        self.client.post("/api/admin/images/approve", headers=headers, json={"canonicalProductId": cid, "imageIds": ids[:2]})
        no_primary = self.client.post(f"/api/admin/images/products/{cid}/complete", headers=headers)
        self.assertEqual(no_primary.status_code, 400)
        self.assertEqual((no_primary.get_json(force=True) or {}).get("primaryCount"), 0)

    def test_mark_complete_deletes_unapproved_rows_and_files(self):
        headers = self._headers()
        cid, ids, _lid = self._seed_canonical(4, with_listing=False)
        with self.app.app_context():
            stored = db.session.get(ProductImage, ids[3])
            path = storage.build_storage_path(f"canonical/{cid}", "jpg")
            storage.save_bytes(path, b"fake-bytes")
            stored.storage_path = path
            stored.is_downloaded = True
            db.session.commit()
        file_path = os.path.join(self._upload_dir, path)
        self.assertTrue(os.path.exists(file_path))

        self.client.post(
            "/api/admin/images/approve",
            headers=headers,
            json={"canonicalProductId": cid, "imageIds": ids[:2], "primaryImageId": ids[0]},
        )
        res = self.client.post(f"/api/admin/images/products/{cid}/complete", headers=headers)
        self.assertEqual(res.status_code, 200)
        body = res.get_json(force=True) or {}
        self.assertEqual(body.get("kept"), 2)
        self.assertEqual(body.get("deleted"), 2)
        self.assertEqual(body.get("filesRemoved"), 1)
        self.assertFalse(os.path.exists(file_path))

        with self.app.app_context():
            remaining = sorted(int(r.id) for r in ProductImage.query.filter_by(canonical_product_id=cid).all())
            self.assertEqual(remaining, ids[:2])
            self.assertIsNotNone(db.session.get(CanonicalProduct, cid).image_qa_completed_at)

        queue = self.client.get("/api/admin/images/queue", headers=headers)
        self.assertNotIn(cid, [p["id"] for p in (queue.get_json(force=True) or {}).get("products") or []])

    def test_mark_complete_failure_rolls_back(self):
        headers = self._headers()
        cid, ids, _lid = self._seed_canonical(2, with_listing=False)
        with self.app.app_context():
            rejected = db.session.get(ProductImage, ids[1])
            rejected.storage_path = f"canonical/{cid}/gone.jpg"
            rejected.is_downloaded = True
            db.session.commit()
        self.client.post(
            "/api/admin/images/approve",
            headers=headers,
            json={"canonicalProductId": cid, "imageIds": ids[:1], "primaryImageId": ids[0]},
        )
        with mock.patch("yellowjersey.utils.storage.delete_objects", side_effect=OSError("bucket offline")):
            res = self.client.post(f"/api/admin/images/products/{cid}/complete", headers=headers)
        self.assertEqual(res.status_code, 500)
        self.assertEqual((res.get_json(force=True) or {}).get("error"), "Failed to complete review")
        with self.app.app_context():
            self.assertEqual(ProductImage.query.filter_by(canonical_product_id=cid).count(), 2)
            self.assertIsNone(db.session.get(CanonicalProduct, cid).image_qa_completed_at)

    def test_grouped_view_flags_near_duplicates(self):
        headers = self._headers()
        cid, ids, _lid = self._seed_canonical(3, with_listing=False)
        with self.app.app_context():
            rows = [db.session.get(ProductImage, i) for i in ids]
            rows[0].phash = "ffff0000ffff0000"
            rows[1].phash = "ffff0000ffff0001"
            rows[2].phash = "0000ffff0000ffff"
            db.session.commit()
        res = self.client.get(f"/api/admin/images/products/{cid}", headers=headers)
        self.assertEqual(res.status_code, 200)
        body = res.get_json(force=True) or {}
        self.assertEqual(body["counts"]["pending"], 3)
        pending = {p["id"]: p for p in body["images"]["pending"]}
        self.assertIsNone(pending[ids[0]]["duplicate_of"])
        self.assertEqual(pending[ids[1]]["duplicate_of"], ids[0])
        self.assertIsNone(pending[ids[2]]["duplicate_of"])
        # not downloaded: the external url is what the reviewer sees
        self.assertEqual(pending[ids[0]]["url"], "https://images.example.com/ultegra-0.jpg")

    def test_set_primary_clears_siblings(self):
        headers = self._headers()
        cid, ids, _lid = self._seed_canonical(3, with_listing=False)
        self.client.post(f"/api/admin/images/{ids[0]}/primary", headers=headers)
        self.client.post(f"/api/admin/images/{ids[2]}/primary", headers=headers)
        with self.app.app_context():
            flags = {int(r.id): bool(r.is_primary) for r in ProductImage.query.filter_by(canonical_product_id=cid).all()}
        self.assertEqual(flags, {ids[0]: False, ids[1]: False, ids[2]: True})


if __name__ == "__main__":
    unittest.main()
