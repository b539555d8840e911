from __future__ import annotations

import io
import os
import shutil
import tempfile
import time
import unittest

from PIL import Image

from yellowjersey import create_app
from yellowjersey.extensions import db
from yellowjersey.models import CanonicalProduct, Product, ProductImage, User
from yellowjersey.utils.jwt_utils import create_token


def _jpeg_bytes(color=(20, 120, 220)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (80, 60), color).save(buf, format="JPEG")
    return buf.getvalue()


class ListingsTestCase(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._prev_db_uri = os.getenv("SQLALCHEMY_DATABASE_URI")
        cls._prev_db_url = os.getenv("DATABASE_URL")
        cls._prev_upload_dir = os.getenv("UPLOAD_DIR")
        cls._upload_dir = tempfile.mkdtemp(prefix="yj-listings-")
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

    def _headers(self) -> dict:
        with self.app.app_context():
            suffix = str(time.time_ns())
            user = User(name="Seller", email=f"seller-{suffix}@yellowjersey.test")
            user.set_password("Passw0rd!")
            db.session.add(user)
            db.session.commit()
            return {"Authorization": f"Bearer {create_token(int(user.id))}"}

    def _create(self, headers: dict, **overrides):
        payload = {
            "title": f"Canyon Ultimate CF SL {time.time_ns()}",
            "price": 2899,
            "marketplaceCategory": "Bicycles",
            "marketplaceSubcategory": "Road",
            "bikeType": "Road",
            "frameSize": "56",
            "conditionRating": "excellent",
        }
        payload.update(overrides)
        return self.client.post("/api/marketplace/listings", headers=headers, json=payload)

    def test_create_listing_links_canonical_and_images(self):
        headers = self._headers()
        res = self._create(
            headers,
            listingStatus="active",
            shippingAvailable="true",
            shippingCost="45",
            images=[
                {"url": "https://res.cloudinary.example.com/b.jpg", "cardUrl": "https://cdn.example.com/b-card.jpg", "order": 1},
                {"url": "https://res.cloudinary.example.com/a.jpg", "cardUrl": "https://cdn.example.com/a-card.jpg", "order": 0},
            ],
        )
        self.assertEqual(res.status_code, 201)
        listing = (res.get_json(force=True) or {}).get("listing") or {}
        self.assertEqual(listing.get("listing_status"), "active")
        self.assertTrue(listing.get("is_active"))
        self.assertTrue(listing.get("shipping_available"))
        self.assertEqual(listing.get("shipping_cost"), 45.0)
        self.assertIsNotNone(listing.get("canonical_product_id"))
        self.assertEqual(listing.get("primary_image_url"), "https://cdn.example.com/a-card.jpg")
        self.assertEqual(
            [img["cloudinaryUrl"] for img in listing.get("images") or []],
            ["https://res.cloudinary.example.com/a.jpg", "https://res.cloudinary.example.com/b.jpg"],
        )

        with self.app.app_context():
            rows = (
                ProductImage.query.filter_by(product_id=listing["id"])
                .order_by(ProductImage.sort_order.asc())
                .all()
            )
            self.assertEqual([r.is_primary for r in rows], [True, False])
            self.assertTrue(all(r.approval_status == "approved" for r in rows))
            canonical = db.session.get(CanonicalProduct, listing["canonical_product_id"])
            self.assertTrue(canonical.normalized_name.startswith("canyon ultimate cf sl"))

        detail = self.client.get(f"/api/marketplace/products/{listing['id']}")
        self.assertEqual(detail.status_code, 200)

    def test_create_reuses_canonical_by_name_and_defaults_to_draft(self):
        headers = self._headers()
        title = f"Trek Madone SLR {time.time_ns()}"
        first = (self._create(headers, title=title).get_json(force=True) or {}).get("listing") or {}
        second = (self._create(headers, title=f"  {title.upper()}!! ").get_json(force=True) or {}).get("listing") or {}
        self.assertEqual(first.get("canonical_product_id"), second.get("canonical_product_id"))
        self.assertEqual(first.get("listing_status"), "draft")
        self.assertFalse(first.get("is_active"))

    def test_listing_without_images_picks_up_canonical_images(self):
        headers = self._headers()
        with self.app.app_context():
            canonical = CanonicalProduct(normalized_name=f"scott addict rc {time.time_ns()}")
            db.session.add(canonical)
            db.session.flush()
            db.session.add(
                ProductImage(
                    canonical_product_id=int(canonical.id),
                    card_url="https://cdn.example.com/addict-card.jpg",
                    approval_status="approved",
                    is_primary=True,
                )
            )
            db.session.commit()
            canonical_id = int(canonical.id)
        res = self._create(headers, canonicalProductId=canonical_id)
        self.assertEqual(res.status_code, 201)
        listing = (res.get_json(force=True) or {}).get("listing") or {}
        self.assertEqual(listing.get("primary_image_url"), "https://cdn.example.com/addict-card.jpg")

        owner = self.client.get(f"/api/products/{listing['id']}/images", headers=headers)
        self.assertEqual((owner.get_json(force=True) or {}).get("imageSource"), "canonical")
        self.assertEqual(self._create(headers, canonicalProductId=999999).status_code, 404)

    def test_create_validation(self):
        headers = self._headers()
        self.assertEqual(self.client.post("/api/marketplace/listings", json={"title": "x", "price": 1}).status_code, 401)
        cases = [
            ({"title": ""}, "title is required"),
            ({"price": 0}, "price must be greater than 0"),
            ({"price": "cheap"}, "price must be a number"),
            ({"listingStatus": "sold"}, "listingStatus must be draft or active"),
            ({"shippingCost": -5}, "shippingCost cannot be negative"),
            ({"images": [{"order": 0}]}, "Each image needs a url or cardUrl"),
            ({"images": "a.jpg"}, "images must be a list of objects"),
        ]
        for overrides, message in cases:
            res = self._create(headers, **overrides)
            self.assertEqual(res.status_code, 400, overrides)
            self.assertEqual((res.get_json(force=True) or {}).get("error"), message)

    def test_update_listing(self):
        headers = self._headers()
        listing = (self._create(headers).get_json(force=True) or {}).get("listing") or {}
        url = f"/api/marketplace/listings/{listing['id']}"

        res = self.client.put(url, headers=headers, json={"price": 2500, "listingStatus": "active", "frameSize": "54"})
        self.assertEqual(res.status_code, 200)
        updated = (res.get_json(force=True) or {}).get("listing") or {}
        self.assertEqual(updated.get("price"), 2500.0)
        self.assertEqual(updated.get("frame_size"), "54")
        self.assertTrue(updated.get("is_active"))

        empty = self.client.put(url, headers=headers, json={"unknown": 1})
        self.assertEqual(empty.status_code, 400)
        self.assertEqual((empty.get_json(force=True) or {}).get("error"), "No fields to update")
        bad = self.client.put(url, headers=headers, json={"price": -1})
        self.assertEqual(bad.status_code, 400)
        with self.app.app_context():
            self.assertEqual(db.session.get(Product, listing["id"]).price, 2500.0)

        self.assertEqual(self.client.put(url, headers=self._headers(), json={"price": 1}).status_code, 403)
        self.assertEqual(
            self.client.put("/api/marketplace/listings/999999", headers=headers, json={"price": 1}).status_code, 404
        )

    def test_mark_and_unmark_sold(self):
        headers = self._headers()
        listing = (self._create(headers, listingStatus="active").get_json(force=True) or {}).get("listing") or {}
        url = f"/api/marketplace/listings/{listing['id']}/sold"

        self.assertEqual(self.client.delete(url, headers=headers).status_code, 400)
        res = self.client.post(url, headers=headers)
        self.assertEqual(res.status_code, 200)
        sold = (res.get_json(force=True) or {}).get("listing") or {}
        self.assertEqual(sold.get("listing_status"), "sold")
        self.assertFalse(sold.get("is_active"))
        again = self.client.post(url, headers=headers)
        self.assertEqual((again.get_json(force=True) or {}).get("error"), "Listing is already marked as sold")
        status_change = self.client.put(
            f"/api/marketplace/listings/{listing['id']}", headers=headers, json={"listingStatus": "active"}
        )
        self.assertEqual(status_change.status_code, 400)

        relisted = self.client.delete(url, headers=headers)
        self.assertEqual(relisted.status_code, 200)
        self.assertEqual(((relisted.get_json(force=True) or {}).get("listing") or {}).get("listing_status"), "active")

    def test_my_listings_filters_by_status(self):
        headers = self._headers()
        self._create(headers, listingStatus="active")
        self._create(headers)
        res = self.client.get("/api/marketplace/listings", headers=headers)
        self.assertEqual((res.get_json(force=True) or {}).get("count"), 2)
        drafts = self.client.get("/api/marketplace/listings?status=draft", headers=headers)
        items = (drafts.get_json(force=True) or {}).get("listings") or []
        self.assertEqual([i["listing_status"] for i in items], ["draft"])

    def test_upload_attaches_image_to_listing(self):
        headers = self._headers()
        listing = (self._create(headers).get_json(force=True) or {}).get("listing") or {}
        res = self.client.post(
            "/api/marketplace/listings/upload-image",
            headers=headers,
            data={"file": (io.BytesIO(_jpeg_bytes()), "bike.jpg", "image/jpeg"), "listingId": str(listing["id"])},
            content_type="multipart/form-data",
        )
        self.assertEqual(res.status_code, 201)
        image = (res.get_json(force=True) or {}).get("image") or {}
        self.assertIsNotNone(image.get("id"))
        self.assertEqual((image.get("width"), image.get("height")), (80, 60))
        self.assertTrue(os.path.exists(os.path.join(self._upload_dir, image["storagePath"])))

        owner = self.client.get(f"/api/products/{listing['id']}/images", headers=headers)
        body = owner.get_json(force=True) or {}
        self.assertEqual(body.get("imageSource"), "listing")
        self.assertEqual([i["id"] for i in body.get("images") or []], [image["id"]])
        self.assertTrue(body["images"][0]["is_primary"])
        with self.app.app_context():
            row = db.session.get(ProductImage, image["id"])
            self.assertEqual(row.mime_type, "image/jpeg")
            self.assertEqual(len(row.phash), 16)
            self.assertEqual(db.session.get(Product, listing["id"]).primary_image_url, image["url"])

    def test_upload_without_listing_returns_reusable_image(self):
        headers = self._headers()
        res = self.client.post(
            "/api/marketplace/listings/upload-image",
            headers=headers,
            data={"file": (io.BytesIO(_jpeg_bytes()), "bike.jpg", "image/jpeg")},
            content_type="multipart/form-data",
        )
        self.assertEqual(res.status_code, 201)
        image = (res.get_json(force=True) or {}).get("image") or {}
        self.assertIsNone(image.get("id"))
        self.assertIn("/temp/", image.get("storagePath"))

        created = self._create(headers, images=[{"url": image["url"], "cardUrl": image["cardUrl"], "storagePath": image["storagePath"]}])
        listing = (created.get_json(force=True) or {}).get("listing") or {}
        with self.app.app_context():
            row = ProductImage.query.filter_by(product_id=listing["id"]).one()
            self.assertEqual(row.storage_path, image["storagePath"])
            self.assertIsNone(row.cloudinary_url)

    def test_upload_rejects_bad_files(self):
        headers = self._headers()
        gif = self.client.post(
            "/api/marketplace/listings/upload-image",
            headers=headers,
            data={"file": (io.BytesIO(b"GIF89a"), "bike.gif", "image/gif")},
            content_type="multipart/form-data",
        )
        self.assertEqual(gif.status_code, 400)
        fake = self.client.post(
            "/api/marketplace/listings/upload-image",
            headers=headers,
            data={"file": (io.BytesIO(b"not really a jpeg"), "bike.jpg", "image/jpeg")},
            content_type="multipart/form-data",
        )
        self.assertEqual((fake.get_json(force=True) or {}).get("error"), "File is not a valid image")
        missing = self.client.post(
            "/api/marketplace/listings/upload-image",
            headers=headers,
            data={},
            content_type="multipart/form-data",
        )
        self.assertEqual((missing.get_json(force=True) or {}).get("error"), "No file provided")


if __name__ == "__main__":
    unittest.main()
