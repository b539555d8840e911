from __future__ import annotations

import re

from yellowjersey.integrations.image_search.base import ImageCandidate, ImageSearchProvider


class MockImageSearch(ImageSearchProvider):
    name = "mock"

    def search(self, query: str, *, limit: int = 10) -> list[ImageCandidate]:
        slug = re.sub(r"[^a-z0-9]+", "-", (query or "").lower()).strip("-") or "product"
        count = max(0, min(int(limit), 4))
        return [
            ImageCandidate(url=f"https://images.example.com/{slug}-{i + 1}.jpg", width=1200, height=800)
            for i in range(count)
        ]
