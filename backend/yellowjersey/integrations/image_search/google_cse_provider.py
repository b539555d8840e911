from __future__ import annotations

import requests

from yellowjersey.integrations.image_search.base import ImageCandidate, ImageSearchProvider

CSE_URL = "https://www.googleapis.com/customsearch/v1"


class GoogleCseImageSearch(ImageSearchProvider):
    name = "google_cse"

    def __init__(self, api_key: str, cx: str):
        self.api_key = api_key
        self.cx = cx

    def search(self, query: str, *, limit: int = 10) -> list[ImageCandidate]:
        params = {
            "key": self.api_key,
            "cx": self.cx,
            "q": query,
            "searchType": "image",
            "imgSize": "large",
            "num": max(1, min(int(limit), 10)),
        }
        r = requests.get(CSE_URL, params=params, timeout=20)
        j = r.json() if r.content else {}
        if r.status_code < 200 or r.status_code >= 300:
            msg = ((j.get("error") or {}).get("message") or f"HTTP {r.status_code}").strip()
            raise RuntimeError(f"IMAGE_SEARCH_FAILED:{msg}")
        out = []
        for item in j.get("items") or []:
            link = (item.get("link") or "").strip()
            if not link.lower().startswith(("http://", "https://")):
                continue
            image = item.get("image") or {}
            out.append(
                ImageCandidate(
                    url=link,
                    width=int(image["width"]) if image.get("width") else None,
                    height=int(image["height"]) if image.get("height") else None,
                )
            )
        return out
