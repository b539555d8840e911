from __future__ import annotations

from dataclasses import dataclass


@dataclass
class ImageCandidate:
    url: str
    width: int | None = None
    height: int | None = None
    source: str = "discovery"


class ImageSearchProvider:
    name = "unknown"

    def search(self, query: str, *, limit: int = 10) -> list[ImageCandidate]:
        raise NotImplementedError
