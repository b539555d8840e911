from __future__ import annotations

import os

from yellowjersey.integrations.common import IntegrationDisabledError, IntegrationMisconfiguredError
from yellowjersey.integrations.image_search.base import ImageSearchProvider
from yellowjersey.integrations.image_search.google_cse_provider import GoogleCseImageSearch
from yellowjersey.integrations.image_search.mock_provider import MockImageSearch


def build_image_search_provider() -> ImageSearchProvider:
    provider = (os.getenv("IMAGE_SEARCH_PROVIDER") or "mock").strip().lower()
    if provider == "disabled":
        raise IntegrationDisabledError("INTEGRATION_DISABLED:image_search")
    if provider == "mock":
        return MockImageSearch()
    if provider != "google_cse":
        raise IntegrationMisconfiguredError(f"INTEGRATION_MISCONFIGURED:image_search_provider={provider}")
    api_key = (os.getenv("GOOGLE_CSE_KEY") or "").strip()
    cx = (os.getenv("GOOGLE_CSE_CX") or "").strip()
    if not api_key or not cx:
        raise IntegrationMisconfiguredError("INTEGRATION_MISCONFIGURED:missing GOOGLE_CSE_KEY or GOOGLE_CSE_CX")
    return GoogleCseImageSearch(api_key=api_key, cx=cx)
