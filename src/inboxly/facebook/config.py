"""Graph API settings for the Messenger history sync.

All values come from the environment and are read at call time, so tests can
override them with patch.dict(os.environ, ...).

Env vars (defaults in brackets):
- FACEBOOK_GRAPH_BASE_URL [https://graph.facebook.com]
- FACEBOOK_GRAPH_API_VERSION [v18.0]
- FACEBOOK_SYNC_MAX_PAGES [3]
- FACEBOOK_SYNC_PAGE_SIZE [50]
- FACEBOOK_SYNC_TIMEOUT_SECONDS [30]
- FACEBOOK_ATTACHMENT_TIMEOUT_SECONDS [5]
"""

from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_GRAPH_BASE_URL = "https://graph.facebook.com"
DEFAULT_GRAPH_API_VERSION = "v18.0"
DEFAULT_MAX_PAGES = 3
DEFAULT_PAGE_SIZE = 50
DEFAULT_LIST_TIMEOUT = 30.0
DEFAULT_ATTACHMENT_TIMEOUT = 5.0


def _positive_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "")
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def _positive_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "")
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value > 0 else default


@dataclass(frozen=True)
class GraphApiConfig:
    """Resolved Graph API settings."""

    base_url: str = DEFAULT_GRAPH_BASE_URL
    api_version: str = DEFAULT_GRAPH_API_VERSION
    max_pages: int = DEFAULT_MAX_PAGES
    page_size: int = DEFAULT_PAGE_SIZE
    list_timeout: float = DEFAULT_LIST_TIMEOUT
    attachment_timeout: float = DEFAULT_ATTACHMENT_TIMEOUT

    @property
    def root_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/{self.api_version}"

    @classmethod
    def from_env(cls) -> GraphApiConfig:
        return cls(
            base_url=os.environ.get("FACEBOOK_GRAPH_BASE_URL") or DEFAULT_GRAPH_BASE_URL,
            api_version=os.environ.get("FACEBOOK_GRAPH_API_VERSION") or DEFAULT_GRAPH_API_VERSION,
            max_pages=_positive_int("FACEBOOK_SYNC_MAX_PAGES", DEFAULT_MAX_PAGES),
            page_size=_positive_int("FACEBOOK_SYNC_PAGE_SIZE", DEFAULT_PAGE_SIZE),
            list_timeout=_positive_float("FACEBOOK_SYNC_TIMEOUT_SECONDS", DEFAULT_LIST_TIMEOUT),
            attachment_timeout=_positive_float(
                "FACEBOOK_ATTACHMENT_TIMEOUT_SECONDS", DEFAULT_ATTACHMENT_TIMEOUT
            ),
        )
