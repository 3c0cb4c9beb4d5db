"""MediaWiki image lookup client.

Queries the wiki's `imageinfo` API for a single file title and extracts the
first image URL from:

    {"query": {"pages": {"<page id>": {"imageinfo": [{"url": "..."}]}}}}
"""

from typing import Any, Dict, Optional
import httpx

from core.config import Settings
from core.logging import get_logger

logger = get_logger(__name__)


class RemoteLookupError(Exception):
    """A single candidate lookup failed (transport, status or body)."""


def extract_image_url(data: Any) -> Optional[str]:
    """Walk the response chain; any missing level means not found."""
    if not isinstance(data, dict):
        return None
    query = data.get("query")
    if not isinstance(query, dict):
        return None
    pages = query.get("pages")
    if not isinstance(pages, dict) or not pages:
        return None
    page = next(iter(pages.values()))
    if not isinstance(page, dict):
        return None
    imageinfo = page.get("imageinfo")
    if not isinstance(imageinfo, list) or not imageinfo:
        return None
    first = imageinfo[0]
    if not isinstance(first, dict):
        return None
    url = first.get("url")
    return url if isinstance(url, str) and url else None


class WikiImageClient:
    """Looks up wiki file titles. Timeouts and retries belong to the transport."""

    def __init__(self, client: httpx.AsyncClient, settings: Settings):
        self.client = client
        self.api_url = settings.wiki_api_url

    def build_params(self, filename: str) -> Dict[str, str]:
        return {
            "action": "query",
            "titles": f"File:{filename}",
            "prop": "imageinfo",
            "iiprop": "url",
            "format": "json",
            "origin": "*",
        }

    async def lookup(self, filename: str) -> Optional[str]:
        """Return the image URL for `filename`, or None if the wiki has none.

        Raises:
            RemoteLookupError: on network errors, non-2xx responses or
                bodies that are not JSON.
        """
        try:
            response = await self.client.get(self.api_url, params=self.build_params(filename))
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            raise RemoteLookupError(f"{filename}: {e}") from e
        except ValueError as e:
            raise RemoteLookupError(f"{filename}: invalid JSON response") from e

        return extract_image_url(data)


def create_http_client(settings: Settings) -> httpx.AsyncClient:
    """Shared client for wiki lookups; no timeout unless configured."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.wiki_timeout),
        follow_redirects=True,
    )
