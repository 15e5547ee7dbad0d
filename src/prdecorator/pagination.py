"""Link-header driven traversal of paginated REST listings.

Every platform client enumerates listings through this module: GitHub App
installations and their repositories, GitHub issue comments, and GitLab
merge-request discussions. Pages are fetched one at a time and traversal stops
as soon as a match is found.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Callable, Iterator, List, Mapping, Optional, TypeVar

from .errors import ApiError
from .rest import RestClient

logger = logging.getLogger(__name__)

R = TypeVar("R")

_BRACKETED_URL = re.compile(r"^<([^<>]*)>$")


def find_next_link(link_header: Optional[str]) -> Optional[str]:
    """Return the ``rel="next"`` URL of a ``Link`` header, if any.

    Accepts both quoted and unquoted ``rel`` values, treats the ``rel``
    parameter name case-insensitively and ignores entries with any other
    relation. Entries whose URL is not wrapped in ``<...>`` are skipped.
    """
    if not link_header:
        return None

    for entry in link_header.split(","):
        parts = entry.split(";")
        if len(parts) < 2:
            continue

        url_match = _BRACKETED_URL.match(parts[0].strip())
        if url_match is None:
            continue

        for parameter in parts[1:]:
            name, separator, value = parameter.strip().partition("=")
            if not separator or name.strip().lower() != "rel":
                continue
            if value.strip().lower() in ("next", '"next"'):
                return url_match.group(1)

    return None


def _as_list(body: Any) -> List[Any]:
    if isinstance(body, list):
        return body
    raise ApiError(f"Expected a JSON array page but received {type(body).__name__}.")


class PageTraverser:
    """Follows ``Link: <...>; rel="next"`` headers across listing pages."""

    DEFAULT_MAX_PAGES = 100

    def __init__(self, client: RestClient, max_pages: int = DEFAULT_MAX_PAGES) -> None:
        self._client = client
        self._max_pages = max_pages

    def iter_items(
        self,
        start_url: str,
        items: Callable[[Any], List[Any]] = _as_list,
        headers: Optional[Mapping[str, str]] = None,
        params: Optional[Mapping[str, Any]] = None,
    ) -> Iterator[Any]:
        """Yield every element of every page, fetching pages lazily.

        Raises:
            ApiError: On any failed page request, or when more than
                ``max_pages`` pages are chained together.
        """
        url: Optional[str] = start_url
        page_params = dict(params) if params else None
        pages = 0

        while url is not None:
            if pages >= self._max_pages:
                raise ApiError(
                    f"Pagination exceeded {self._max_pages} pages starting from {start_url}",
                    method="GET",
                    url=start_url,
                )
            pages += 1

            response = self._client.request("GET", url, params=page_params, headers=headers)
            try:
                body = response.json()
            except ValueError as exc:
                raise ApiError(f"API returned invalid JSON: GET {url}", method="GET", url=url) from exc

            yield from items(body)

            url = find_next_link(response.headers.get("Link"))
            # the next link already carries the query string
            page_params = None

        logger.debug("Finished paginated listing", extra={"start_url": start_url, "pages": pages})

    def traverse(
        self,
        start_url: str,
        matcher: Callable[[Any], Optional[R]],
        items: Callable[[Any], List[Any]] = _as_list,
        headers: Optional[Mapping[str, str]] = None,
        params: Optional[Mapping[str, Any]] = None,
    ) -> Optional[R]:
        """Return the first non-``None`` ``matcher`` result across all pages.

        No page after the one containing the match is requested.
        """
        for element in self.iter_items(start_url, items=items, headers=headers, params=params):
            match = matcher(element)
            if match is not None:
                return match
        return None
