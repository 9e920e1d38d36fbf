"""Pagination envelope for Datto RMM collection endpoints.

Every collection response looks like::

    {
        "pageDetails": {"count": 250, "totalCount": 612,
                        "prevPageUrl": null,
                        "nextPageUrl": "https://.../api/v2/account/devices?max=250&page=1"},
        "devices": [ ... ]
    }

The next page is requested by repeating the same resource path with the
``page`` query parameter taken from ``nextPageUrl``.
"""
from dataclasses import dataclass, field
from typing import Any, Optional
from urllib.parse import parse_qs, urlsplit

from .exceptions import ResponseDecodeError

PAGE_DETAILS_KEY = "pageDetails"
NEXT_PAGE_KEY = "nextPageUrl"
CURSOR_PARAM = "page"


@dataclass(frozen=True)
class ResourceRequest:
    """One authenticated GET against ``{base_url}/api{resource_path}``."""
    base_url: str
    resource_path: str
    token: str = field(repr=False)

    @property
    def url(self) -> str:
        return f"{self.base_url}/api{self.resource_path}"

    @property
    def headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/json",
        }


def extract_page_cursor(next_page_url: str) -> str:
    """Return the ``page`` parameter of a ``nextPageUrl``.

    Raises:
        ResponseDecodeError: If the URL has no ``page`` parameter
    """
    query = parse_qs(urlsplit(next_page_url).query)
    values = query.get(CURSOR_PARAM)
    if not values or not values[0]:
        raise ResponseDecodeError(
            f"nextPageUrl has no '{CURSOR_PARAM}' parameter",
            details={"next_page_url": next_page_url},
        )
    return values[0]


@dataclass
class Page:
    """One decoded response of a paginated collection.

    Attributes:
        items: Records of the named collection, in server order
        next_page_url: Continuation URL, None on the last page
        page_details: The raw ``pageDetails`` object
        items_key: Name of the collection field the items came from
    """
    items: list[dict[str, Any]]
    next_page_url: Optional[str] = None
    page_details: dict[str, Any] = field(default_factory=dict)
    items_key: Optional[str] = None

    @property
    def has_next(self) -> bool:
        return bool(self.next_page_url)

    @property
    def cursor(self) -> Optional[str]:
        """The ``page`` value to request next, None on the last page."""
        if not self.next_page_url:
            return None
        return extract_page_cursor(self.next_page_url)

    @classmethod
    def from_response(
        cls,
        data: Any,
        items_key: Optional[str] = None,
        endpoint: Optional[str] = None,
    ) -> "Page":
        """Decode a collection response.

        Args:
            data: Parsed JSON body
            items_key: Collection field name (e.g. "devices"). When omitted the
                first list-valued field other than ``pageDetails`` is used.
            endpoint: Endpoint for error context

        Raises:
            ResponseDecodeError: If the body is not a JSON object or the named
                collection field is not a list
        """
        if not isinstance(data, dict):
            raise ResponseDecodeError(
                f"Expected a JSON object, got {type(data).__name__}",
                endpoint=endpoint,
            )

        page_details = data.get(PAGE_DETAILS_KEY) or {}
        if not isinstance(page_details, dict):
            raise ResponseDecodeError(f"'{PAGE_DETAILS_KEY}' is not an object", endpoint=endpoint)

        if items_key is None:
            items_key = next(
                (key for key, value in data.items()
                 if key != PAGE_DETAILS_KEY and isinstance(value, list)),
                None,
            )

        items = data.get(items_key) if items_key else None
        if items is None:
            items = []
        elif not isinstance(items, list):
            raise ResponseDecodeError(f"'{items_key}' is not a list", endpoint=endpoint)

        return cls(
            items=items,
            next_page_url=page_details.get(NEXT_PAGE_KEY) or None,
            page_details=page_details,
            items_key=items_key,
        )
