"""
Request URL construction for the Riksdag open-data endpoints.

Pure string work, no I/O. The endpoints disagree on the name of the page-size
parameter and carry empty date-range placeholders in their base templates, so
both are driven by the ResourceConfig for the resource type.
"""
from typing import Dict, List, Optional, Tuple
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from riksdag.config import SyncConfig, UnknownResourceTypeError

__all__ = ["UnknownResourceTypeError", "build_url", "page_number"]


def page_number(offset: int, batch_size: int) -> Optional[int]:
    """1-based page for an offset, or None for the first page."""
    if offset <= 0:
        return None
    return offset // batch_size + 1


def build_url(
    resource_type,
    filters: Optional[Dict[str, object]],
    offset: int,
    batch_size: int,
    config: SyncConfig,
) -> str:
    """
    Build the GET URL for one batch of a resource type.

    Args:
        resource_type: ResourceType or its string value.
        filters: Extra query parameters. Keys listed in the resource's
            date_filter_keys replace their template placeholder in place;
            everything else is appended. None/empty values are ignored.
        offset: Records already consumed; turned into a page number.
        batch_size: Requested page size (must be >= 1).
        config: SyncConfig holding the resource table.

    Returns:
        Fully encoded URL string.

    Raises:
        UnknownResourceTypeError: resource_type is not configured.
        ValueError: batch_size < 1 or offset < 0.
    """
    resource = config.resource(resource_type)
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1, got {batch_size}")
    if offset < 0:
        raise ValueError(f"offset must be >= 0, got {offset}")

    parts = urlsplit(resource.url_template)
    params: List[Tuple[str, str]] = parse_qsl(parts.query, keep_blank_values=True)

    params.append((resource.batch_param, str(batch_size)))
    page = page_number(offset, batch_size)
    if page is not None:
        params.append(("p", str(page)))

    for key, value in (filters or {}).items():
        if value is None or value == "":
            continue
        value = str(value)
        if key in resource.date_filter_keys:
            params = _replace_param(params, key, value)
        else:
            params.append((key, value))

    return urlunsplit(
        (parts.scheme, parts.netloc, parts.path, urlencode(params), parts.fragment)
    )


def _replace_param(
    params: List[Tuple[str, str]], key: str, value: str
) -> List[Tuple[str, str]]:
    """Overwrite the first occurrence of key, or append if the template lacks it."""
    replaced = False
    out = []
    for k, v in params:
        if k == key and not replaced:
            out.append((k, value))
            replaced = True
        else:
            out.append((k, v))
    if not replaced:
        out.append((key, value))
    return out