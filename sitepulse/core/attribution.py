"""UTM attribution from the landing URL's query string."""

from urllib.parse import parse_qs

UTM_KEYS = ("utm_source", "utm_medium", "utm_campaign", "utm_term", "utm_content")


def extract_utm_params(query_string: str | None) -> dict[str, str | None]:
    """Return all five UTM fields; absent or blank parameters map to None."""
    params = parse_qs((query_string or "").lstrip("?"))
    result: dict[str, str | None] = {}
    for key in UTM_KEYS:
        values = params.get(key)
        result[key] = values[0].strip() or None if values else None
    return result
