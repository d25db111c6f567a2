"""URL helpers for hypermedia link traversal."""

from urllib.parse import urljoin, urlsplit


def resolve_link_href(href: str, base_url: str | None) -> str:
    """Resolve a link ``href`` against the URL of the response that carried it.

    Absolute hrefs and hrefs without a usable base are returned unchanged.
    """
    if base_url is None or urlsplit(href).scheme:
        return href
    base = urlsplit(base_url)
    if not base.scheme or not base.netloc:
        return href
    return urljoin(base_url, href)
