from urllib.parse import urlparse

from media_fetcher.config.settings import config


def safe_url_for_log(url: str) -> str:
    """Safe URL for logging (query strings often carry tokens)"""
    try:
        parsed = urlparse(url)
    except ValueError:
        return "invalid_url"

    base_url = f"{parsed.scheme}://{parsed.netloc}{parsed.path}"
    if config.logging.level == "DEBUG" and parsed.query:
        return f"{base_url}?..."
    return base_url
