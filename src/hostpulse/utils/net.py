"""URL and token helpers."""


def normalize_url(url: str) -> str:
    """Strip a single trailing slash."""
    if url.endswith("/"):
        return url[:-1]
    return url


def mask_token(token: str) -> str:
    """Show only the first and last 4 characters of a token."""
    if len(token) <= 8:
        return token
    return f"{token[:4]}...{token[-4:]}"
