"""Helpers for building namespaced rate limit keys."""


def scoped_key(prefix: str, key: str, separator: str = ":") -> str:
    """
    Namespace ``key`` under ``prefix``.

    An empty prefix leaves the key untouched.

    Example:
        >>> scoped_key("login", "ip:10.0.0.1")
        'login:ip:10.0.0.1'
    """
    if not prefix:
        return key
    return f"{prefix}{separator}{key}"


def client_key(api_key: str | None, host: str | None) -> str:
    """Identify a caller by API key when present, else by remote host."""
    if api_key:
        return f"api:{api_key}"
    return f"ip:{host or 'unknown'}"
