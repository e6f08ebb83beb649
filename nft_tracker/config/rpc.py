from urllib.parse import urlsplit


def redacted(url: str) -> str:
    """Log-safe form of an RPC endpoint; providers embed API keys in path or query."""
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        return "***REDACTED***"
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    base = f"{parts.scheme}://{host}"
    if parts.path.strip("/"):
        base = f"{base}/***"
    if parts.query:
        base = f"{base}?***REDACTED***"
    return base
