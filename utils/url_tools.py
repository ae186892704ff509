from urllib.parse import urljoin


def ensure_trailing_slash(value: str) -> str:
    """Devuelve la URL terminada en '/', para usarla como base de urljoin."""
    trimmed = value.strip()
    if not trimmed.endswith("/"):
        trimmed += "/"
    return trimmed


def join_url(base_url: str, path: str) -> str:
    return urljoin(ensure_trailing_slash(base_url), path.lstrip("/"))
