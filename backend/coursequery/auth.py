import hmac
from typing import Optional

from fastapi import Depends, Header

from .config import Settings, get_settings
from .errors import AuthError


def require_api_key(
    x_api_key: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings),
) -> None:
    """Reject the request unless x-api-key equals the configured key. No key configured rejects everything."""
    if not settings.api_key or x_api_key is None:
        raise AuthError("missing API key")
    if not hmac.compare_digest(x_api_key.encode("utf-8"), settings.api_key.encode("utf-8")):
        raise AuthError("API key mismatch")
