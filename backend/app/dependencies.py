"""Request dependencies shared by the routers."""

import secrets

from fastapi import Header, HTTPException, status

from config import get_settings
from db.connection import get_db as get_db  # noqa: F401  re-exported for routes


def get_api_key(x_api_key: str = Header(default="")) -> str:
    """Guard for ledger-mutating endpoints. Open when PAYOUTS_API_KEY is unset."""
    expected = get_settings().api_key
    if expected and not secrets.compare_digest(x_api_key.encode(), expected.encode()):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, detail="Invalid or missing API key")
    return x_api_key
