# backend/livechat/api/auth.py
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import APIKeyHeader

from ..config import get_settings

api_key_header = APIKeyHeader(name="X-API-Key")


def admin_for_key(api_key: Optional[str]) -> Optional[str]:
    if not api_key:
        return None
    return get_settings().operator_keys.get(api_key)


def verify_operator(api_key: str = Depends(api_key_header)) -> str:
    """Returns the admin id the key belongs to."""
    admin_id = admin_for_key(api_key)
    if admin_id is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key"
        )
    return admin_id
