from datetime import timedelta
from typing import Any, Dict, List, Optional

import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from hopelink.core.config import settings
from hopelink.core.timeutil import utcnow
from hopelink.deps import get_repo

bearer_scheme = HTTPBearer(auto_error=False)


def create_token(payload: Dict[str, Any], minutes: Optional[int] = None) -> str:
    payload = dict(payload)
    payload["exp"] = utcnow() + timedelta(minutes=minutes or settings.access_ttl_min)
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_alg)

def decode_token(token: str) -> Dict[str, Any]:
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_alg])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")

async def get_current_user(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    repo=Depends(get_repo),
):
    if creds is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    data = decode_token(creds.credentials)
    user = await repo.get_user(data.get("sub", ""))
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return user

def require_roles(required: List[str]):
    async def checker(user=Depends(get_current_user)):
        roles = set(user.get("roles") or [user.get("role")])
        if not roles & set(required):
            raise HTTPException(status_code=403, detail="Not enough permissions")
        return user
    return checker
