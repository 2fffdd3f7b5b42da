"""JWT verification for tokens issued by the external auth service."""
from datetime import timedelta
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from payments_server.core.config import get_settings
from payments_server.modules.common.clock import utcnow
from payments_server.schemas import TokenData

security = HTTPBearer()

CLIENT_ROLE = "client"
PROVIDER_ROLE = "provider"
ADMIN_ROLES = {"admin", "super_admin"}


def create_access_token(account_id: str, role: str, expires_delta: Optional[timedelta] = None) -> str:
    """Mint a token the way the auth service does; used by tooling and tests."""
    settings = get_settings()
    expire_delta = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    payload = {
        "sub": account_id,
        "role": role,
        "exp": utcnow() + expire_delta,
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str) -> TokenData:
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Could not validate credentials") from exc

    account_id = payload.get("sub")
    role = payload.get("role")
    if not account_id or not role:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Could not validate credentials")
    return TokenData(account_id=account_id, role=role)


async def get_current_principal(credentials: HTTPAuthorizationCredentials = Depends(security)) -> TokenData:
    return decode_access_token(credentials.credentials)


async def require_admin(principal: TokenData = Depends(get_current_principal)) -> TokenData:
    if principal.role not in ADMIN_ROLES:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin privileges required")
    return principal


async def require_client(principal: TokenData = Depends(get_current_principal)) -> TokenData:
    if principal.role != CLIENT_ROLE:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Client account required")
    return principal


async def require_provider(principal: TokenData = Depends(get_current_principal)) -> TokenData:
    if principal.role != PROVIDER_ROLE:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Provider account required")
    return principal
