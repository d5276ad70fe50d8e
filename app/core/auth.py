from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.security import owner_from_token

security = HTTPBearer()


async def get_current_owner(credentials: HTTPAuthorizationCredentials = Depends(security)) -> str:
    """Зависимость для получения владельца холста из токена"""
    owner_id = owner_from_token(credentials.credentials)
    if not owner_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return owner_id
