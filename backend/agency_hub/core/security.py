from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from agency_hub.core.exceptions import AgencyApiError
from agency_hub.schemas.tenant import SessionUser
from agency_hub.services.agency_api import AgencyApiClient

bearer_scheme = HTTPBearer(auto_error=False)


def get_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> str:
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return credentials.credentials


def get_agency_client(token: str = Depends(get_bearer_token)) -> AgencyApiClient:
    """Upstream API client acting as the caller."""
    return AgencyApiClient(token)


async def get_current_user(client: AgencyApiClient = Depends(get_agency_client)) -> SessionUser:
    """Resolve the bearer token to a user and their agencies via /auth/me."""
    try:
        user = await client.get_session_user()
    except AgencyApiError as e:
        if e.is_authorization_error:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Could not validate credentials",
                headers={"WWW-Authenticate": "Bearer"},
            )
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=e.message)
    if not user.id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Could not validate credentials")
    return user
