"""Auth dependencies for FastAPI routes."""

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from docbridge.core.config import get_settings


bearer_scheme = HTTPBearer(auto_error=False)


def require_service_token(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
) -> None:
    """Checks the shared bearer token; a no-op when `service_api_token` is unset."""
    settings = get_settings()
    if not settings.service_api_token:
        return
    token: str | None = None
    if credentials is not None and credentials.scheme.lower() == "bearer":
        token = credentials.credentials
    else:
        # EventSource cannot set headers, so the push stream passes the token in the query.
        token = request.query_params.get("access_token") or request.query_params.get("token")
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="AUTHORIZATION_REQUIRED")
    if token != settings.service_api_token:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="INVALID_TOKEN")
