"""Dependencies for FastAPI routes."""
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from app.config import settings
from app.database import get_db
from app.services.plan_store import PlanStore
from functools import lru_cache
import jwt
from jwt import PyJWKClient
import logging

logger = logging.getLogger(__name__)

# HTTP Bearer token security
security = HTTPBearer()


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


@lru_cache(maxsize=4)
def _jwks_client(auth0_domain: str) -> PyJWKClient:
    """JWKS client per tenant; PyJWKClient caches the signing keys itself."""
    return PyJWKClient(f"https://{auth0_domain}/.well-known/jwks.json")


def verify_auth0_token(token: str) -> dict:
    """
    Validate an Auth0 JWT token and return user info.

    Args:
        token: JWT token from Auth0

    Returns:
        dict with user information (id, email, name)

    Raises:
        HTTPException: If token is invalid
    """
    auth0_domain = settings.auth0_domain
    if not auth0_domain:
        logger.warning("Auth0 domain not configured, rejecting request")
        raise _unauthorized("Auth0 not configured on server")

    try:
        signing_key = _jwks_client(auth0_domain).get_signing_key_from_jwt(token)

        payload = jwt.decode(
            token,
            signing_key.key,
            algorithms=["RS256"],
            audience=settings.auth0_audience,
            issuer=f"https://{auth0_domain}/",
        )
    except jwt.ExpiredSignatureError:
        logger.warning("Token has expired")
        raise _unauthorized("Token has expired")
    except jwt.PyJWTError as e:
        logger.warning(f"Invalid token: {str(e)}")
        raise _unauthorized("Invalid authentication credentials")

    user_id = payload.get("sub")
    if not user_id:
        raise _unauthorized("Token has no subject")

    return {
        "id": user_id,
        "email": payload.get("email") or payload.get(f"https://{auth0_domain}/email"),
        "name": payload.get("name") or payload.get(f"https://{auth0_domain}/name"),
    }


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> dict:
    """
    Verify JWT token and return current user.
    """
    return verify_auth0_token(credentials.credentials)


def get_plan_store(db: Session = Depends(get_db)) -> PlanStore:
    """Plan store bound to the request's DB session."""
    return PlanStore(db)
