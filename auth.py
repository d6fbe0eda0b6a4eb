# linkkeeper/auth.py
import hmac
import logging
import os
from dataclasses import dataclass
from typing import Optional

from fastapi import Request
from jose import JWTError, jwt
from jose.exceptions import ExpiredSignatureError

from errors import Forbidden, LinkKeeperError, Unauthorized

logger = logging.getLogger(__name__)

API_KEY_HEADER = "x-api-key"


@dataclass
class Principal:
    kind: str  # "api_key" | "jwt"
    id: Optional[str] = None
    email: Optional[str] = None
    name: Optional[str] = None


def _allowed_emails():
    raw = os.environ.get("ALLOWED_EMAILS", "")
    return [email.strip() for email in raw.split(",") if email.strip()]


def _jwt_settings():
    secret = os.environ.get("JWT_SECRET")
    if not secret:
        logger.error("JWT_SECRET environment variable is not set")
        raise LinkKeeperError("JWT authentication is not properly configured")
    return secret, os.environ.get("JWT_ALGORITHM", "HS256")


def validate_api_key(request: Request) -> Optional[Principal]:
    """Bot credential: a pre-shared key in the X-API-Key header."""
    provided = request.headers.get(API_KEY_HEADER)
    if provided is None:
        return None

    expected = os.environ.get("INTERNAL_API_KEY")
    if not expected:
        logger.error("INTERNAL_API_KEY environment variable is not set")
        raise LinkKeeperError("API key validation is not properly configured")

    if not provided:
        raise Unauthorized("API key is required.")
    if not hmac.compare_digest(provided.encode(), expected.encode()):
        logger.warning(f"Invalid API key in request to {request.url.path}")
        raise Unauthorized("Invalid API key provided.")

    return Principal(kind="api_key")


def validate_jwt(request: Request) -> Optional[Principal]:
    """Frontend credential: a signed token in Authorization: Bearer."""
    header = request.headers.get("authorization", "")
    if not header.startswith("Bearer "):
        return None

    token = header[len("Bearer "):].strip()
    if not token:
        raise Unauthorized("JWT token cannot be empty.")

    secret, algorithm = _jwt_settings()
    try:
        payload = jwt.decode(token, secret, algorithms=[algorithm])
    except ExpiredSignatureError:
        logger.warning(f"Expired JWT token in request to {request.url.path}")
        raise Unauthorized("Your session has expired. Please login again.")
    except JWTError:
        logger.warning(f"Invalid JWT token in request to {request.url.path}")
        raise Unauthorized("Invalid authentication token provided.")

    email = payload.get("email")
    allowed = _allowed_emails()
    if allowed and email not in allowed:
        logger.warning(f"Unauthorized user attempted access: {email}")
        raise Forbidden("Your account is not authorized to access this application.")

    return Principal(kind="jwt", id=payload.get("id"), email=email, name=payload.get("name"))


# 依序嘗試，第一個認得憑證格式的 validator 決定結果
VALIDATORS = (validate_api_key, validate_jwt)


async def require_auth(request: Request) -> Principal:
    for validator in VALIDATORS:
        principal = validator(request)
        if principal is not None:
            logger.info(f"Authenticated request to {request.url.path} via {principal.kind}")
            return principal

    logger.warning(f"No authentication method provided for {request.url.path}")
    raise Unauthorized(
        "Authentication required. Provide either API key (X-API-Key header) "
        "or JWT token (Authorization: Bearer header)."
    )
