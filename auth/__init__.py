"""Authentication module using password login and signed bearer tokens.

This module provides:
1. Login against stored password hashes
2. JWT session tokens carrying the user id
3. FastAPI dependencies for protecting routes by role capability
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any

from fastapi import HTTPException, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError, ExpiredSignatureError

from config import settings_conf
from users import (
    UserManager, UserNotFoundError, InvalidCredentialsError,
    Capability, has_capability
)

# Configure logging
logger = logging.getLogger(__name__)

# Constants
JWT_ALGORITHM = "HS256"

class AuthError(Exception):
    """Base exception for authentication errors."""
    pass

class SessionExpiredError(AuthError):
    """Raised when a session token has expired."""
    pass

class AuthManager:
    """Issues and verifies session tokens."""

    def __init__(
        self,
        users: Optional[UserManager] = None,
        secret: Optional[str] = None,
        expiry_hours: Optional[int] = None
    ):
        """Initialize auth manager.

        Args:
            users: Optional user manager. A pool-backed one is created if not provided.
            secret: Token signing secret, defaults to the configured jwt_secret
            expiry_hours: Token lifetime, defaults to session_expiry_hours
        """
        self.users = users or UserManager()
        self.secret = secret or settings_conf['jwt_secret']
        self.expiry_hours = expiry_hours or settings_conf['session_expiry_hours']

    def issue_token(self, user: Dict[str, Any]) -> Dict[str, Any]:
        """Create a signed session token for a user.

        Returns:
            Dict containing:
                - token: Bearer token for future requests
                - expires_at: Token expiration timestamp
        """
        expires_at = datetime.now(timezone.utc) + timedelta(hours=self.expiry_hours)
        token = jwt.encode(
            {
                'sub': str(user['id']),
                'role': user['role'],
                'exp': int(expires_at.timestamp())
            },
            self.secret,
            algorithm=JWT_ALGORITHM
        )
        return {
            'token': token,
            'expires_at': expires_at.isoformat()
        }

    async def login(self, username: str, password: str) -> Dict[str, Any]:
        """Verify credentials and create a session token.

        Raises:
            AuthError: If the credentials are invalid
        """
        try:
            user = await self.users.authenticate(username, password)
        except InvalidCredentialsError as e:
            raise AuthError(str(e))

        logger.info(f"User {user['id']} logged in")
        result = self.issue_token(user)
        result['user'] = user
        return result

    async def verify_session(self, token: str) -> Dict[str, Any]:
        """Verify a session token and load its user.

        Args:
            token: The session token to verify

        Returns:
            The authenticated user, with the role currently stored for it

        Raises:
            SessionExpiredError: If the token has expired
            AuthError: For other verification errors
        """
        try:
            payload = jwt.decode(token, self.secret, algorithms=[JWT_ALGORITHM])
            user_id = int(payload['sub'])
        except ExpiredSignatureError:
            raise SessionExpiredError("Session has expired")
        except (JWTError, KeyError, ValueError) as e:
            raise AuthError(f"Invalid token: {str(e)}")

        try:
            return await self.users.get_user(user_id)
        except UserNotFoundError:
            raise AuthError("Session user no longer exists")

# Create global instance
manager = AuthManager()

# FastAPI security scheme; a missing header is reported as 401 below
auth_scheme = HTTPBearer(
    auto_error=False,
    description="JWT Bearer token required"
)

async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(auth_scheme)
) -> Dict[str, Any]:
    """FastAPI dependency for getting the authenticated user.

    Raises:
        HTTPException: 401 if authentication fails
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"}
        )
    try:
        return await manager.verify_session(credentials.credentials)
    except SessionExpiredError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session has expired",
            headers={"WWW-Authenticate": "Bearer"}
        )
    except AuthError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"}
        )

def require_capability(capability: Capability):
    """Build a dependency that admits only users whose role grants a capability."""
    async def dependency(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
        if not has_capability(user['role'], capability):
            logger.warning(f"User {user['id']} ({user['role']}) denied {capability.value}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Not authorized"
            )
        return user
    return dependency

# Export public interface
__all__ = [
    'AuthManager',
    'manager',
    'auth_scheme',
    'get_current_user',
    'require_capability',
    'AuthError',
    'SessionExpiredError'
]
