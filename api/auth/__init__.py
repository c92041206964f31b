"""Authentication API endpoints."""

from datetime import datetime
from typing import Optional, Dict, Any

from fastapi import APIRouter, Depends, HTTPException, status, Security
from pydantic import BaseModel

from auth import manager, get_current_user, AuthError
from users import UserManager, UsernameTakenError, Role
from validation import InvalidArgumentError
from ..deps import get_users
from ..errors import bad_request, server_error

router = APIRouter(
    prefix="/auth",
    tags=["Authentication"]
)

class RegisterRequest(BaseModel):
    """Request model for creating an account."""
    username: str
    password: str
    email: Optional[str] = None
    phone: Optional[str] = None

class LoginRequest(BaseModel):
    """Request model for logging in."""
    username: str
    password: str

class UserResponse(BaseModel):
    """Public view of a user."""
    id: int
    username: str
    email: Optional[str] = None
    phone: Optional[str] = None
    role: Role
    created_at: Optional[datetime] = None

class LoginResponse(BaseModel):
    """Response model for login and registration."""
    token: str
    expires_at: str
    user: UserResponse

@router.post("/register", response_model=LoginResponse, status_code=status.HTTP_201_CREATED)
async def register(request: RegisterRequest, users: UserManager = Depends(get_users)):
    """Create a customer account and log it in."""
    try:
        user = await users.create_user(
            request.username,
            request.password,
            email=request.email,
            phone=request.phone
        )
        result = manager.issue_token(user)
        result['user'] = user
        return result
    except UsernameTakenError as e:
        raise bad_request(str(e))
    except InvalidArgumentError as e:
        raise bad_request(str(e))
    except Exception:
        raise server_error("register user")

@router.post("/login", response_model=LoginResponse)
async def login(request: LoginRequest):
    """Verify a username and password and create a session token."""
    try:
        return await manager.login(request.username, request.password)
    except AuthError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e)
        )
    except Exception:
        raise server_error("log in")

@router.get("/me", response_model=UserResponse)
async def me(user: Dict[str, Any] = Security(get_current_user)):
    """Get the authenticated user."""
    return user

# Export the router
__all__ = ['router', 'UserResponse']
