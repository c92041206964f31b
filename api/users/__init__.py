"""User management API endpoints."""

from typing import Optional, List, Dict, Any

from fastapi import APIRouter, Depends, Query, Response, status, Security
from pydantic import BaseModel

from auth import get_current_user, require_capability
from users import (
    UserManager, UserNotFoundError, UsernameTakenError, UserInUseError, Role, Capability
)
from validation import InvalidArgumentError
from ..auth import UserResponse
from ..deps import get_users
from ..errors import bad_request, not_found, server_error

router = APIRouter(
    prefix="/users",
    tags=["Users"]
)

user_admin = require_capability(Capability.MANAGE_USERS)

class UpdateProfileRequest(BaseModel):
    """Request model for updating the current user. Omitted fields are unchanged."""
    username: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None

class SetRoleRequest(BaseModel):
    """Request model for changing the role of a user."""
    role: Role

""" Self Service Endpoints """
@router.put("/me", response_model=UserResponse)
async def update_me(
    request: UpdateProfileRequest,
    users: UserManager = Depends(get_users),
    user: Dict[str, Any] = Security(get_current_user)
):
    """Update the username, phone or email of the current user."""
    try:
        return await users.update_profile(
            user['id'],
            username=request.username,
            phone=request.phone,
            email=request.email
        )
    except InvalidArgumentError as e:
        raise bad_request(str(e))
    except UsernameTakenError as e:
        raise bad_request(str(e))
    except UserNotFoundError:
        raise not_found("User not found")
    except Exception:
        raise server_error(f"update user {user['id']}")

""" Admin Endpoints """
@router.get("", response_model=List[UserResponse])
async def list_users(
    role: Optional[Role] = Query(None),
    users: UserManager = Depends(get_users),
    admin: Dict[str, Any] = Security(user_admin)
):
    """List users, optionally only those with one role."""
    try:
        return await users.list_users(role)
    except Exception:
        raise server_error("list users")

@router.get("/{user_id}/details")
async def get_user_details(
    user_id: int,
    users: UserManager = Depends(get_users),
    admin: Dict[str, Any] = Security(user_admin)
):
    """Get a user with wishlist, cart and order counts."""
    try:
        return await users.get_user_details(user_id)
    except InvalidArgumentError as e:
        raise bad_request(str(e))
    except UserNotFoundError:
        raise not_found("User not found")
    except Exception:
        raise server_error(f"get details of user {user_id}")

@router.put("/{user_id}/role", response_model=UserResponse)
async def set_user_role(
    user_id: int,
    request: SetRoleRequest,
    users: UserManager = Depends(get_users),
    admin: Dict[str, Any] = Security(user_admin)
):
    """Give a user the customer, admin or middleman role."""
    if user_id == admin['id'] and request.role != Role.ADMIN:
        raise bad_request("Admins cannot remove their own admin role")
    try:
        return await users.set_role(user_id, request.role)
    except InvalidArgumentError as e:
        raise bad_request(str(e))
    except UserNotFoundError:
        raise not_found("User not found")
    except Exception:
        raise server_error(f"set role of user {user_id}")

@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: int,
    users: UserManager = Depends(get_users),
    admin: Dict[str, Any] = Security(user_admin)
):
    """Delete a user."""
    if user_id == admin['id']:
        raise bad_request("Admins cannot delete themselves")
    try:
        deleted = await users.delete_user(user_id)
    except InvalidArgumentError as e:
        raise bad_request(str(e))
    except UserInUseError as e:
        raise bad_request(str(e))
    except Exception:
        raise server_error(f"delete user {user_id}")

    if not deleted:
        raise not_found("User not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)

__all__ = ['router']
