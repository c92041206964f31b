"""Users module for managing storefront accounts and roles.

This module provides functionality for:
- Creating accounts and verifying passwords
- Looking up and updating users
- Assigning one of the fixed roles (customer, admin, middleman)
- Per-user activity counts for the back office
"""

import logging
from typing import Dict, List, Optional, Any

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHash, VerificationError, VerifyMismatchError
from asyncpg.exceptions import ForeignKeyViolationError, UniqueViolationError

from database import get_pool
from validation import InvalidArgumentError, require_positive_id
from .roles import Role, Capability, ROLE_CAPABILITIES, capabilities_for, has_capability

logger = logging.getLogger(__name__)

PASSWORD_MIN_LENGTH = 6

# Columns returned to callers; the password hash never leaves this module
USER_COLUMNS = 'id, username, email, phone, role, created_at'

class UserError(Exception):
    """Base exception for user operations."""
    pass

class UserNotFoundError(UserError):
    """Raised when a user is not found."""
    pass

class UsernameTakenError(UserError):
    """Raised when registering a username that already exists."""
    pass

class InvalidCredentialsError(UserError):
    """Raised when a username / password pair does not match."""
    pass

class UserInUseError(UserError):
    """Raised when deleting a user that orders still reference."""
    pass

# Argon2id with the library's default cost parameters
_hasher = PasswordHasher()

def hash_password(password: str) -> str:
    """Hash a password with Argon2id."""
    return _hasher.hash(password)

def verify_password(password: str, stored: str) -> bool:
    """Check a password against a hash produced by hash_password."""
    try:
        return _hasher.verify(stored, password)
    except (VerifyMismatchError, VerificationError, InvalidHash):
        return False

def _user_to_dict(row) -> Dict[str, Any]:
    user = dict(row)
    user.pop('password', None)
    return user

class UserManager:
    """Manager class for handling user operations."""

    def __init__(self, pool=None):
        """Initialize the user manager.

        Args:
            pool: Optional database pool. If not provided, will get from database module.
        """
        self.pool = pool

    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    async def create_user(
        self,
        username: str,
        password: str,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        role: Role = Role.CUSTOMER
    ) -> Dict[str, Any]:
        """Create a new user account.

        Args:
            username: Unique login name
            password: Plain-text password, stored hashed
            email: Optional email address
            phone: Optional phone number
            role: Role of the new account

        Returns:
            Dict containing the created user (without password)

        Raises:
            InvalidArgumentError: If username or password is unusable
            UsernameTakenError: If the username already exists
        """
        await self.ensure_pool()

        username = (username or '').strip()
        if not username:
            raise InvalidArgumentError('username', 'must not be empty')
        if len(password or '') < PASSWORD_MIN_LENGTH:
            raise InvalidArgumentError(
                'password', f'must be at least {PASSWORD_MIN_LENGTH} characters'
            )

        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f'''
                    INSERT INTO users (username, password, email, phone, role)
                    VALUES ($1, $2, $3, $4, $5)
                    RETURNING {USER_COLUMNS}
                    ''',
                    username,
                    hash_password(password),
                    email,
                    phone,
                    Role(role).value
                )
        except UniqueViolationError:
            raise UsernameTakenError(f"Username {username} already exists")

        logger.info(f"Created {row['role']} user {row['id']} ({username})")
        return _user_to_dict(row)

    async def get_user(self, user_id: int) -> Dict[str, Any]:
        """Get a user by ID.

        Raises:
            InvalidArgumentError: If the id is not a positive integer
            UserNotFoundError: If the user doesn't exist
        """
        user_id = require_positive_id(user_id, 'user_id')
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f'SELECT {USER_COLUMNS} FROM users WHERE id = $1',
                user_id
            )

        if not row:
            raise UserNotFoundError(f"User {user_id} not found")
        return _user_to_dict(row)

    async def get_user_by_username(self, username: str) -> Optional[Dict[str, Any]]:
        """Get a user by username, or None."""
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f'SELECT {USER_COLUMNS} FROM users WHERE username = $1',
                username
            )
        return _user_to_dict(row) if row else None

    async def authenticate(self, username: str, password: str) -> Dict[str, Any]:
        """Verify a username / password pair.

        Returns:
            The matching user

        Raises:
            InvalidCredentialsError: If the user is unknown or the password is wrong
        """
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f'SELECT {USER_COLUMNS}, password FROM users WHERE username = $1',
                username
            )

        if not row or not verify_password(password, row['password']):
            raise InvalidCredentialsError("Invalid username or password")
        return _user_to_dict(row)

    async def list_users(self, role: Optional[Role] = None) -> List[Dict[str, Any]]:
        """List users, optionally filtered by role."""
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            if role is None:
                rows = await conn.fetch(f'SELECT {USER_COLUMNS} FROM users ORDER BY id')
            else:
                rows = await conn.fetch(
                    f'SELECT {USER_COLUMNS} FROM users WHERE role = $1 ORDER BY id',
                    Role(role).value
                )
        return [_user_to_dict(row) for row in rows]

    async def list_middlemen(self) -> List[Dict[str, Any]]:
        """List users holding the middleman role."""
        return await self.list_users(Role.MIDDLEMAN)

    async def update_profile(
        self,
        user_id: int,
        username: Optional[str] = None,
        phone: Optional[str] = None,
        email: Optional[str] = None
    ) -> Dict[str, Any]:
        """Update the contact details of a user.

        Only the fields that are not None are changed.

        Raises:
            UserNotFoundError: If the user doesn't exist
            UsernameTakenError: If the new username is already in use
        """
        user_id = require_positive_id(user_id, 'user_id')
        if username is not None and not username.strip():
            raise InvalidArgumentError('username', 'must not be empty')
        await self.ensure_pool()

        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f'''
                    UPDATE users
                    SET
                        username = COALESCE($2, username),
                        phone = COALESCE($3, phone),
                        email = COALESCE($4, email)
                    WHERE id = $1
                    RETURNING {USER_COLUMNS}
                    ''',
                    user_id,
                    username.strip() if username is not None else None,
                    phone,
                    email
                )
        except UniqueViolationError:
            raise UsernameTakenError(f"Username {username} already exists")

        if not row:
            raise UserNotFoundError(f"User {user_id} not found")
        return _user_to_dict(row)

    async def set_role(self, user_id: int, role: Role) -> Dict[str, Any]:
        """Assign a role to a user.

        Raises:
            UserNotFoundError: If the user doesn't exist
        """
        user_id = require_positive_id(user_id, 'user_id')
        role = Role(role)
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f'UPDATE users SET role = $2 WHERE id = $1 RETURNING {USER_COLUMNS}',
                user_id,
                role.value
            )

        if not row:
            raise UserNotFoundError(f"User {user_id} not found")
        logger.info(f"User {user_id} is now {role.value}")
        return _user_to_dict(row)

    async def delete_user(self, user_id: int) -> bool:
        """Delete a user with their wishlist and cart.

        Returns:
            False if nothing was deleted

        Raises:
            UserInUseError: If orders reference the user
        """
        user_id = require_positive_id(user_id, 'user_id')
        await self.ensure_pool()

        try:
            async with self.pool.acquire() as conn:
                result = await conn.execute('DELETE FROM users WHERE id = $1', user_id)
        except ForeignKeyViolationError:
            raise UserInUseError(f"User {user_id} has orders and cannot be deleted")

        deleted = int(result.split()[-1]) > 0
        if deleted:
            logger.info(f"Deleted user {user_id}")
        return deleted

    async def get_user_details(self, user_id: int) -> Dict[str, Any]:
        """Get a user together with wishlist, cart and order counts.

        Raises:
            UserNotFoundError: If the user doesn't exist
        """
        user = await self.get_user(user_id)

        async with self.pool.acquire() as conn:
            counts = await conn.fetchrow(
                '''
                SELECT
                    (SELECT count(*) FROM wishlists WHERE user_id = $1) AS wishlist_count,
                    (SELECT count(*) FROM cart_items WHERE user_id = $1) AS cart_item_count,
                    (SELECT count(*) FROM orders WHERE user_id = $1) AS number_of_orders
                ''',
                user['id']
            )

        user.update(dict(counts))
        return user

__all__ = [
    'UserManager',
    'UserError',
    'UserNotFoundError',
    'UsernameTakenError',
    'InvalidCredentialsError',
    'UserInUseError',
    'Role',
    'Capability',
    'ROLE_CAPABILITIES',
    'capabilities_for',
    'has_capability',
    'hash_password',
    'verify_password'
]
