"""Tests for accounts, roles and session tokens."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from asyncpg.exceptions import ForeignKeyViolationError, UniqueViolationError
from jose import jwt

from auth import AuthManager, AuthError, SessionExpiredError, JWT_ALGORITHM
from users import (
    UserManager,
    UserNotFoundError,
    UsernameTakenError,
    InvalidCredentialsError,
    UserInUseError,
    Role,
    Capability,
    capabilities_for,
    has_capability,
    hash_password,
    verify_password
)
from validation import InvalidArgumentError

SECRET = 'test-secret'

CUSTOMER = {'id': 3, 'username': 'ann', 'email': None, 'phone': '+15550001', 'role': 'customer'}

@pytest.fixture
def users(pool):
    return UserManager(pool=pool)

@pytest.fixture
def user_manager():
    manager = MagicMock(spec=UserManager)
    manager.authenticate = AsyncMock(return_value=CUSTOMER)
    manager.get_user = AsyncMock(return_value=CUSTOMER)
    return manager

@pytest.fixture
def auth(user_manager):
    return AuthManager(users=user_manager, secret=SECRET, expiry_hours=1)

def test_password_hashing():
    stored = hash_password('hunter22')

    assert stored.startswith('$argon2id$')
    assert 'hunter22' not in stored
    assert verify_password('hunter22', stored)
    assert not verify_password('hunter23', stored)
    assert not verify_password('hunter22', 'garbage')
    assert not verify_password('hunter22', 'pbkdf2_sha256$200000$00$00')

def test_same_password_hashes_differently():
    assert hash_password('hunter22') != hash_password('hunter22')

def test_role_capabilities():
    assert capabilities_for('customer') == {Capability.SHOP}
    assert has_capability(Role.ADMIN, Capability.MANAGE_CATALOG)
    assert has_capability('middleman', Capability.FULFIL_ORDERS)
    assert not has_capability('middleman', Capability.MANAGE_ORDERS)
    assert not has_capability('customer', Capability.VIEW_ANALYTICS)

    with pytest.raises(ValueError):
        capabilities_for('superuser')

@pytest.mark.asyncio
async def test_create_user_hashes_password(users, conn):
    conn.fetchrow.return_value = {**CUSTOMER, 'created_at': None}

    user = await users.create_user(' ann ', 'hunter22', phone='+15550001')

    args = conn.fetchrow.call_args.args
    assert args[1] == 'ann'
    assert verify_password('hunter22', args[2])
    assert args[5] == 'customer'
    assert 'password' not in user

@pytest.mark.asyncio
async def test_create_user_rejects_short_password(users, conn):
    with pytest.raises(InvalidArgumentError) as exc:
        await users.create_user('ann', '123')

    assert exc.value.field == 'password'
    conn.fetchrow.assert_not_called()

@pytest.mark.asyncio
async def test_create_user_duplicate_username(users, conn):
    conn.fetchrow.side_effect = UniqueViolationError('duplicate key')

    with pytest.raises(UsernameTakenError):
        await users.create_user('ann', 'hunter22')

@pytest.mark.asyncio
async def test_authenticate(users, conn):
    conn.fetchrow.return_value = {**CUSTOMER, 'password': hash_password('hunter22')}

    user = await users.authenticate('ann', 'hunter22')
    assert user['id'] == 3
    assert 'password' not in user

    with pytest.raises(InvalidCredentialsError):
        await users.authenticate('ann', 'wrong-password')

@pytest.mark.asyncio
async def test_authenticate_unknown_user(users, conn):
    with pytest.raises(InvalidCredentialsError):
        await users.authenticate('nobody', 'hunter22')

@pytest.mark.asyncio
async def test_set_role_unknown_user(users, conn):
    with pytest.raises(UserNotFoundError):
        await users.set_role(99, Role.MIDDLEMAN)

@pytest.mark.asyncio
async def test_delete_user_with_orders(users, conn):
    conn.execute.side_effect = ForeignKeyViolationError('orders_user_id_fkey')

    with pytest.raises(UserInUseError):
        await users.delete_user(3)

@pytest.mark.asyncio
async def test_delete_user(users, conn):
    conn.execute.return_value = 'DELETE 1'
    assert await users.delete_user(3) is True

    conn.execute.return_value = 'DELETE 0'
    assert await users.delete_user(3) is False

def test_issue_token(auth):
    result = auth.issue_token(CUSTOMER)

    payload = jwt.decode(result['token'], SECRET, algorithms=[JWT_ALGORITHM])
    assert payload['sub'] == '3'
    assert payload['role'] == 'customer'
    assert datetime.fromisoformat(result['expires_at']) > datetime.now(timezone.utc)

@pytest.mark.asyncio
async def test_login_and_verify(auth, user_manager):
    result = await auth.login('ann', 'hunter22')

    assert result['user'] == CUSTOMER
    user = await auth.verify_session(result['token'])
    assert user == CUSTOMER
    user_manager.get_user.assert_awaited_once_with(3)

@pytest.mark.asyncio
async def test_login_bad_credentials(auth, user_manager):
    user_manager.authenticate.side_effect = InvalidCredentialsError("Invalid username or password")

    with pytest.raises(AuthError):
        await auth.login('ann', 'nope')

@pytest.mark.asyncio
async def test_expired_token(auth):
    expired = datetime.now(timezone.utc) - timedelta(minutes=5)
    token = jwt.encode(
        {'sub': '3', 'role': 'customer', 'exp': int(expired.timestamp())},
        SECRET,
        algorithm=JWT_ALGORITHM
    )

    with pytest.raises(SessionExpiredError):
        await auth.verify_session(token)

@pytest.mark.asyncio
async def test_token_signed_with_other_secret(auth):
    other = AuthManager(users=MagicMock(), secret='another-secret', expiry_hours=1)
    token = other.issue_token(CUSTOMER)['token']

    with pytest.raises(AuthError):
        await auth.verify_session(token)

@pytest.mark.asyncio
async def test_garbage_token(auth):
    with pytest.raises(AuthError):
        await auth.verify_session('not-a-token')

@pytest.mark.asyncio
async def test_token_for_deleted_user(auth, user_manager):
    token = auth.issue_token(CUSTOMER)['token']
    user_manager.get_user.side_effect = UserNotFoundError("User 3 not found")

    with pytest.raises(AuthError):
        await auth.verify_session(token)
