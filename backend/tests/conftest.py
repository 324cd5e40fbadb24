"""
ENCG Portal - Test Configuration and Fixtures
"""
import os
import tempfile
from typing import AsyncGenerator

import pytest
from httpx import AsyncClient, ASGITransport
from faker import Faker

# Set testing environment
os.environ['ENVIRONMENT'] = 'testing'
os.environ['TREE_BACKEND'] = 'memory'
os.environ['CACHE_BACKEND'] = 'memory'
os.environ['STORAGE_MODE'] = 'local'
os.environ['STORAGE_GATEWAY_MODE'] = 'local'
os.environ['STORAGE_LOCAL_DIR'] = tempfile.mkdtemp(prefix='encg-storage-')
os.environ['STATIC_INDEX_DIR'] = tempfile.mkdtemp(prefix='encg-public-')
os.environ['JWT_SECRET_KEY'] = 'test-jwt-secret-key-for-testing'
os.environ['TURNSTILE_SECRET_KEY'] = ''
os.environ['TURNSTILE_DEV_BYPASS'] = 'true'
os.environ['RATE_LIMIT_ENABLED'] = 'false'

from app.main import app
from app.db.tree_store import MemoryTreeStore
from app.schemas.user import UserRecord, UserRole
from app.services.bot_check import DEV_BYPASS_TOKEN, TurnstileVerifier
from app.services.cache_service import LocalCache
from app.services.container import ServiceContainer, build_container
from app.services.object_storage import LocalObjectStorage

fake = Faker()

ADMIN_PASSWORD = 'adminpassword123'
STUDENT_PASSWORD = 'studentpassword123'


@pytest.fixture
def tree() -> MemoryTreeStore:
    """Fresh in-memory tree for each test"""
    return MemoryTreeStore()


@pytest.fixture
def cache() -> LocalCache:
    return LocalCache(default_ttl=300)


@pytest.fixture
def object_storage(tmp_path) -> LocalObjectStorage:
    return LocalObjectStorage(tmp_path / 'objects')


@pytest.fixture
def static_dir(tmp_path):
    path = tmp_path / 'public'
    path.mkdir()
    return path


@pytest.fixture
def bot_check() -> TurnstileVerifier:
    """Verifier that accepts the development bypass token only"""
    return TurnstileVerifier(secret_key='', allow_dev_bypass=True)


@pytest.fixture
async def services(tree, cache, object_storage, static_dir, bot_check) -> AsyncGenerator[ServiceContainer, None]:
    """Service container wired to the in-memory tree and a temp object store"""
    container = await build_container(
        tree=tree,
        storage=object_storage,
        cache=cache,
        bot_check=bot_check,
        static_dir=static_dir,
    )
    yield container
    await container.aclose()


@pytest.fixture
async def client(services: ServiceContainer) -> AsyncGenerator[AsyncClient, None]:
    """Test client bound to the per-test service container"""
    app.state.services = services

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url='http://test') as ac:
        yield ac

    app.state.services = None


@pytest.fixture
async def admin_user(services: ServiceContainer) -> UserRecord:
    """Create an admin account"""
    return await services.credentials.add_user('admin_main', ADMIN_PASSWORD, role=UserRole.ADMIN)


@pytest.fixture
async def student_user(services: ServiceContainer) -> UserRecord:
    """Create a third-year student account"""
    return await services.credentials.add_user(
        'student_one', STUDENT_PASSWORD, role=UserRole.STUDENT, year='3eme'
    )


async def login(client: AsyncClient, username: str, password: str, **extra):
    payload = {'username': username, 'password': password, 'bot_token': DEV_BYPASS_TOKEN}
    payload.update(extra)
    return await client.post('/api/v1/auth/login', json=payload)


def bearer(token: str) -> dict:
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def login_as(client: AsyncClient):
    """POST /auth/login with the bypass bot token; returns the raw response"""
    async def _login(username: str, password: str, **extra):
        return await login(client, username, password, **extra)
    return _login


@pytest.fixture
async def admin_headers(client: AsyncClient, admin_user: UserRecord) -> dict:
    """Authorization headers from a real admin login"""
    response = await login(client, admin_user.username, ADMIN_PASSWORD)
    assert response.status_code == 200
    return bearer(response.json()['token'])


@pytest.fixture
async def student_headers(client: AsyncClient, student_user: UserRecord) -> dict:
    """Authorization headers from a real student login"""
    response = await login(client, student_user.username, STUDENT_PASSWORD)
    assert response.status_code == 200
    return bearer(response.json()['token'])
