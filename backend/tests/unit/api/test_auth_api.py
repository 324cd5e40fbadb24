"""
Unit Tests for Authentication API Endpoints
"""
import pytest
from httpx import AsyncClient

from conftest import ADMIN_PASSWORD, STUDENT_PASSWORD


class TestLogin:
    """Test the login endpoint"""

    @pytest.mark.asyncio
    async def test_login_success(self, login_as, student_user):
        """Test that a student gets a role token bound to a backing identity"""
        response = await login_as(student_user.username, STUDENT_PASSWORD)

        assert response.status_code == 200
        data = response.json()
        assert data['role'] == 'student'
        assert data['username'] == student_user.username
        assert data['user_id'] == student_user.id
        assert data['token_type'] == 'bearer'
        assert data['backing_id'].startswith('anon_')
        assert data['token']

    @pytest.mark.asyncio
    async def test_login_writes_role_binding(self, login_as, admin_user, services):
        """Test that user_roles/{backing_id} holds the role after login"""
        response = await login_as(admin_user.username, ADMIN_PASSWORD)
        backing_id = response.json()['backing_id']

        binding = await services.tree.read(f'user_roles/{backing_id}')

        assert binding['role'] == 'admin'
        assert binding['uid'] == admin_user.id

    @pytest.mark.asyncio
    async def test_failures_share_one_response(self, login_as, services, student_user):
        """Test that wrong password, unknown user and inactive account look the same"""
        await services.credentials.add_user('dormant', 'dormant123', year='4eme', is_active=False)

        wrong_password = await login_as(student_user.username, 'not-the-password')
        unknown_user = await login_as('nobody_here', STUDENT_PASSWORD)
        inactive = await login_as('dormant', 'dormant123')

        for response in (wrong_password, unknown_user, inactive):
            assert response.status_code == 401
            assert response.json()['error'] == 'AUTH_FAILED'
        assert wrong_password.json() == unknown_user.json() == inactive.json()

    @pytest.mark.asyncio
    async def test_login_requires_bot_token(self, client: AsyncClient, student_user):
        """Test that credentials are not checked without a bot-check token"""
        response = await client.post('/api/v1/auth/login', json={
            'username': student_user.username,
            'password': STUDENT_PASSWORD,
        })

        assert response.status_code == 400
        assert response.json()['error'] == 'BOT_CHECK_FAILED'

    @pytest.mark.asyncio
    async def test_login_missing_fields(self, client: AsyncClient):
        response = await client.post('/api/v1/auth/login', json={'username': 'someone'})

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_backing_identity_reused_for_same_user(self, login_as, student_user):
        """Test that a returning user keeps their anonymous identity"""
        first = await login_as(student_user.username, STUDENT_PASSWORD)
        backing_id = first.json()['backing_id']

        second = await login_as(student_user.username, STUDENT_PASSWORD, backing_id=backing_id)

        assert second.json()['backing_id'] == backing_id

    @pytest.mark.asyncio
    async def test_backing_identity_of_other_user_not_reused(self, login_as, student_user, admin_user):
        """Test that an identity bound to another user is replaced"""
        student = await login_as(student_user.username, STUDENT_PASSWORD)
        student_backing = student.json()['backing_id']

        admin = await login_as(admin_user.username, ADMIN_PASSWORD, backing_id=student_backing)

        assert admin.json()['backing_id'] != student_backing
        assert admin.json()['role'] == 'admin'


class TestSession:
    """Test /me and /logout"""

    @pytest.mark.asyncio
    async def test_me(self, client: AsyncClient, student_headers, student_user):
        response = await client.get('/api/v1/auth/me', headers=student_headers)

        assert response.status_code == 200
        data = response.json()
        assert data['role'] == 'student'
        assert data['username'] == student_user.username
        assert data['expires_at']

    @pytest.mark.asyncio
    async def test_me_without_token(self, client: AsyncClient):
        response = await client.get('/api/v1/auth/me')

        assert response.status_code == 401
        assert response.json()['error'] == 'INVALID_TOKEN'

    @pytest.mark.asyncio
    async def test_me_with_garbage_token(self, client: AsyncClient):
        response = await client.get('/api/v1/auth/me', headers={'Authorization': 'Bearer not-a-jwt'})

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_logout_revokes_token(self, client: AsyncClient, student_headers):
        """Test that the token stops working once its binding is removed"""
        response = await client.post('/api/v1/auth/logout', headers=student_headers)
        assert response.status_code == 204

        response = await client.get('/api/v1/auth/me', headers=student_headers)
        assert response.status_code == 401
        assert 'signed out' in response.json()['message']


class TestHealth:
    """Test health endpoints"""

    @pytest.mark.asyncio
    async def test_liveness(self, client: AsyncClient):
        response = await client.get('/api/v1/health/live')

        assert response.status_code == 200
        assert response.json()['status'] == 'alive'

    @pytest.mark.asyncio
    async def test_readiness(self, client: AsyncClient):
        response = await client.get('/api/v1/health/ready')

        assert response.status_code == 200
        assert response.json()['checks']['tree_store']['backend'] == 'MemoryTreeStore'

    @pytest.mark.asyncio
    async def test_security_headers_and_request_id(self, client: AsyncClient):
        response = await client.get('/health')

        assert response.status_code == 200
        assert response.headers['X-Content-Type-Options'] == 'nosniff'
        assert 'X-Request-ID' in response.headers
