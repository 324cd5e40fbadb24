"""
Unit Tests for the CLI session/role manager and API client
"""
import json
import os

import httpx
import pytest

from cli.client import PortalAPIError, PortalClient, filename_from_disposition
from cli.config import CLIConfig, ONE_YEAR_SECONDS
from cli.session import (
    ClientSession,
    FileSessionStorage,
    LoginFailedError,
    MemorySessionStorage,
    SessionRoleManager,
    SessionState,
)

API = 'http://portal.test/api/v1'


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakePortal:
    """Records requests and answers like the portal API"""

    def __init__(self):
        self.requests = []
        self.login_status = 200
        self.logout_status = 204

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == '/api/v1/auth/login':
            if self.login_status != 200:
                return httpx.Response(self.login_status, json={
                    'error': 'AUTH_FAILED',
                    'message': 'Invalid credentials or inactive account',
                    'details': {},
                })
            body = json.loads(request.content)
            return httpx.Response(200, json={
                'token': f"token-for-{body['username']}",
                'token_type': 'bearer',
                'role': 'admin' if body['username'].startswith('admin') else 'student',
                'username': body['username'],
                'user_id': 'u1',
                'backing_id': body.get('backing_id') or 'anon_new',
                'login_time': '2024-01-01T00:00:00+00:00',
                'expires_at': '2025-01-01T00:00:00+00:00',
            })
        if request.url.path == '/api/v1/auth/logout':
            if self.logout_status == 401:
                return httpx.Response(401, json={'error': 'INVALID_TOKEN', 'message': 'Session has been signed out'})
            return httpx.Response(self.logout_status)
        return httpx.Response(404, json={'detail': 'Not Found'})


@pytest.fixture
def portal() -> FakePortal:
    return FakePortal()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def storage() -> MemorySessionStorage:
    return MemorySessionStorage()


@pytest.fixture
def manager(portal, clock, storage) -> SessionRoleManager:
    client = PortalClient(API, client=httpx.Client(transport=httpx.MockTransport(portal)))
    return SessionRoleManager(storage, client, clock=clock, activity_throttle_seconds=30)


def stored_session(clock: FakeClock, **overrides) -> dict:
    data = {
        'role': 'student',
        'username': 'student_one',
        'backing_id': 'anon_saved',
        'token': 'saved-token',
        'login_time': clock.now,
        'last_activity': clock.now,
        'user_id': 'u1',
    }
    data.update(overrides)
    return data


class TestLogin:
    """Test ANONYMOUS -> AUTHENTICATED"""

    def test_login_persists_and_notifies(self, manager, storage, clock):
        """Test that a login is stored, applied to the client and announced"""
        events = []
        manager.subscribe(lambda state, session: events.append((state, session.role if session else None)))

        session = manager.login('student_one', 'secret123', 'bot-token')

        assert manager.state == SessionState.AUTHENTICATED
        assert manager.role == 'student'
        assert manager.client.token == 'token-for-student_one'
        assert storage.load()['login_time'] == clock.now
        assert session.backing_id == 'anon_new'
        assert events == [(SessionState.AUTHENTICATED, 'student')]

    def test_login_sends_bot_token(self, manager, portal):
        manager.login('student_one', 'secret123', 'bot-token')

        body = json.loads(portal.requests[0].content)
        assert body == {'username': 'student_one', 'password': 'secret123', 'bot_token': 'bot-token'}

    def test_failed_login_stays_anonymous(self, manager, portal, storage):
        """Test that rejected credentials raise LoginFailedError and store nothing"""
        portal.login_status = 401

        with pytest.raises(LoginFailedError) as exc_info:
            manager.login('student_one', 'wrong', 'bot-token')

        assert 'Invalid credentials' in str(exc_info.value)
        assert manager.state == SessionState.ANONYMOUS
        assert storage.load() is None

    def test_second_login_reuses_backing_identity(self, manager, portal):
        manager.login('student_one', 'secret123', 'bot-token')

        manager.login('admin_main', 'secret123', 'bot-token')

        body = json.loads(portal.requests[-1].content)
        assert body['backing_id'] == 'anon_new'
        assert manager.role == 'admin'

    def test_server_error_is_not_a_login_failure(self, manager, portal):
        portal.login_status = 500

        with pytest.raises(PortalAPIError) as exc_info:
            manager.login('student_one', 'secret123', 'bot-token')

        assert not isinstance(exc_info.value, LoginFailedError)
        assert exc_info.value.status_code == 500


class TestRestoreAndLogout:
    """Test resuming and ending sessions"""

    def test_restore_valid_session(self, manager, storage, clock):
        storage.save(stored_session(clock))
        clock.now += 3600

        session = manager.restore()

        assert session.username == 'student_one'
        assert manager.client.token == 'saved-token'

    def test_restore_expired_session(self, manager, storage, clock):
        """Test that a session older than a year is cleared"""
        storage.save(stored_session(clock))
        clock.now += ONE_YEAR_SECONDS + 1

        assert manager.restore() is None
        assert storage.load() is None
        assert manager.state == SessionState.ANONYMOUS

    def test_restore_corrupt_session(self, manager, storage):
        storage.save({'role': 'student'})

        assert manager.restore() is None
        assert storage.load() is None

    def test_logout_releases_and_clears(self, manager, portal, storage):
        """Test that logout calls the server, then clears local state"""
        events = []
        manager.login('student_one', 'secret123', 'bot-token')
        manager.subscribe(lambda state, session: events.append(state))

        manager.logout()

        assert portal.requests[-1].url.path == '/api/v1/auth/logout'
        assert portal.requests[-1].headers['Authorization'] == 'Bearer token-for-student_one'
        assert manager.state == SessionState.ANONYMOUS
        assert manager.client.token is None
        assert storage.load() is None
        assert events == [SessionState.ANONYMOUS]

    def test_logout_with_revoked_token(self, manager, portal, storage):
        """Test that a 401 on logout still clears the local session"""
        manager.login('student_one', 'secret123', 'bot-token')
        portal.logout_status = 401

        manager.logout()

        assert manager.state == SessionState.ANONYMOUS
        assert storage.load() is None

    def test_unsubscribe(self, manager):
        events = []
        unsubscribe = manager.subscribe(lambda state, session: events.append(state))
        unsubscribe()

        manager.login('student_one', 'secret123', 'bot-token')

        assert events == []


class TestActivity:
    """Test throttled activity tracking"""

    def test_touch_is_throttled(self, manager, storage, clock):
        manager.login('student_one', 'secret123', 'bot-token')
        login_time = clock.now

        clock.now += 10
        assert manager.touch() is False
        assert storage.load()['last_activity'] == login_time

        clock.now += 25
        assert manager.touch() is True
        assert storage.load()['last_activity'] == clock.now

    def test_touch_without_session(self, manager):
        assert manager.touch() is False


class TestFileSessionStorage:
    """Test the on-disk session file"""

    def test_save_load_clear(self, tmp_path):
        storage = FileSessionStorage(str(tmp_path / 'encg' / 'session.json'))
        session = ClientSession('admin', 'admin_main', 'anon_x', 'tok', 1.0, 2.0, 'u1')

        storage.save(session.to_dict())

        assert ClientSession.from_dict(storage.load()) == session
        if os.name == 'posix':
            assert oct(os.stat(storage.path).st_mode & 0o777) == oct(0o600)
        storage.clear()
        assert storage.load() is None

    def test_unreadable_file(self, tmp_path):
        path = tmp_path / 'session.json'
        path.write_text('{broken')

        assert FileSessionStorage(str(path)).load() is None


class TestPortalClient:
    """Test the HTTP client helpers"""

    def test_error_body_is_mapped(self):
        def handler(request):
            return httpx.Response(404, json={'error': 'MODULE_NOT_FOUND', 'message': "Module 'X' not found"})

        client = PortalClient(API, token='tok', client=httpx.Client(transport=httpx.MockTransport(handler)))

        with pytest.raises(PortalAPIError) as exc_info:
            client.list_modules('cours', 'year3')

        assert exc_info.value.code == 'MODULE_NOT_FOUND'
        assert exc_info.value.status_code == 404
        assert exc_info.value.message == "Module 'X' not found"

    def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError('refused', request=request)

        client = PortalClient(API, client=httpx.Client(transport=httpx.MockTransport(handler)))

        with pytest.raises(PortalAPIError) as exc_info:
            client.seminars()

        assert exc_info.value.code == 'CONNECTION_ERROR'
        assert exc_info.value.status_code == 0

    def test_download_filename(self):
        def handler(request):
            return httpx.Response(
                200,
                content=b'data',
                headers={'Content-Disposition': "attachment; filename*=UTF-8''S%C3%A9ance_1.pdf"},
            )

        client = PortalClient(API, token='tok', client=httpx.Client(transport=httpx.MockTransport(handler)))

        content, filename = client.download('cours', 'year3', 'Finance', '-Nk')

        assert content == b'data'
        assert filename == 'Séance_1.pdf'

    def test_filename_from_plain_disposition(self):
        assert filename_from_disposition('attachment; filename="plan.pdf"') == 'plan.pdf'
        assert filename_from_disposition(None) == 'download'


class TestCLIConfig:
    """Test configuration loading"""

    def test_session_file_under_config_dir(self, tmp_path):
        config = CLIConfig(config_dir=str(tmp_path))

        assert config.session_file == str(tmp_path / 'session.json')
        assert config.session_timeout_seconds == ONE_YEAR_SECONDS

    def test_environment_overrides(self, tmp_path, monkeypatch):
        monkeypatch.setenv('ENCG_API_URL', 'https://portal.example/api/v1')
        monkeypatch.setenv('ENCG_ENVIRONMENT', 'production')
        monkeypatch.setenv('ENCG_TIMEOUT', '15')
        (tmp_path / 'config.json').write_text(json.dumps({'download_dir': '/tmp/encg'}))

        config = CLIConfig.load_default(config_dir=str(tmp_path))

        assert config.api_base_url == 'https://portal.example/api/v1'
        assert config.is_production is True
        assert config.timeout == 15
        assert config.download_dir == '/tmp/encg'
