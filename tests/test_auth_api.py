"""HTTP tests for the auth endpoints."""

from datetime import timedelta

from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

from filevault.core.security import create_access_token, decode_token, hash_password, verify_password
from filevault.database import create_tables
from filevault.main import create_app
from filevault.models.user import Role, User

PASSWORD = 'testpass123'


class TestSecurity:
    """Tests for token and password helpers."""

    def test_password_hash_roundtrip(self):
        hashed = hash_password('s3cret')
        assert hashed != 's3cret'
        assert verify_password('s3cret', hashed)
        assert not verify_password('wrong', hashed)

    async def test_token_claims(self, settings, user):
        payload = decode_token(create_access_token(user, settings), settings)

        assert payload['sub'] == str(user.id)
        assert payload['name'] == user.username
        assert payload['role'] == 'USER'

    async def test_expired_token_rejected(self, settings, user):
        token = create_access_token(user, settings, expires_delta=timedelta(minutes=-1))
        assert decode_token(token, settings) is None

    async def test_wrong_audience_rejected(self, settings, user):
        token = create_access_token(user, settings)
        other = settings.model_copy(update={'JWT_AUDIENCE': 'someone-else'})
        assert decode_token(token, other) is None


class TestLogin:
    """Tests for POST /api/auth/login."""

    async def test_login(self, client, settings, user):
        resp = await client.post('/api/auth/login', json={'username': 'testuser', 'password': PASSWORD})

        assert resp.status_code == 200
        body = resp.json()
        assert body['username'] == 'testuser'
        assert body['role'] == 'USER'
        assert decode_token(body['token'], settings)['sub'] == str(user.id)

    async def test_wrong_password(self, client, user):
        resp = await client.post('/api/auth/login', json={'username': 'testuser', 'password': 'nope'})
        assert resp.status_code == 401

    async def test_unknown_user(self, client):
        resp = await client.post('/api/auth/login', json={'username': 'ghost', 'password': 'nope'})
        assert resp.status_code == 401

    async def test_login_token_works(self, client, user):
        login = await client.post('/api/auth/login', json={'username': 'testuser', 'password': PASSWORD})
        token = login.json()['token']

        resp = await client.get('/api/auth/me', headers={'Authorization': f'Bearer {token}'})

        assert resp.status_code == 200
        assert resp.json()['username'] == 'testuser'

    async def test_form_token(self, client, user):
        """Test the form login used by the docs UI issues a working bearer token."""
        resp = await client.post('/api/auth/token', data={'username': 'testuser', 'password': PASSWORD})

        assert resp.status_code == 200
        assert resp.json()['token_type'] == 'bearer'
        token = resp.json()['access_token']
        me = await client.get('/api/auth/me', headers={'Authorization': f'Bearer {token}'})
        assert me.json()['username'] == 'testuser'

    async def test_form_token_wrong_password(self, client, user):
        resp = await client.post('/api/auth/token', data={'username': 'testuser', 'password': 'nope'})
        assert resp.status_code == 401


class TestRegister:
    """Tests for user registration."""

    async def test_register_normalizes_role(self, client, admin, auth_headers):
        """Test lower-case role names are accepted as the canonical role."""
        resp = await client.post(
            '/api/auth/register',
            json={'username': 'newadmin', 'password': 'pw', 'role': ' admin '},
            headers=auth_headers(admin),
        )

        assert resp.status_code == 201
        assert resp.json()['role'] == 'ADMIN'

    async def test_register_default_role(self, client, admin, auth_headers):
        resp = await client.post(
            '/api/auth/register', json={'username': 'plain', 'password': 'pw'}, headers=auth_headers(admin),
        )
        assert resp.json()['role'] == 'USER'

    async def test_register_unknown_role(self, client, admin, auth_headers):
        resp = await client.post(
            '/api/auth/register',
            json={'username': 'x', 'password': 'pw', 'role': 'root'},
            headers=auth_headers(admin),
        )
        assert resp.status_code == 400
        assert resp.json()['detail'] == 'Invalid role specified'

    async def test_register_duplicate(self, client, admin, user, auth_headers):
        resp = await client.post(
            '/api/auth/register',
            json={'username': 'testuser', 'password': 'pw'},
            headers=auth_headers(admin),
        )
        assert resp.status_code == 400

    async def test_register_requires_admin(self, client, user, auth_headers):
        resp = await client.post(
            '/api/auth/register', json={'username': 'x', 'password': 'pw'}, headers=auth_headers(user),
        )
        assert resp.status_code == 403


class TestRegisterInitialAdmin:
    """Tests for POST /api/auth/register-admin."""

    async def test_first_admin(self, client):
        resp = await client.post('/api/auth/register-admin', json={'username': 'root', 'password': 'pw', 'role': 'USER'})

        assert resp.status_code == 201
        assert resp.json()['role'] == 'ADMIN'

    async def test_only_when_no_users(self, client, user):
        resp = await client.post('/api/auth/register-admin', json={'username': 'root', 'password': 'pw'})
        assert resp.status_code == 400

    async def test_hidden_outside_development(self, settings, storage):
        app = create_app(settings.model_copy(update={'ENVIRONMENT': 'production'}), storage=storage)
        await create_tables(app.state.engine)
        async with AsyncClient(transport=ASGITransport(app=app), base_url='http://test') as prod_client:
            resp = await prod_client.post('/api/auth/register-admin', json={'username': 'root', 'password': 'pw'})
        await app.state.engine.dispose()

        assert resp.status_code == 404


class TestUserManagement:
    """Tests for listing, deleting and renaming users."""

    async def test_list_users(self, client, admin, user, auth_headers):
        resp = await client.get('/api/auth/users', headers=auth_headers(admin))

        assert resp.status_code == 200
        assert {u['username'] for u in resp.json()} == {'admin', 'testuser'}

    async def test_delete_user(self, client, admin, user, auth_headers):
        resp = await client.delete(f'/api/auth/users/{user.id}', headers=auth_headers(admin))
        assert resp.status_code == 200

        missing = await client.delete(f'/api/auth/users/{user.id}', headers=auth_headers(admin))
        assert missing.status_code == 404

    async def test_cannot_delete_last_admin(self, client, admin, auth_headers):
        resp = await client.delete(f'/api/auth/users/{admin.id}', headers=auth_headers(admin))

        assert resp.status_code == 400
        assert resp.json()['detail'] == 'Cannot delete the last admin user'

    async def test_change_password(self, client, user, auth_headers):
        resp = await client.put(
            '/api/auth/change-password',
            json={'currentPassword': PASSWORD, 'newPassword': 'brand-new'},
            headers=auth_headers(user),
        )
        assert resp.status_code == 200

        login = await client.post('/api/auth/login', json={'username': 'testuser', 'password': 'brand-new'})
        assert login.status_code == 200

    async def test_change_password_wrong_current(self, client, user, auth_headers):
        resp = await client.put(
            '/api/auth/change-password',
            json={'currentPassword': 'wrong', 'newPassword': 'brand-new'},
            headers=auth_headers(user),
        )
        assert resp.status_code == 400

    async def test_change_username(self, client, settings, user, auth_headers):
        resp = await client.put(
            '/api/auth/change-username', json={'newUsername': 'renamed'}, headers=auth_headers(user),
        )

        assert resp.status_code == 200
        assert decode_token(resp.json()['newToken'], settings)['name'] == 'renamed'

    async def test_change_username_taken(self, client, user, other_user, auth_headers):
        resp = await client.put(
            '/api/auth/change-username', json={'newUsername': 'otheruser'}, headers=auth_headers(user),
        )
        assert resp.status_code == 400

    async def test_admin_change_password(self, client, admin, user, auth_headers, session_maker):
        resp = await client.put(
            '/api/auth/admin/change-password',
            json={'userId': str(user.id), 'newPassword': 'reset-pw'},
            headers=auth_headers(admin),
        )
        assert resp.status_code == 200

        async with session_maker() as db_session:
            stored = (await db_session.execute(select(User).where(User.id == user.id))).scalar_one()
        assert verify_password('reset-pw', stored.hashed_password)

    async def test_admin_change_username(self, client, admin, user, auth_headers, session_maker):
        resp = await client.put(
            '/api/auth/admin/change-username',
            json={'userId': str(user.id), 'newUsername': 'renamed'},
            headers=auth_headers(admin),
        )
        assert resp.status_code == 200

        async with session_maker() as db_session:
            stored = (await db_session.execute(select(User).where(User.id == user.id))).scalar_one()
        assert stored.username == 'renamed'
        assert stored.role is Role.USER
