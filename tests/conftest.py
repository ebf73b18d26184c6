"""Shared fixtures: mocked S3 bucket, SQLite database, app and users."""

from datetime import datetime, timedelta, timezone

import boto3
import pytest
from httpx import ASGITransport, AsyncClient
from moto import mock_aws

from filevault.config import Settings
from filevault.core.security import create_access_token, hash_password
from filevault.database import create_tables
from filevault.main import create_app
from filevault.models.file import StoredFile
from filevault.models.user import Role, User
from filevault.storage.s3 import S3Storage

BUCKET = 'filevault-test'
PASSWORD = 'testpass123'


@pytest.fixture
def settings(tmp_path):
    """Settings pointing at a throwaway SQLite file and the mocked bucket."""
    return Settings(
        _env_file=None,
        DATABASE_URL=f'sqlite+aiosqlite:///{tmp_path / "test.db"}',
        SECRET_KEY='test-secret-key',
        S3_BUCKET=BUCKET,
        S3_REGION='us-east-1',
        ENVIRONMENT='development',
        CREATE_TABLES=True,
    )


@pytest.fixture
def s3_client(monkeypatch):
    """Mock S3 service with the test bucket.

    Yields:
        boto3 S3 client with the bucket created.
    """
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')
    monkeypatch.setenv('AWS_DEFAULT_REGION', 'us-east-1')
    with mock_aws():
        client = boto3.client('s3', region_name='us-east-1')
        client.create_bucket(Bucket=BUCKET)
        yield client


@pytest.fixture
def storage(settings, s3_client):
    return S3Storage(settings, client=s3_client)


@pytest.fixture
async def app(settings, storage):
    application = create_app(settings, storage=storage)
    await create_tables(application.state.engine)
    yield application
    await application.state.engine.dispose()


@pytest.fixture
def session_maker(app):
    return app.state.session_maker


@pytest.fixture
async def session(session_maker):
    async with session_maker() as db_session:
        yield db_session


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url='http://test') as http_client:
        yield http_client


async def _create_user(session_maker, username, role):
    async with session_maker() as db_session:
        user = User(username=username, hashed_password=hash_password(PASSWORD), role=role)
        db_session.add(user)
        await db_session.commit()
        return user


@pytest.fixture
async def admin(session_maker):
    return await _create_user(session_maker, 'admin', Role.ADMIN)


@pytest.fixture
async def user(session_maker):
    return await _create_user(session_maker, 'testuser', Role.USER)


@pytest.fixture
async def other_user(session_maker):
    return await _create_user(session_maker, 'otheruser', Role.USER)


@pytest.fixture
def auth_headers(settings):
    """Build bearer headers for a user."""
    def _headers(for_user):
        return {'Authorization': f'Bearer {create_access_token(for_user, settings)}'}
    return _headers


@pytest.fixture
def put_blob(s3_client):
    """Write an object straight into the mocked bucket."""
    def _put(name, body=b'test content', content_type='text/plain'):
        s3_client.put_object(Bucket=BUCKET, Key=name, Body=body, ContentType=content_type)
    return _put


@pytest.fixture
def blob_names(s3_client):
    def _names():
        resp = s3_client.list_objects_v2(Bucket=BUCKET)
        return sorted(obj['Key'] for obj in resp.get('Contents', []))
    return _names


@pytest.fixture
def make_record(session_maker):
    """Insert a StoredFile row directly, bypassing the blob store."""
    async def _make(owner, blob_name, *, deleted=False, age_minutes=0, size=12, filename=None):
        uploaded_at = datetime.now(timezone.utc) - timedelta(minutes=age_minutes)
        async with session_maker() as db_session:
            record = StoredFile(
                owner_id=owner.id,
                filename=filename or blob_name,
                blob_name=blob_name,
                content_type='text/plain',
                size=size,
                blob_uri=f'https://{BUCKET}.s3.us-east-1.amazonaws.com/{blob_name}',
                uploaded_at=uploaded_at,
                is_deleted=deleted,
                deleted_at=uploaded_at + timedelta(seconds=1) if deleted else None,
            )
            db_session.add(record)
            await db_session.commit()
            return record
    return _make
