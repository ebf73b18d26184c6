"""HTTP tests for the health endpoint."""

from httpx import ASGITransport, AsyncClient

from filevault.database import create_tables
from filevault.main import create_app
from filevault.storage.s3 import S3Storage


class TestHealth:
    """Tests for GET /health."""

    async def test_healthy(self, client):
        resp = await client.get('/health')

        assert resp.status_code == 200
        body = resp.json()
        assert body['status'] == 'Healthy'
        assert {entry['key'] for entry in body['info']} == {'database', 'blob_storage'}

    async def test_unhealthy_storage(self, settings, s3_client):
        broken = settings.model_copy(update={'S3_BUCKET': 'missing-bucket'})
        app = create_app(broken, storage=S3Storage(broken, client=s3_client))
        await create_tables(app.state.engine)
        async with AsyncClient(transport=ASGITransport(app=app), base_url='http://test') as broken_client:
            resp = await broken_client.get('/health')
        await app.state.engine.dispose()

        assert resp.status_code == 503
        assert resp.json()['status'] == 'Unhealthy'
