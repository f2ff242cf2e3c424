from fastapi.testclient import TestClient

from sigpef.core import config
from sigpef.main import app


def test_root_reports_version() -> None:
    response = TestClient(app).get('/')

    assert response.status_code == 200
    assert response.json() == {'status': 'SIGPEF API Running', 'version': config.APP_VERSION}


def test_routers_are_mounted() -> None:
    paths = app.openapi()['paths']

    for path in (
        '/auth/login',
        '/appointments',
        '/appointments/changes',
        '/attendance/{record_id}/punch',
        '/reports/export',
        '/imports/{batch_id}/rows',
        '/admin/logs/actions',
        '/messages',
        '/legacy/rows/{row_id}',
    ):
        assert path in paths


def test_protected_routes_require_bearer_token() -> None:
    response = TestClient(app).get('/appointments')

    assert response.status_code in (401, 403)
