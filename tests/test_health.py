from sqlalchemy.exc import OperationalError

from app.database import get_session
from app.main import app as fastapi_app


class BrokenSession:
    def exec(self, statement):
        raise OperationalError("SELECT 1", {}, Exception("db down"))


def test_health_ok(client):
    response = client.get("/health/check")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["database"] == "ok"


def test_health_degraded_when_database_is_down(client):
    def _broken_session():
        yield BrokenSession()

    fastapi_app.dependency_overrides[get_session] = _broken_session

    response = client.get("/health/check")

    assert response.status_code == 503
    assert response.json() == {
        "status": "degraded",
        "database": "failed",
        "timestamp": response.json()["timestamp"],
    }
