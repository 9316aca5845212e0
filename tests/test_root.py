from chathub.main import app
from fastapi.testclient import TestClient

def test_read_root():
    client = TestClient(app)
    r = client.get("/")
    assert r.status_code == 200
    assert r.json() == {"message": "ChatHub API", "version": "1.0.0"}

def test_health():
    client = TestClient(app)
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"
