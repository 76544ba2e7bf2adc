from conftest import login
from db.models import DbAudit_Log


def _service(client):
    return client.app.state.threat_service


def test_threats_require_login(client):
    assert client.get("/api/threats").status_code == 401
    assert client.post("/api/threats", json={"action": "unblock", "device_fingerprint": "x"}).status_code == 401


def test_get_threat_stats(moderator_client):
    _service(moderator_client).block("fp-1", "manual")

    data = moderator_client.get("/api/threats").json()
    assert data["blocked_device_count"] == 1
    assert data["blocked_devices"][0]["device_fingerprint"] == "fp-1"
    for key in ("total_threats", "recent_threats", "threat_type_counts", "active_user_count",
                "active_ip_count", "user_device_list", "active_ip_list"):
        assert key in data


def test_unblock_via_threats(moderator_client):
    _service(moderator_client).block("fp-1", "manual")

    response = moderator_client.post("/api/threats", json={"action": "unblock", "device_fingerprint": "fp-1"})
    assert response.status_code == 200
    assert response.json()["message"] == "Device unblocked successfully"
    assert not _service(moderator_client).is_blocked("fp-1")

    again = moderator_client.post("/api/threats", json={"action": "unblock", "device_fingerprint": "fp-1"})
    assert again.status_code == 404

    assert moderator_client.post("/api/threats", json={"action": "block", "device_fingerprint": "fp-1"}).status_code == 400
    assert moderator_client.post("/api/threats", json={"action": "unblock"}).status_code == 400


def test_admin_block_and_unblock_device(admin_client, db, recorder):
    response = admin_client.post("/api/admin/security/block_device", json={"device_fingerprint": "fp-x", "reason": "abuse"})
    assert response.status_code == 200
    assert _service(admin_client).is_blocked("fp-x")

    duplicate = admin_client.post("/api/admin/security/block_device", json={"device_fingerprint": "fp-x"})
    assert duplicate.status_code == 400
    assert duplicate.json()["detail"]["message"] == "Device already blocked"

    overview = admin_client.get("/api/admin/security").json()
    assert overview["success"] is True
    assert overview["data"]["blocked_device_count"] == 1

    response = admin_client.post("/api/admin/security/unblock_device", json={"device_fingerprint": "fp-x"})
    assert response.status_code == 200
    assert admin_client.post("/api/admin/security/unblock_device", json={"device_fingerprint": "fp-x"}).status_code == 404

    actions = sorted(a.Action for a in db.query(DbAudit_Log).filter(DbAudit_Log.Resource == "device").all())
    assert actions == ["device_blocked", "device_unblocked"]


def test_block_requires_fingerprint(admin_client):
    response = admin_client.post("/api/admin/security/block_device", json={"device_fingerprint": "  "})
    assert response.status_code == 400
    assert response.json()["detail"]["message"] == "Device fingerprint required"


def test_moderator_cannot_manage_blocklist(moderator_client):
    assert moderator_client.get("/api/admin/security").status_code == 403
    assert moderator_client.post("/api/admin/security/block_device", json={"device_fingerprint": "fp-x"}).status_code == 403
    assert moderator_client.post("/api/admin/security/unblock_device", json={"device_fingerprint": "fp-x"}).status_code == 403
    assert moderator_client.get("/api/admin/security/history").status_code == 403
    assert not _service(moderator_client).is_blocked("fp-x")


def test_history_reads_persisted_events(admin_client, recorder, clock):
    for _ in range(3):
        admin_client.get("/admin/login", headers={"User-Agent": "curl/8.4"})
        clock.advance(1)
    recorder.flush()

    data = admin_client.get("/api/admin/security/history").json()
    assert len(data["events"]) == 3
    assert all(e["type"] == "scraping" for e in data["events"])
    assert data["active_blocked_count"] == 0


def test_me_and_logout(admin_client):
    me = admin_client.get("/api/auth/me")
    assert me.status_code == 200
    assert me.json()["user"]["Email"] == "admin@feedbackhub.com"

    admin_client.get("/dashboard")
    assert _service(admin_client).get_stats()["active_user_count"] == 1

    response = admin_client.post("/api/auth/logout")
    assert response.status_code == 200
    assert _service(admin_client).get_stats()["active_user_count"] == 0
    assert admin_client.get("/api/auth/me").status_code == 401


def test_bearer_token_is_accepted(client):
    token = login(client).json()["access_token"]
    client.cookies.clear()

    response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 200
    assert response.json()["user"]["Privilege"] == "Admin"


def test_invalid_credentials(client):
    assert login(client, email="nobody@example.com").status_code == 401
    assert login(client, password="nope").json()["detail"]["message"] == "Invalid credentials"


def test_health_probes(client):
    assert client.get("/healthz").json()["status"] == "ok"
    ready = client.get("/readyz")
    assert ready.status_code == 200
    assert ready.json()["checks"] == {"db": "ok", "redis": "unavailable"}


def test_logout_without_session(client):
    response = client.post("/api/auth/logout")
    assert response.status_code == 200
    assert response.json()["message"] == "Logout successful"
