from fastapi.testclient import TestClient
import main
from conftest import BROWSER_HEADERS, login
from security.config import SECURITY_HEADERS


def _threats(client):
    return client.app.state.threat_service.get_stats()["recent_threats"]


def test_security_headers_on_every_response(client):
    response = client.get("/healthz")
    assert response.status_code == 200
    for name, value in SECURITY_HEADERS.items():
        assert response.headers[name] == value


def test_brute_force_on_login_page_blocks_device(client):
    """
    9 lần đầu bình thường, lần 10-13 sinh sự kiện `high`, lần 14 khiến thiết bị bị chặn, lần 15 bị từ chối ngay
    """
    statuses = [client.get("/admin/login").status_code for _ in range(13)]
    assert 403 not in statuses

    threats = _threats(client)
    assert len(threats) == 4
    assert all(t["type"] == "brute_force" and t["severity"] == "high" for t in threats)

    fourteenth = client.get("/admin/login")
    assert fourteenth.status_code == 403
    assert fourteenth.json()["code"] == "THREAT_DETECTED"

    fifteenth = client.get("/admin/login")
    assert fifteenth.status_code == 403
    assert fifteenth.json()["code"] == "DEVICE_BLOCKED"

    # Thiết bị bị chặn không vào được cả các trang khác
    assert client.get("/dashboard").status_code == 403
    # Các đường dẫn /api/* không đi qua lớp phát hiện
    assert client.get("/api/auth/me").status_code == 401


def test_blocked_access_records_critical_event(client, clock):
    for _ in range(15):
        client.get("/admin/login")
        clock.advance(1)

    newest = _threats(client)[0]
    assert newest["severity"] == "critical"
    assert newest["details"]["reason"] == "device_blocked"
    assert newest["blocked"] is False
    assert sum(1 for t in _threats(client) if t["blocked"]) == 1


def test_scraping_user_agent_is_recorded_but_not_blocked(client):
    response = client.get("/admin/login", headers={"User-Agent": "Scrapy/2.11 (+https://scrapy.org)"})
    assert response.status_code != 403

    threats = _threats(client)
    assert len(threats) == 1
    assert threats[0]["type"] == "scraping"
    assert threats[0]["severity"] == "medium"
    assert threats[0]["details"]["detectedPattern"] == "Scrapy/2.11 (+https://scrapy.org)"


def test_double_slash_path_is_suspicious(client):
    response = client.get("/admin//secret")
    assert response.status_code == 404

    threats = _threats(client)
    assert threats[0]["type"] == "suspicious_pattern"
    assert threats[0]["details"]["suspiciousPath"] == "/admin//secret"


def test_normal_pages_do_not_run_detectors(client):
    client.get("/dashboard", headers={"User-Agent": "curl/8.4"})
    assert _threats(client) == []


def test_api_paths_are_excluded(client):
    response = client.get("/api/threats", headers={"User-Agent": "curl/8.4"})
    assert response.status_code == 401
    assert "X-Frame-Options" not in response.headers
    assert client.app.state.threat_service.get_stats()["active_ip_count"] == 0


def test_login_rate_limit(client, clock):
    for _ in range(5):
        assert login(client, password="wrong-password").status_code == 401
        clock.advance(1)

    sixth = login(client)
    assert sixth.status_code == 429
    assert sixth.json()["code"] == "RATE_LIMITED"

    threats = _threats(client)
    assert threats[0]["type"] == "rate_limit_exceeded"
    assert threats[0]["severity"] == "low"
    assert threats[0]["details"]["attempts"] == 6


def test_failed_login_is_audited(client, db):
    from db.models import DbAudit_Log

    login(client, password="wrong-password")
    rows = db.query(DbAudit_Log).filter(DbAudit_Log.Action == "login_failed").all()
    assert len(rows) == 1


def test_landing_page_tracks_user_session(admin_client):
    response = admin_client.get("/dashboard")
    assert response.status_code == 200
    assert response.json()["user"]["Privilege"] == "Admin"

    stats = admin_client.app.state.threat_service.get_stats()
    assert stats["active_user_count"] == 1
    assert stats["user_device_list"][0]["browser"] == "chrome"
    assert stats["active_ip_count"] == 1


def test_blocked_devices_survive_restart(client, recorder):
    for _ in range(14):
        client.get("/admin/login")
    assert client.app.state.threat_service.get_blocked_devices()

    # Trạng thái mới, nhưng danh sách chặn đã lưu trong CSDL được nạp lại
    recorder.flush()
    main.init_security_state(main.app, recorder=recorder)
    assert main._restore_blocked_devices(main.app.state.threat_service) == 1

    fresh = TestClient(main.app, headers=BROWSER_HEADERS)
    assert fresh.get("/admin/login").json()["code"] == "DEVICE_BLOCKED"
