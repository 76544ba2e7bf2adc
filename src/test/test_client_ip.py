from utils.utils import client_ip_from_headers, sanitize_input


def test_forwarded_for_takes_first_hop():
    headers = {"x-forwarded-for": "203.0.113.7, 10.0.0.1, 10.0.0.2"}
    assert client_ip_from_headers(headers, fallback="10.0.0.9") == "203.0.113.7"


def test_real_ip_used_when_forwarded_for_missing():
    assert client_ip_from_headers({"x-real-ip": " 2001:db8::1 "}, fallback="10.0.0.9") == "2001:db8::1"


def test_invalid_forwarded_for_is_ignored():
    headers = {"x-forwarded-for": "not-an-ip<script>" + "A" * 5000}
    assert client_ip_from_headers(headers, fallback="10.0.0.9") == "10.0.0.9"


def test_invalid_forwarded_for_falls_through_to_real_ip():
    headers = {"x-forwarded-for": "garbage", "x-real-ip": "198.51.100.4"}
    assert client_ip_from_headers(headers, fallback="10.0.0.9") == "198.51.100.4"


def test_fallback_host_kept_when_not_an_ip():
    assert client_ip_from_headers({}, fallback="testclient") == "testclient"
    assert client_ip_from_headers({}) == "unknown"


def test_spoofed_header_does_not_become_rate_limit_key(client):
    """
    Header X-Forwarded-For rác không được dùng làm khoá IP trong danh sách IP đang hoạt động
    """
    client.get("/healthz", headers={"X-Forwarded-For": "x" * 2000})
    ips = [i["ip"] for i in client.app.state.threat_service.get_stats()["active_ip_list"]]
    assert ips == ["testclient"]


def test_sanitize_input():
    assert sanitize_input("  <b>hi</b>  ") == "bhi/b"
    assert sanitize_input("abcdef", max_length=3) == "abc"
