from security.config import ThreatConfig
from security.detectors import (
    DETECTOR_PIPELINE, BruteForceCounters, DetectionContext, Severity, ThreatType,
    detect_brute_force, detect_scraping, detect_suspicious_path, is_sensitive_path,
)

CONFIG = ThreatConfig()
NOW = 1_700_000_000.0


def _ctx(path="/", ua="Mozilla/5.0", fp="fp-1", ip="10.0.0.1", now=NOW):
    return DetectionContext(ip=ip, user_agent=ua, path=path, fingerprint=fp, now=now)


def _never_blocked(fp):
    return False


def test_pipeline_order_is_fixed():
    assert [d.name for d in DETECTOR_PIPELINE] == ["blocked_device", "brute_force", "scraping", "suspicious_path"]


def test_scraping_user_agent_matches_and_records_full_agent():
    ua = "Scrapy/2.1 (+https://scrapy.org)"
    finding = detect_scraping(_ctx(ua=ua), _never_blocked, BruteForceCounters(), CONFIG)
    assert finding.type == ThreatType.SCRAPING
    assert finding.severity == Severity.MEDIUM
    assert finding.details["detectedPattern"] == ua


def test_scraping_is_case_insensitive_and_ignores_browsers():
    counters = BruteForceCounters()
    assert detect_scraping(_ctx(ua="CURL/8.0"), _never_blocked, counters, CONFIG) is not None
    assert detect_scraping(_ctx(ua="Mozilla/5.0 (Windows NT 10.0) Chrome/120.0"), _never_blocked, counters, CONFIG) is None


def test_suspicious_path():
    counters = BruteForceCounters()
    finding = detect_suspicious_path(_ctx(path="/admin/../secret"), _never_blocked, counters, CONFIG)
    assert finding.type == ThreatType.SUSPICIOUS_PATTERN
    assert finding.severity == Severity.MEDIUM
    assert detect_suspicious_path(_ctx(path="/admin//x"), _never_blocked, counters, CONFIG) is not None
    assert detect_suspicious_path(_ctx(path="/admin/x"), _never_blocked, counters, CONFIG) is None


def test_brute_force_fires_on_tenth_attempt():
    counters = BruteForceCounters()
    results = [detect_brute_force(_ctx(path="/admin/login"), _never_blocked, counters, CONFIG) for _ in range(10)]
    assert all(r is None for r in results[:9])
    assert results[9].type == ThreatType.BRUTE_FORCE
    assert results[9].severity == Severity.HIGH
    assert results[9].details["attempts"] == 10


def test_brute_force_only_counts_login_path():
    counters = BruteForceCounters()
    assert detect_brute_force(_ctx(path="/dashboard"), _never_blocked, counters, CONFIG) is None
    assert len(counters) == 0


def test_brute_force_window_restarts_after_idle_gap():
    counters = BruteForceCounters()
    for _ in range(9):
        detect_brute_force(_ctx(path="/admin/login"), _never_blocked, counters, CONFIG)

    later = _ctx(path="/admin/login", now=NOW + CONFIG.brute_force_window_seconds + 1)
    assert detect_brute_force(later, _never_blocked, counters, CONFIG) is None
    assert counters.get("fp-1")["count"] == 1


def test_brute_force_falls_back_to_ip_key():
    counters = BruteForceCounters()
    detect_brute_force(_ctx(path="/admin/login", fp=""), _never_blocked, counters, CONFIG)
    assert counters.get("ip:10.0.0.1")["count"] == 1


def test_purge_removes_idle_counters():
    counters = BruteForceCounters()
    counters.hit("a", NOW, 60)
    counters.hit("b", NOW + 100, 60)
    assert counters.purge(NOW + 120, 60) == 1
    assert counters.get("a") is None
    assert counters.get("b") is not None


def test_sensitive_paths():
    assert is_sensitive_path("/admin/login", CONFIG)
    assert is_sensitive_path("/a/../b", CONFIG)
    assert is_sensitive_path("/a//b", CONFIG)
    assert not is_sensitive_path("/dashboard", CONFIG)


def test_severity_ordering():
    assert Severity.LOW < Severity.MEDIUM < Severity.HIGH < Severity.CRITICAL
    assert max([Severity.MEDIUM, Severity.CRITICAL, Severity.LOW]) == Severity.CRITICAL


def test_login_subpath_is_not_sensitive_but_counts_when_detected():
    assert not is_sensitive_path("/admin/login/x", CONFIG)
    assert not is_sensitive_path("/admin/login/", CONFIG)

    # Detector tự nó khớp chuỗi con: "/admin/login//x" lọt qua bước lọc (có "//") và được đếm
    counters = BruteForceCounters()
    assert is_sensitive_path("/admin/login//x", CONFIG)
    detect_brute_force(_ctx(path="/admin/login//x"), _never_blocked, counters, CONFIG)
    assert counters.get("fp-1")["count"] == 1


def test_login_subpath_skips_detection_in_middleware(client):
    for _ in range(12):
        client.get("/admin/login/x")
    assert client.app.state.threat_service.get_stats()["total_threats"] == 0
