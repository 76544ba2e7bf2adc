from security.fingerprint import generate_device_fingerprint, hour_bucket, parse_user_agent

HEADERS = {
    "User-Agent": "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_0) AppleWebKit/605.1.15 Version/17.0 Safari/605.1.15",
    "Accept-Language": "vi-VN,vi;q=0.9",
    "Accept-Encoding": "gzip, deflate, br",
    "Sec-CH-UA-Platform": '"macOS"',
}

# 10:00:00 và 10:59:59 cùng 1 giờ, 11:00:00 sang giờ mới
T_START = 1_700_002_800.0


def test_same_headers_same_hour_give_same_fingerprint():
    fp1 = generate_device_fingerprint(HEADERS, now=T_START)
    fp2 = generate_device_fingerprint(HEADERS, now=T_START + 3599)
    assert fp1 == fp2


def test_fingerprint_rotates_on_hour_boundary():
    fp1 = generate_device_fingerprint(HEADERS, now=T_START + 3599)
    fp2 = generate_device_fingerprint(HEADERS, now=T_START + 3600)
    assert fp1 != fp2


def test_header_lookup_is_case_insensitive():
    lowered = {k.lower(): v for k, v in HEADERS.items()}
    assert generate_device_fingerprint(lowered, now=T_START) == generate_device_fingerprint(HEADERS, now=T_START)


def test_missing_headers_are_treated_as_empty():
    assert generate_device_fingerprint({}, now=T_START) == generate_device_fingerprint({"User-Agent": ""}, now=T_START)


def test_different_headers_give_different_fingerprint():
    other = dict(HEADERS, **{"Accept-Language": "en-US"})
    assert generate_device_fingerprint(other, now=T_START) != generate_device_fingerprint(HEADERS, now=T_START)


def test_fingerprint_is_bounded_hex_string():
    fp = generate_device_fingerprint(HEADERS, now=T_START)
    assert len(fp) == 32
    int(fp, 16)


def test_hour_bucket():
    assert hour_bucket(T_START) + 1 == hour_bucket(T_START + 3600)
    assert hour_bucket(T_START) == hour_bucket(T_START + 1)


def test_parse_user_agent():
    assert parse_user_agent(HEADERS["User-Agent"]) == {"platform": "mac", "browser": "safari", "device_type": "desktop"}

    iphone = "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 Version/17.0 Mobile/15E148 Safari/604.1"
    assert parse_user_agent(iphone) == {"platform": "ios", "browser": "safari", "device_type": "mobile"}

    edge = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 Chrome/120.0 Safari/537.36 Edg/120.0"
    assert parse_user_agent(edge)["browser"] == "edge"
    assert parse_user_agent(edge)["platform"] == "windows"

    assert parse_user_agent("") == {"platform": "unknown", "browser": "unknown", "device_type": "desktop"}
