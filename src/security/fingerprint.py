"""
Vân tay thiết bị (device fingerprint)

Vân tay là 1 chuỗi "mờ" được tính từ ảnh chụp các header của request + mốc giờ hiện tại:
- Cùng bộ header trong cùng 1 giờ -> cùng vân tay
- Sang giờ mới -> vân tay đổi (đây chỉ là khoá tương quan ngắn hạn, không phải danh tính thiết bị)
- 2 thiết bị khác nhau có header giống hệt nhau trong cùng 1 giờ sẽ trùng vân tay (chấp nhận được)
"""
import hashlib
import time
from typing import Dict, Mapping, Optional
from security.config import FINGERPRINT_HEADERS, THREAT_CONFIG


def _lower_headers(headers: Mapping[str, str]) -> Mapping[str, str]:
    """
    Starlette Headers đã không phân biệt hoa thường, dict thường thì cần chuẩn hoá khoá
    """
    if isinstance(headers, dict):
        return {str(k).lower(): v for k, v in headers.items()}
    return headers


def hour_bucket(now: Optional[float] = None, bucket_seconds: int = THREAT_CONFIG.fingerprint_bucket_seconds) -> int:
    """floor(now / 1 giờ)"""
    now = time.time() if now is None else now
    return int(now // bucket_seconds)


def generate_device_fingerprint(headers: Mapping[str, str], now: Optional[float] = None,
                                bucket_seconds: int = THREAT_CONFIG.fingerprint_bucket_seconds,
                                length: int = THREAT_CONFIG.fingerprint_length) -> str:
    """
    Tạo vân tay thiết bị từ danh sách header cố định (FINGERPRINT_HEADERS) + mốc giờ.  
    - Header thiếu được coi là chuỗi rỗng
    - Kết quả là SHA-256 (hex) cắt còn `length` ký tự
    """
    lowered = _lower_headers(headers)
    parts = [str(lowered.get(name) or "") for name in FINGERPRINT_HEADERS]
    parts.append(str(hour_bucket(now, bucket_seconds)))

    raw = "\x1f".join(parts).encode("utf-8", "ignore")
    return hashlib.sha256(raw).hexdigest()[:length]


def parse_user_agent(user_agent: str) -> Dict[str, str]:
    """
    Suy ra nền tảng / trình duyệt / loại thiết bị từ User-Agent (chỉ dựa trên từ khoá)
    """
    ua = (user_agent or "").lower()

    platform = "unknown"
    if "windows" in ua:
        platform = "windows"
    elif "android" in ua:
        platform = "android"
    elif "iphone" in ua or "ipad" in ua or "ios" in ua:
        platform = "ios"
    elif "mac" in ua:
        platform = "mac"
    elif "linux" in ua:
        platform = "linux"

    # Edge/Chrome đều chứa "chrome", Chrome chứa "safari" -> kiểm tra theo thứ tự cụ thể trước
    browser = "unknown"
    if "edg" in ua:
        browser = "edge"
    elif "firefox" in ua:
        browser = "firefox"
    elif "chrome" in ua:
        browser = "chrome"
    elif "safari" in ua:
        browser = "safari"

    device_type = "desktop"
    if "tablet" in ua or "ipad" in ua:
        device_type = "tablet"
    elif "mobile" in ua or "android" in ua or "iphone" in ua:
        device_type = "mobile"

    return {"platform": platform, "browser": browser, "device_type": device_type}
