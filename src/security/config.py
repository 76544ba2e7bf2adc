import os
from dataclasses import dataclass  # # Dùng dataclass cho nhóm cấu hình gọn gàng
from typing import Dict, Tuple
from dotenv import load_dotenv

load_dotenv()  # Tự động tìm và nạp file .env ở thư mục hiện tại


def _env_int(name: str, default: int) -> int:
    """
    Đọc biến môi trường kiểu số nguyên, nếu không có hoặc sai định dạng thì dùng mặc định
    """
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class ThreatConfig:
    """
    Gom toàn bộ ngưỡng của lớp phát hiện mối đe doạ vào 1 struct:
    - login_path: đường dẫn đăng nhập (áp dụng đếm brute force + giới hạn tốc độ)
    - landing_path: trang đích sau khi đăng nhập thành công (ghi nhận phiên người dùng)
    - brute_force_window_seconds / brute_force_max_attempts: cửa sổ trượt 30 phút, đạt 10 lần -> cảnh báo `high`
    - high_severity_window_seconds / high_severity_block_count: ≥ 5 sự kiện `high` trong 5 phút -> BLOCK
    - lifetime_block_count: tổng số sự kiện của 1 thiết bị chạm 20 -> BLOCK
    - active_ip_ttl_seconds: IP không hoạt động quá 5 phút sẽ bị loại khỏi danh sách
    - recent_threat_seconds: các sự kiện trong 24 giờ gần nhất được coi là "gần đây"
    - login_rate_window_seconds / login_rate_max_requests: POST đăng nhập tối đa 5 lần / 15 phút / IP
    - cleanup_interval_seconds: chu kỳ thread dọn dẹp các bộ đếm cũ
    - fingerprint_bucket_seconds / fingerprint_length: vân tay thiết bị đổi theo giờ, dài 32 ký tự
    """
    login_path: str = "/admin/login"
    landing_path: str = "/dashboard"
    brute_force_window_seconds: int = 30 * 60
    brute_force_max_attempts: int = 10
    high_severity_window_seconds: int = 5 * 60
    high_severity_block_count: int = 5
    lifetime_block_count: int = 20
    active_ip_ttl_seconds: int = 5 * 60
    recent_threat_seconds: int = 24 * 60 * 60
    login_rate_window_seconds: int = 15 * 60
    login_rate_max_requests: int = 5
    cleanup_interval_seconds: int = 60
    fingerprint_bucket_seconds: int = 60 * 60
    fingerprint_length: int = 32
    recorder_queue_size: int = 1000
    recorder_max_retries: int = 3


def load_threat_config() -> ThreatConfig:
    """
    Tạo cấu hình từ biến môi trường (các giá trị không khai báo giữ mặc định)
    """
    return ThreatConfig(
        login_path=os.getenv("LOGIN_PATH", "/admin/login"),
        landing_path=os.getenv("LANDING_PATH", "/dashboard"),
        brute_force_window_seconds=_env_int("BRUTE_FORCE_WINDOW_SECONDS", 30 * 60),
        brute_force_max_attempts=_env_int("BRUTE_FORCE_MAX_ATTEMPTS", 10),
        high_severity_window_seconds=_env_int("HIGH_SEVERITY_WINDOW_SECONDS", 5 * 60),
        high_severity_block_count=_env_int("HIGH_SEVERITY_BLOCK_COUNT", 5),
        lifetime_block_count=_env_int("LIFETIME_BLOCK_COUNT", 20),
        active_ip_ttl_seconds=_env_int("ACTIVE_IP_TTL_SECONDS", 5 * 60),
        login_rate_window_seconds=_env_int("LOGIN_RATE_WINDOW_SECONDS", 15 * 60),
        login_rate_max_requests=_env_int("LOGIN_RATE_MAX_REQUESTS", 5),
        cleanup_interval_seconds=_env_int("SECURITY_CLEANUP_INTERVAL_SECONDS", 60),
        recorder_queue_size=_env_int("THREAT_RECORDER_QUEUE_SIZE", 1000),
        recorder_max_retries=_env_int("THREAT_RECORDER_MAX_RETRIES", 3),
    )


# Cấu hình mặc định (đọc từ biến môi trường 1 lần khi import)
THREAT_CONFIG = load_threat_config()

# Các header dùng để tạo vân tay thiết bị (THỨ TỰ CỐ ĐỊNH, đổi thứ tự sẽ đổi toàn bộ vân tay)
FINGERPRINT_HEADERS: Tuple[str, ...] = (
    "user-agent",
    "accept-language",
    "accept-encoding",
    "accept-charset",
    "accept",
    "connection",
    "upgrade-insecure-requests",
    "sec-fetch-site",
    "sec-fetch-mode",
    "sec-fetch-user",
    "sec-fetch-dest",
    "sec-ch-ua",
    "sec-ch-ua-mobile",
    "sec-ch-ua-platform",
    "dnt",
    "viewport-width",
    "width",
)

# Dấu hiệu của bot/công cụ thu thập dữ liệu trong User-Agent (so khớp không phân biệt hoa thường)
SCRAPING_PATTERNS: Tuple[str, ...] = (
    r"bot", r"crawler", r"spider", r"scraper", r"curl", r"wget",
    r"python", r"requests", r"scrapy", r"selenium", r"phantom", r"headless",
)

# Dấu hiệu duyệt thư mục trong đường dẫn
SUSPICIOUS_PATH_MARKERS: Tuple[str, ...] = ("..", "//")

# Các tiền tố đường dẫn KHÔNG đi qua lớp phát hiện mối đe doạ (tài nguyên tĩnh + API)
EXCLUDED_PATH_PREFIXES: Tuple[str, ...] = ("/api/", "/static/")
EXCLUDED_PATHS = {"/api", "/favicon.ico", "/docs", "/redoc", "/openapi.json"}

# Header bảo mật cơ bản gắn vào mọi response
SECURITY_HEADERS: Dict[str, str] = {
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains; preload",
    "X-XSS-Protection": "1; mode=block",
    "Permissions-Policy": (
        "camera=(), microphone=(), geolocation=(), payment=(), usb=(), "
        "magnetometer=(), gyroscope=(), accelerometer=()"
    ),
    "Content-Security-Policy": (
        "default-src 'self'; script-src 'self'; style-src 'self' 'unsafe-inline'; "
        "img-src 'self' data: blob: https:; font-src 'self' data:; connect-src 'self'; "
        "frame-ancestors 'none'; base-uri 'self'; form-action 'self'"
    ),
    "X-DNS-Prefetch-Control": "off",
    "X-Download-Options": "noopen",
    "X-Permitted-Cross-Domain-Policies": "none",
}
