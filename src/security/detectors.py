"""
Các bộ phát hiện mối đe doạ (detector)

Mỗi detector là 1 hàm độc lập nhận `DetectionContext` và trả về tối đa 1 `ThreatFinding`.
Thứ tự chạy cố định (DETECTOR_PIPELINE), chỉ kết quả khớp ĐẦU TIÊN được dùng cho 1 request:
    blocked_device -> brute_force -> scraping -> suspicious_path
"""
import re
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, NamedTuple, Optional, Tuple
from security.config import SCRAPING_PATTERNS, SUSPICIOUS_PATH_MARKERS, ThreatConfig


class ThreatType(str, Enum):
    BRUTE_FORCE = "brute_force"
    SCRAPING = "scraping"
    SUSPICIOUS_PATTERN = "suspicious_pattern"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    def __ge__(self, other):
        if isinstance(other, Severity):
            return self.rank >= other.rank
        return NotImplemented

    def __gt__(self, other):
        if isinstance(other, Severity):
            return self.rank > other.rank
        return NotImplemented

    def __le__(self, other):
        if isinstance(other, Severity):
            return self.rank <= other.rank
        return NotImplemented

    def __lt__(self, other):
        if isinstance(other, Severity):
            return self.rank < other.rank
        return NotImplemented


_SEVERITY_RANK = {Severity.LOW: 0, Severity.MEDIUM: 1, Severity.HIGH: 2, Severity.CRITICAL: 3}


@dataclass(frozen=True)
class DetectionContext:
    """
    Ảnh chụp thông tin của 1 request đưa vào các detector
    """
    ip: str
    user_agent: str
    path: str
    fingerprint: str
    method: str = "GET"
    user_id: Optional[str] = None
    now: Optional[float] = None


@dataclass(frozen=True)
class ThreatFinding:
    """
    Kết quả của 1 detector (service sẽ chuyển thành ThreatEvent và áp chính sách BLOCK)
    """
    type: ThreatType
    severity: Severity
    details: Dict[str, Any] = field(default_factory=dict)


class BruteForceCounters:
    """
    Bộ đếm số lần truy cập trang đăng nhập theo khoá (vân tay thiết bị, dự phòng là IP).  
    Cửa sổ trượt: nếu `now - last_seen > window` thì bộ đếm bắt đầu lại từ 1.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._counters: Dict[str, Dict[str, float]] = {}

    def hit(self, key: str, now: float, window_seconds: float) -> int:
        """Tăng bộ đếm của khoá và trả về giá trị sau khi tăng"""
        with self._lock:
            entry = self._counters.get(key)
            if entry is None or now - entry["last_seen"] > window_seconds:
                self._counters[key] = {"count": 1, "window_start": now, "last_seen": now}
                return 1

            entry["count"] += 1
            entry["last_seen"] = now
            return int(entry["count"])

    def get(self, key: str) -> Optional[Dict[str, float]]:
        with self._lock:
            entry = self._counters.get(key)
            return dict(entry) if entry else None

    def purge(self, now: float, window_seconds: float) -> int:
        """Xoá các bộ đếm đã nguội (quá cửa sổ), trả về số khoá đã xoá"""
        with self._lock:
            stale = [k for k, v in self._counters.items() if now - v["last_seen"] > window_seconds]
            for k in stale:
                del self._counters[k]
            return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._counters)


# Biên dịch 1 lần các mẫu User-Agent của bot/công cụ
_SCRAPING_REGEXES = [re.compile(p, re.IGNORECASE) for p in SCRAPING_PATTERNS]


def brute_force_key(ctx: DetectionContext) -> str:
    """Ưu tiên vân tay thiết bị, nếu rỗng thì dùng IP"""
    return ctx.fingerprint or f"ip:{ctx.ip}"


def detect_blocked_device(ctx: DetectionContext, is_blocked: Callable[[str], bool],
                          counters: BruteForceCounters, config: ThreatConfig) -> Optional[ThreatFinding]:
    """
    Thiết bị đã nằm trong danh sách chặn -> mỗi lần truy cập đều sinh 1 sự kiện `critical`
    """
    if not is_blocked(ctx.fingerprint):
        return None
    return ThreatFinding(
        type=ThreatType.SCRAPING,
        severity=Severity.CRITICAL,
        details={"reason": "device_blocked", "message": "Device is blocked"},
    )


def detect_brute_force(ctx: DetectionContext, is_blocked: Callable[[str], bool],
                       counters: BruteForceCounters, config: ThreatConfig) -> Optional[ThreatFinding]:
    """
    Chỉ áp dụng cho đường dẫn đăng nhập.  
    Đếm số lần truy cập trong cửa sổ trượt, đạt `brute_force_max_attempts` -> `high`
    """
    if config.login_path not in ctx.path:
        return None

    count = counters.hit(brute_force_key(ctx), ctx.now, config.brute_force_window_seconds)
    if count < config.brute_force_max_attempts:
        return None

    return ThreatFinding(
        type=ThreatType.BRUTE_FORCE,
        severity=Severity.HIGH,
        details={
            "attempts": count,
            "window_minutes": config.brute_force_window_seconds // 60,
            "key": "fingerprint" if ctx.fingerprint else "ip",
        },
    )


def detect_scraping(ctx: DetectionContext, is_blocked: Callable[[str], bool],
                    counters: BruteForceCounters, config: ThreatConfig) -> Optional[ThreatFinding]:
    """
    User-Agent chứa dấu hiệu của bot/công cụ tự động -> `medium`
    """
    ua = ctx.user_agent or ""
    if not any(rx.search(ua) for rx in _SCRAPING_REGEXES):
        return None

    return ThreatFinding(
        type=ThreatType.SCRAPING,
        severity=Severity.MEDIUM,
        details={"detectedPattern": ua, "reason": "suspicious_user_agent"},
    )


def detect_suspicious_path(ctx: DetectionContext, is_blocked: Callable[[str], bool],
                           counters: BruteForceCounters, config: ThreatConfig) -> Optional[ThreatFinding]:
    """
    Đường dẫn có dấu hiệu duyệt thư mục (`..` hoặc `//`) -> `medium`
    """
    if not any(marker in ctx.path for marker in SUSPICIOUS_PATH_MARKERS):
        return None

    return ThreatFinding(
        type=ThreatType.SUSPICIOUS_PATTERN,
        severity=Severity.MEDIUM,
        details={"reason": "path_traversal_attempt", "suspiciousPath": ctx.path},
    )


class Detector(NamedTuple):
    name: str
    run: Callable[..., Optional[ThreatFinding]]


# Thứ tự cố định, KHÔNG sắp xếp lại
DETECTOR_PIPELINE: Tuple[Detector, ...] = (
    Detector("blocked_device", detect_blocked_device),
    Detector("brute_force", detect_brute_force),
    Detector("scraping", detect_scraping),
    Detector("suspicious_path", detect_suspicious_path),
)


def is_sensitive_path(path: str, config: ThreatConfig) -> bool:
    """
    Các đường dẫn cần chạy detector: trang đăng nhập hoặc có dấu hiệu duyệt thư mục  
    Trang đăng nhập so khớp chính xác, `/admin/login/x` không đi qua detector.  
    `detect_brute_force` so khớp chuỗi con nên chỉ đếm các request đã qua được bước lọc này
    """
    return path == config.login_path or any(marker in path for marker in SUSPICIOUS_PATH_MARKERS)
