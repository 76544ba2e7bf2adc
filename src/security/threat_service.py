"""
Dịch vụ phát hiện mối đe doạ (ThreatDetectionService)

Đối tượng được tạo 1 lần khi khởi động ứng dụng (gắn vào `app.state.threat_service`) và sở hữu toàn bộ trạng thái:
- Lịch sử sự kiện đe doạ theo vân tay thiết bị (chỉ thêm, không sửa)
- Danh sách thiết bị bị chặn (chỉ gỡ khi quản trị viên mở chặn)
- Bộ đếm brute force
- Danh sách IP đang hoạt động (hết hạn sau 5 phút) và phiên người dùng đang hoạt động

Mọi thao tác đọc/ghi trạng thái đều đi qua 1 `threading.RLock` vì các request được xử lý song song.
Việc ghi xuống CSDL được giao cho `ThreatEventRecorder` (không chờ), lỗi ghi chỉ làm mất lịch sử chứ không ảnh hưởng quyết định chặn.
"""
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional
from log.system_log import system_logger
from security.config import THREAT_CONFIG, ThreatConfig
from security.detectors import (
    DETECTOR_PIPELINE, BruteForceCounters, DetectionContext,
    Severity, ThreatFinding, ThreatType,
)
from security.fingerprint import parse_user_agent
from utils.random_id import new_threat_id


def _iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


@dataclass(frozen=True)
class ThreatEvent:
    """
    1 sự kiện đe doạ đã ghi nhận. Bất biến sau khi tạo, kể cả cờ `blocked`:
    `blocked = True` khi và chỉ khi chính sự kiện này khiến thiết bị bị đưa vào danh sách chặn.
    """
    id: str
    type: ThreatType
    severity: Severity
    source_ip: str
    user_agent: str
    device_fingerprint: str
    timestamp: float
    request_path: str
    details: Dict[str, Any] = field(default_factory=dict)
    blocked: bool = False
    user_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "severity": self.severity.value,
            "user_id": self.user_id,
            "source_ip": self.source_ip,
            "user_agent": self.user_agent,
            "device_fingerprint": self.device_fingerprint,
            "timestamp": _iso(self.timestamp),
            "request_path": self.request_path,
            "details": dict(self.details),
            "blocked": self.blocked,
        }


class ThreatDetectionService:

    def __init__(self, config: ThreatConfig = THREAT_CONFIG, recorder=None, clock: Callable[[], float] = time.time):
        self.config = config
        self.recorder = recorder
        self._clock = clock
        self._lock = threading.RLock()
        self._counters = BruteForceCounters()
        self._threats: Dict[str, List[ThreatEvent]] = {}
        self._blocked: Dict[str, Dict[str, Any]] = {}
        self._active_ips: Dict[str, Dict[str, Any]] = {}
        self._active_users: Dict[str, Dict[str, Any]] = {}

    # ------------------------------------------------------------------
    # Phát hiện
    # ------------------------------------------------------------------
    def detect_threats(self, ctx: DetectionContext) -> Optional[ThreatEvent]:
        """
        Chạy lần lượt các detector theo thứ tự cố định, dừng ở kết quả đầu tiên.  
        Detector nào lỗi thì coi như không phát hiện gì (fail-open) và chạy tiếp detector sau.
        """
        ctx = self._with_now(ctx)
        for detector in DETECTOR_PIPELINE:
            try:
                finding = detector.run(ctx, self.is_blocked, self._counters, self.config)
            except Exception as ex:
                system_logger.warning("Detector %s lỗi, bỏ qua: %s", detector.name, ex)
                continue

            if finding is not None:
                return self._register(ctx, finding)
        return None

    def record_blocked_access(self, ctx: DetectionContext) -> ThreatEvent:
        """Thiết bị đang bị chặn vẫn cố truy cập -> ghi 1 sự kiện `critical`"""
        finding = ThreatFinding(
            type=ThreatType.SCRAPING,
            severity=Severity.CRITICAL,
            details={"reason": "device_blocked", "message": "Device is blocked"},
        )
        return self._register(self._with_now(ctx), finding)

    def record_rate_limited(self, ctx: DetectionContext, count: int) -> ThreatEvent:
        """Vượt giới hạn tốc độ đăng nhập -> ghi 1 sự kiện `low`"""
        finding = ThreatFinding(
            type=ThreatType.RATE_LIMIT_EXCEEDED,
            severity=Severity.LOW,
            details={
                "attempts": count,
                "limit": self.config.login_rate_max_requests,
                "window_minutes": self.config.login_rate_window_seconds // 60,
            },
        )
        return self._register(self._with_now(ctx), finding)

    def _with_now(self, ctx: DetectionContext) -> DetectionContext:
        if ctx.now is not None:
            return ctx
        return DetectionContext(
            ip=ctx.ip, user_agent=ctx.user_agent, path=ctx.path, fingerprint=ctx.fingerprint,
            method=ctx.method, user_id=ctx.user_id, now=self._clock(),
        )

    def _should_block(self, history: List[ThreatEvent], finding: ThreatFinding, now: float) -> bool:
        """
        Chính sách chặn, tính cả sự kiện mới:
        - Sự kiện mới là `critical`
        - ≥ high_severity_block_count sự kiện `high` trong high_severity_window_seconds gần nhất
        - Tổng số sự kiện của thiết bị đạt lifetime_block_count
        """
        if finding.severity == Severity.CRITICAL:
            return True

        since = now - self.config.high_severity_window_seconds
        recent_high = sum(1 for e in history if e.severity == Severity.HIGH and e.timestamp >= since)
        if finding.severity == Severity.HIGH:
            recent_high += 1
        if recent_high >= self.config.high_severity_block_count:
            return True

        return len(history) + 1 >= self.config.lifetime_block_count

    def _register(self, ctx: DetectionContext, finding: ThreatFinding) -> ThreatEvent:
        fp = ctx.fingerprint
        with self._lock:
            history = self._threats.setdefault(fp, [])
            caused_block = self._should_block(history, finding, ctx.now) and fp not in self._blocked
            block_entry = None
            if caused_block:
                block_entry = {
                    "device_fingerprint": fp,
                    "reason": f"{finding.type.value}:{finding.severity.value}",
                    "blocked_at": ctx.now,
                    "metadata": {"ip": ctx.ip, "user_agent": ctx.user_agent, "path": ctx.path},
                }
                self._blocked[fp] = block_entry

            event = ThreatEvent(
                id=new_threat_id(int(ctx.now * 1000)),
                type=finding.type,
                severity=finding.severity,
                source_ip=ctx.ip,
                user_agent=ctx.user_agent,
                device_fingerprint=fp,
                timestamp=ctx.now,
                request_path=ctx.path,
                details=dict(finding.details),
                blocked=caused_block,
                user_id=ctx.user_id,
            )
            history.append(event)

        system_logger.warning(
            "Threat %s/%s fp=%s ip=%s path=%s blocked=%s",
            event.type.value, event.severity.value, fp, ctx.ip, ctx.path, caused_block,
        )

        if self.recorder is not None:
            self.recorder.record_event(event)
            if caused_block:
                self.recorder.record_block(fp, block_entry["reason"], dict(block_entry["metadata"]))
        return event

    # ------------------------------------------------------------------
    # Danh sách chặn
    # ------------------------------------------------------------------
    def is_blocked(self, fingerprint: str) -> bool:
        with self._lock:
            return fingerprint in self._blocked

    def block(self, fingerprint: str, reason: str, metadata: Optional[Dict[str, Any]] = None) -> bool:
        """
        Chặn thủ công 1 thiết bị. Trả về False nếu vân tay rỗng hoặc thiết bị đã bị chặn từ trước
        """
        if not fingerprint:
            return False

        with self._lock:
            if fingerprint in self._blocked:
                return False
            self._blocked[fingerprint] = {
                "device_fingerprint": fingerprint,
                "reason": reason,
                "blocked_at": self._clock(),
                "metadata": dict(metadata or {}),
            }

        system_logger.warning("Block device fp=%s reason=%s", fingerprint, reason)
        if self.recorder is not None:
            self.recorder.record_block(fingerprint, reason, metadata or {})
        return True

    def unblock(self, fingerprint: str) -> bool:
        """
        Gỡ chặn 1 thiết bị. Lịch sử sự kiện được giữ nguyên.  
        Trả về False nếu thiết bị không nằm trong danh sách chặn
        """
        with self._lock:
            removed = self._blocked.pop(fingerprint, None)

        if removed is None:
            return False

        system_logger.info("Unblock device fp=%s", fingerprint)
        if self.recorder is not None:
            self.recorder.record_unblock(fingerprint)
        return True

    def restore_blocked(self, entries: Iterable[Dict[str, Any]]) -> int:
        """
        Nạp lại danh sách chặn đã lưu trong CSDL khi khởi động (không ghi ngược xuống CSDL)  
        Mỗi phần tử: {"device_fingerprint", "reason", "blocked_at" (epoch, tuỳ chọn)}
        """
        restored = 0
        with self._lock:
            for item in entries:
                fp = item.get("device_fingerprint")
                if not fp or fp in self._blocked:
                    continue
                self._blocked[fp] = {
                    "device_fingerprint": fp,
                    "reason": item.get("reason") or "restored",
                    "blocked_at": item.get("blocked_at") or self._clock(),
                    "metadata": {},
                }
                restored += 1
        return restored

    def get_blocked_devices(self) -> List[Dict[str, Any]]:
        with self._lock:
            items = [dict(v) for v in self._blocked.values()]
        for item in items:
            item["blocked_at"] = _iso(item["blocked_at"])
        return items

    def get_device_threats(self, fingerprint: str) -> List[ThreatEvent]:
        with self._lock:
            return list(self._threats.get(fingerprint, []))

    # ------------------------------------------------------------------
    # Theo dõi IP / người dùng
    # ------------------------------------------------------------------
    def _evict_stale_ips(self, now: float) -> int:
        # Gọi khi đã giữ lock
        ttl = self.config.active_ip_ttl_seconds
        stale = [ip for ip, info in self._active_ips.items() if now - info["last_seen"] > ttl]
        for ip in stale:
            del self._active_ips[ip]
        return len(stale)

    def track_ip(self, ip: str, user_agent: str, fingerprint: str) -> None:
        now = self._clock()
        with self._lock:
            self._evict_stale_ips(now)
            info = self._active_ips.get(ip)
            if info is None:
                self._active_ips[ip] = {
                    "ip": ip,
                    "last_seen": now,
                    "user_agent": user_agent,
                    "device_fingerprint": fingerprint,
                    "request_count": 1,
                }
            else:
                info["last_seen"] = now
                info["user_agent"] = user_agent
                info["device_fingerprint"] = fingerprint
                info["request_count"] += 1

    def track_user_login(self, user_id: str, fingerprint: str, user_agent: str, ip: str) -> None:
        """Ghi nhận 1 phiên người dùng mới (ghi đè phiên cũ của cùng user)"""
        now = self._clock()
        session = {
            "user_id": str(user_id),
            "device_fingerprint": fingerprint,
            "ip": ip,
            "login_time": now,
            "last_seen": now,
        }
        session.update(parse_user_agent(user_agent))
        with self._lock:
            self._active_users[str(user_id)] = session

    def update_user_activity(self, user_id: str) -> bool:
        with self._lock:
            session = self._active_users.get(str(user_id))
            if session is None:
                return False
            session["last_seen"] = self._clock()
            return True

    def remove_user(self, user_id: str) -> bool:
        with self._lock:
            return self._active_users.pop(str(user_id), None) is not None

    def get_active_users(self) -> List[Dict[str, Any]]:
        with self._lock:
            sessions = [dict(s) for s in self._active_users.values()]
        for s in sessions:
            s["login_time"] = _iso(s["login_time"])
            s["last_seen"] = _iso(s["last_seen"])
        return sessions

    # ------------------------------------------------------------------
    # Thống kê / dọn dẹp
    # ------------------------------------------------------------------
    def get_stats(self) -> Dict[str, Any]:
        now = self._clock()
        since = now - self.config.recent_threat_seconds
        with self._lock:
            self._evict_stale_ips(now)
            all_events = [e for events in self._threats.values() for e in events]
            blocked_count = len(self._blocked)
            active_ips = [dict(v) for v in self._active_ips.values()]

        type_counts: Dict[str, int] = {}
        for e in all_events:
            type_counts[e.type.value] = type_counts.get(e.type.value, 0) + 1

        recent = sorted((e for e in all_events if e.timestamp >= since), key=lambda e: e.timestamp, reverse=True)
        for info in active_ips:
            info["last_seen"] = _iso(info["last_seen"])

        users = self.get_active_users()
        return {
            "total_threats": len(all_events),
            "blocked_device_count": blocked_count,
            "blocked_devices": self.get_blocked_devices(),
            "recent_threats": [e.to_dict() for e in recent],
            "threat_type_counts": type_counts,
            "active_user_count": len(users),
            "active_ip_count": len(active_ips),
            "user_device_list": users,
            "active_ip_list": active_ips,
        }

    def cleanup(self, now: Optional[float] = None) -> Dict[str, int]:
        """Dọn IP hết hạn và bộ đếm brute force đã nguội (luồng bảo trì gọi định kỳ)"""
        now = self._clock() if now is None else now
        with self._lock:
            stale_ips = self._evict_stale_ips(now)
        stale_counters = self._counters.purge(now, self.config.brute_force_window_seconds)
        return {"stale_ips": stale_ips, "stale_counters": stale_counters}
