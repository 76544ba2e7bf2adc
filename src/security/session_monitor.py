import json
import re
from datetime import datetime
from security.detectors import DetectionContext
from log.system_log import system_logger

# Dấu hiệu bot trên phiên đã đăng nhập (chỉ ghi log, không chặn)
_SESSION_BOT_PATTERNS = [re.compile(p, re.IGNORECASE) for p in (r"bot", r"crawler", r"spider", r"scraper", r"curl", r"wget")]


def log_session_event(ctx: DetectionContext, user_id: str, action: str) -> dict:
    """
    Ghi 1 sự kiện phiên của người dùng đã đăng nhập vào log hệ thống
    """
    event = {
        "user_id": str(user_id),
        "action": action,
        "timestamp": datetime.now().isoformat(),
        "ip": ctx.ip,
        "user_agent": ctx.user_agent or "unknown",
        "path": ctx.path,
    }
    system_logger.info("Session event: %s", json.dumps(event, ensure_ascii=False))
    return event


def detect_suspicious_activity(ctx: DetectionContext, user_id: str) -> bool:
    """
    User-Agent của phiên đã đăng nhập có dấu hiệu bot -> ghi sự kiện `suspicious_activity_detected`
    """
    ua = ctx.user_agent or ""
    suspicious = any(rx.search(ua) for rx in _SESSION_BOT_PATTERNS)
    if suspicious:
        log_session_event(ctx, user_id, "suspicious_activity_detected")
    return suspicious
