from typing import Optional
from fastapi import Request
from fastapi.responses import JSONResponse

from auth.oauth2 import decode_session_token, get_token_from_request
from log.system_log import system_logger
from security.config import EXCLUDED_PATH_PREFIXES, EXCLUDED_PATHS, SECURITY_HEADERS
from security.detectors import DetectionContext, Severity, is_sensitive_path
from security.fingerprint import generate_device_fingerprint
from security.session_monitor import detect_suspicious_activity, log_session_event
from utils.utils import get_client_ip


def _is_excluded(path: str) -> bool:
    """Tài nguyên tĩnh và các đường dẫn /api/* không đi qua lớp phát hiện"""
    return path in EXCLUDED_PATHS or path.startswith(EXCLUDED_PATH_PREFIXES)

def _with_security_headers(response):
    for name, value in SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)
    return response

def _deny(status_code: int, message: str, code: Optional[str] = None) -> JSONResponse:
    content = {"detail": message}
    if code:
        content["code"] = code
    return _with_security_headers(JSONResponse(content, status_code=status_code))

def _build_context(request: Request, user_id: Optional[str]) -> DetectionContext:
    return DetectionContext(
        ip=get_client_ip(request),
        user_agent=request.headers.get("user-agent", ""),
        path=request.url.path,
        fingerprint=generate_device_fingerprint(request.headers),
        method=request.method,
        user_id=user_id,
    )

def _session_user_id(request: Request) -> Optional[str]:
    payload = decode_session_token(get_token_from_request(request))
    return str(payload["ID"]) if payload else None


async def security_guard(request: Request, call_next):
    """
    Middleware phát hiện mối đe doạ, chạy cho mọi request (trừ tài nguyên tĩnh và /api/*):
    1) Tạo vân tay thiết bị, ghi nhận IP đang hoạt động
    2) Thiết bị đang bị chặn -> ghi sự kiện `critical` & trả 403 DEVICE_BLOCKED (không vào handler)
    3) Đường dẫn nhạy cảm (trang đăng nhập, có `..` hoặc `//`) -> chạy detector, sự kiện khiến thiết bị bị chặn hoặc `critical` -> 403 THREAT_DETECTED
    4) POST trang đăng nhập vượt giới hạn tốc độ -> ghi sự kiện `low` & trả 429
    5) Có phiên đăng nhập hợp lệ -> cập nhật hoạt động, trang đích sau đăng nhập -> ghi nhận phiên mới
    6) Cho request đi qua, gắn header bảo mật vào response

    Lỗi nội bộ ở các bước trên chỉ được ghi log, request vẫn được cho qua (chỉ chặn khi thiết bị nằm trong danh sách chặn)
    """
    path = request.url.path
    if _is_excluded(path):
        return await call_next(request)

    service = request.app.state.threat_service
    config = service.config

    try:
        user_id = _session_user_id(request)
        ctx = _build_context(request, user_id)
        request.state.fingerprint = ctx.fingerprint
        service.track_ip(ctx.ip, ctx.user_agent, ctx.fingerprint)
    except Exception as ex:
        system_logger.exception("security_guard: không tạo được ngữ cảnh, cho qua: %s", ex)
        return _with_security_headers(await call_next(request))

    # 2) Danh sách chặn (fail-closed)
    if service.is_blocked(ctx.fingerprint):
        try:
            service.record_blocked_access(ctx)
        except Exception as ex:
            system_logger.exception("security_guard: không ghi được sự kiện thiết bị bị chặn: %s", ex)
        system_logger.warning("Blocked device attempted access fp=%s ip=%s path=%s", ctx.fingerprint, ctx.ip, path)
        return _deny(403, "Access denied. Your device has been blocked due to suspicious activity.", "DEVICE_BLOCKED")

    # 3) Detector trên đường dẫn nhạy cảm
    if is_sensitive_path(path, config):
        threat = None
        try:
            threat = service.detect_threats(ctx)
        except Exception as ex:
            system_logger.exception("security_guard: lỗi khi phát hiện mối đe doạ, cho qua: %s", ex)

        if threat is not None and (threat.blocked or threat.severity == Severity.CRITICAL):
            return _deny(403, "Access denied due to suspicious activity.", "THREAT_DETECTED")

    # 4) Giới hạn tốc độ đăng nhập
    if path == config.login_path and request.method == "POST":
        try:
            allowed, count = request.app.state.login_limiter.check(ctx.ip)
            if not allowed:
                service.record_rate_limited(ctx, count)
                return _deny(429, "Too many login attempts. Please try again later.", "RATE_LIMITED")
        except Exception as ex:
            system_logger.exception("security_guard: lỗi giới hạn tốc độ, cho qua: %s", ex)

    # 5) Theo dõi phiên đăng nhập
    if user_id:
        try:
            log_session_event(ctx, user_id, "page_access")
            service.update_user_activity(user_id)
            if detect_suspicious_activity(ctx, user_id):
                system_logger.warning("Suspicious activity detected for user: %s", user_id)
            if path == config.landing_path:
                service.track_user_login(user_id, ctx.fingerprint, ctx.user_agent, ctx.ip)
                system_logger.info("User %s logged in - device tracked fp=%s", user_id, ctx.fingerprint)
        except Exception as ex:
            system_logger.exception("security_guard: lỗi theo dõi phiên: %s", ex)

    # 6) Cho qua
    response = await call_next(request)
    return _with_security_headers(response)
