import json
import time
import uuid
from typing import Dict

from fastapi import Request
from fastapi.responses import Response

from log.logging_config import logger
from security.config import EXCLUDED_PATHS
from security.fingerprint import generate_device_fingerprint
from utils.utils import get_client_ip

# Khóa nhạy cảm cần che khi log request params/body
SENSITIVE_KEYS = {"password", "token", "authorization", "apikey", "secret", "session_token"}

# Giới hạn kích thước dữ liệu (request/response) đem đi log để tránh phình log/disk
MAX_LOG_BYTES = 16 * 1024  # 16KB


def sanitize_dict(d: Dict) -> Dict:
    """
    Ẩn các trường nhạy cảm trong dict (query params, body JSON).
    """
    return {k: ("***" if str(k).lower() in SENSITIVE_KEYS else v) for k, v in d.items()}


def _body_for_log(raw_body: bytes, content_type: str) -> str:
    if not raw_body:
        return "-"
    if len(raw_body) > MAX_LOG_BYTES:
        return f"<{len(raw_body)} bytes>"
    if "application/json" in content_type:
        try:
            parsed = json.loads(raw_body)
        except ValueError:
            return raw_body.decode(errors="ignore")
        if isinstance(parsed, dict):
            parsed = sanitize_dict(parsed)
        return json.dumps(parsed, ensure_ascii=False)
    # Form đăng nhập chứa mật khẩu -> không ghi nội dung
    return f"<{content_type or 'unknown'}: {len(raw_body)} bytes>"


def _result_for_log(body: bytes, content_type: str, headers) -> str:
    if "application/json" in content_type or "text" in content_type:
        preview = body[:MAX_LOG_BYTES].decode(errors="ignore")
        if len(body) > MAX_LOG_BYTES:
            preview += f" ... <truncated {len(body) - MAX_LOG_BYTES} bytes>"
        return preview
    return f"Content: {headers.get('content-disposition', '')} ; Binary data of length: {len(body)}"


async def log_requests(request: Request, call_next):
    """
    Middleware ghi log cho MỖI request/response vào `api_logger`.
    - Thu thập IP (ưu tiên header reverse-proxy), method, path, params (đã che khoá nhạy cảm), user-agent, correlation-id, vân tay thiết bị
    - Gọi handler thật, lỗi vẫn có log rồi ném lại
    - Đọc response body để log preview, sau đó khôi phục body_iterator cho client
    """
    start = time.perf_counter()

    method = request.method
    path = request.url.path
    ua = request.headers.get("user-agent", "-")
    cid = request.headers.get("x-request-id") or str(uuid.uuid4())
    client_ip = get_client_ip(request)
    fingerprint = generate_device_fingerprint(request.headers)
    params = json.dumps(sanitize_dict(dict(request.query_params)), ensure_ascii=False)

    base_extra = {
        "hostname": request.headers.get("host", "-"),
        "ip": client_ip,
        "api_name": path,
        "method": method,
        "user_agent": ua,
        "correlation_id": cid,
        "fingerprint": fingerprint,
    }

    if path in EXCLUDED_PATHS:
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000
        logger.info("", extra={**base_extra, "params": "excluded_path", "result": "excluded_path",
                               "status": response.status_code, "duration_ms": f"{duration_ms:.2f}", "request_body": "-"})
        return response

    # Đọc body để log, sau đó PHẢI gắn lại body cho downstream
    raw_body = await request.body()
    req_body_for_log = _body_for_log(raw_body, request.headers.get("content-type", ""))

    async def receive():
        return {"type": "http.request", "body": raw_body, "more_body": False}

    request = Request(request.scope, receive)

    try:
        response = await call_next(request)
    except Exception as exc:
        duration_ms = (time.perf_counter() - start) * 1000
        logger.exception("", extra={**base_extra, "params": params, "result": f"Exception: {exc!r}",
                                    "status": 500, "duration_ms": f"{duration_ms:.2f}", "request_body": req_body_for_log})
        raise

    content_type = response.headers.get("Content-Type", "")
    body = b""
    async for chunk in response.body_iterator:
        body += chunk

    duration_ms = (time.perf_counter() - start) * 1000
    logger.info("", extra={**base_extra, "params": params, "result": _result_for_log(body, content_type, response.headers),
                           "status": response.status_code, "duration_ms": f"{duration_ms:.2f}", "request_body": req_body_for_log})

    return Response(
        content=body,
        status_code=response.status_code,
        headers=dict(response.headers),
        media_type=content_type,
    )
