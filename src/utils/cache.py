import json                                   # Serialize object -> JSON
import hashlib                                # Tạo hash từ params
import threading
import time
from typing import Any
from fastapi.encoders import jsonable_encoder # Biến đổi object/Pydantic -> JSON-serializable
from security.redis_client import get_redis
from log.system_log import system_logger

redis_cache = get_redis()                     # Client Redis dùng chung

# Circuit breaker: Redis lỗi -> bỏ qua Redis trong COOLDOWN giây, tránh mỗi request chờ timeout
REDIS_CACHE_COOLDOWN_SECONDS = 10.0
_skip_until_ts: float = 0.0
_state_lock = threading.Lock()

# Throttle log: chỉ log tối đa 1 lần mỗi LOG_EVERY_SECONDS khi Redis đang lỗi
_LOG_EVERY_SECONDS = 1.0
_last_redis_log_ts = 0.0


def _should_skip() -> bool:
    """True nếu đang trong thời gian bỏ qua Redis do lỗi trước đó"""
    return time.time() < _skip_until_ts

def _mark_down(ex: Exception, op: str) -> None:
    """
    Bật circuit breaker và log lỗi Redis có throttle để tránh spam log khi Redis down.
    - op: tên thao tác (GET/SETEX/SCAN/DEL...)
    """
    global _skip_until_ts, _last_redis_log_ts
    now = time.time()
    with _state_lock:
        _skip_until_ts = now + REDIS_CACHE_COOLDOWN_SECONDS
        if now - _last_redis_log_ts < _LOG_EVERY_SECONDS:
            return
        _last_redis_log_ts = now
    system_logger.warning("Redis cache lỗi ở %s (bỏ qua %.0fs): %s", op, REDIS_CACHE_COOLDOWN_SECONDS, ex)

def make_cache_key(prefix: str, params: dict) -> str:
    """
    Tạo key cache ổn định từ prefix + hash tham số.  
    Ví dụ: make_cache_key("feedback:stats", {"days": 30}) -> cache:feedback:stats:ab34f5e6...
    """
    raw = json.dumps(params, ensure_ascii=False, sort_keys=True).encode("utf-8")
    digest = hashlib.sha1(raw).hexdigest()
    return f"cache:{prefix}:{digest}"

def get_cache(key: str) -> Any:
    """
    Lấy dữ liệu đã cache.  
     - Redis OK: trả object Python
     - Redis down / dữ liệu hỏng: trả None (coi như cache miss)
    """
    if _should_skip():
        return None

    try:
        b = redis_cache.get(key)
    except Exception as ex:
        _mark_down(ex, "GET")
        return None

    if not b:
        return None

    try:
        return json.loads(b.decode("utf-8"))
    except ValueError as ex:
        system_logger.warning("Cache decode/loads failed for key=%s: %s", key, ex)
        return None

def set_cache(key: str, value: Any, ttl: int = 60) -> None:
    """
    Lưu object vào Redis (JSON) với TTL giây. Redis down -> bỏ qua, không throw
    """
    if _should_skip():
        return

    try:
        data = json.dumps(jsonable_encoder(value), ensure_ascii=False).encode("utf-8")
        redis_cache.setex(key, ttl, data)
    except Exception as ex:
        _mark_down(ex, "SETEX")

def delete_by_prefix(prefix: str) -> int:
    """
    Xóa các key cache theo tiền tố (dùng SCAN). Gọi sau khi phản hồi được thêm/sửa/xoá.  
    Trả về số key đã xóa (Redis down -> 0)
    """
    if _should_skip():
        return 0

    count = 0
    pattern = f"cache:{prefix}*".encode("utf-8")

    try:
        for k in redis_cache.scan_iter(match=pattern, count=500):
            redis_cache.delete(k)
            count += 1
    except Exception as ex:
        _mark_down(ex, "SCAN/DEL")

    return count
