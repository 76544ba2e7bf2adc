import os
import threading
from typing import Optional
import redis              # Thư viện redis-py (pip install redis)
from dotenv import load_dotenv

load_dotenv()  # Tự động tìm và nạp file .env ở thư mục hiện tại

"""
Kết nối Redis dùng cho cache thống kê phản hồi.  
Chạy Redis bằng Docker: `docker run -d --name feedback-redis -p 6379:6379 redis:latest`

Redis chỉ là lớp tăng tốc: khi Redis không truy cập được, ứng dụng vẫn chạy bình thường (cache miss).
Pool kết nối được tạo 1 lần và dùng chung cho cả tiến trình.
"""

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
REDIS_SOCKET_TIMEOUT = float(os.getenv("REDIS_SOCKET_TIMEOUT", 1.0))

_pool: Optional[redis.ConnectionPool] = None
_pool_lock = threading.Lock()


def get_redis() -> redis.Redis:
    """
    Trả về client redis.Redis trỏ vào connection pool dùng chung (tạo ở lần gọi đầu tiên)
    """
    global _pool
    with _pool_lock:
        if _pool is None:
            _pool = redis.ConnectionPool.from_url(
                REDIS_URL,
                socket_keepalive=True,
                socket_timeout=REDIS_SOCKET_TIMEOUT,
                socket_connect_timeout=REDIS_SOCKET_TIMEOUT,
                max_connections=50,
                health_check_interval=30,
                decode_responses=False,                # Trả về bytes, tự decode khi cần
            )
    return redis.Redis(connection_pool=_pool)


def ping_redis() -> bool:
    """Dùng cho readiness probe"""
    try:
        return bool(get_redis().ping())
    except redis.RedisError:
        return False
