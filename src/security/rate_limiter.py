import threading
import time
from typing import Callable, Dict, Tuple

"""
Rate Limiter trong bộ nhớ tiến trình (fixed window)
- Giới hạn số request của 1 khoá (thường là IP) trong 1 cửa sổ thời gian cố định. Mỗi khoá được tối đa N request trong M giây kể từ request đầu tiên của cửa sổ.
- Mỗi lần có request mới:
    1. Nếu khoá chưa có hoặc cửa sổ đã hết hạn -> mở cửa sổ mới, đếm = 1.
    2. Ngược lại tăng bộ đếm.
    3. So sánh với giới hạn N: nếu <= N thì cho phép, ngược lại từ chối.
- Các cửa sổ đã hết hạn được dọn bởi `cleanup()` (luồng bảo trì gọi định kỳ).
Bộ đếm chỉ nằm trong 1 tiến trình, không chia sẻ giữa nhiều instance.
"""


class FixedWindowRateLimiter:
    """
    Bộ giới hạn theo cửa sổ cố định, an toàn khi nhiều request đồng thời (threading.Lock)
    """

    def __init__(self, window_seconds: float, max_requests: int, clock: Callable[[], float] = time.time):
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self._clock = clock
        self._lock = threading.Lock()
        # key -> [window_start, count]
        self._windows: Dict[str, list] = {}

    def check(self, key: str) -> Tuple[bool, int]:
        """
        Ghi nhận 1 request của `key` và trả về `(allowed, count)`  
        - allowed: False nếu số request trong cửa sổ đã vượt `max_requests`
        - count: số request trong cửa sổ hiện tại (kể cả request này)
        """
        now = self._clock()
        with self._lock:
            entry = self._windows.get(key)
            if entry is None or now - entry[0] >= self.window_seconds:
                entry = [now, 0]
                self._windows[key] = entry
            entry[1] += 1
            count = entry[1]

        return count <= self.max_requests, count

    def reset(self, key: str) -> None:
        with self._lock:
            self._windows.pop(key, None)

    def cleanup(self) -> int:
        """Xoá các cửa sổ đã hết hạn, trả về số khoá đã xoá"""
        now = self._clock()
        with self._lock:
            expired = [k for k, (start, _) in self._windows.items() if now - start >= self.window_seconds]
            for k in expired:
                del self._windows[k]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)
