import threading
from typing import Optional
from log.system_log import system_logger


def _cleanup_loop(service, limiter, interval: float, stop_event: threading.Event) -> None:
    """
    Định kỳ dọn các bộ đếm cũ (IP hết hạn, brute force đã nguội, cửa sổ rate limit hết hạn)  
    Các store đều có lock riêng nên chạy song song với request là an toàn
    """
    while not stop_event.wait(interval):
        try:
            removed = service.cleanup()
            if limiter is not None:
                removed["stale_rate_windows"] = limiter.cleanup()
            if any(removed.values()):
                system_logger.debug("Cleanup: %s", removed)
        except Exception as ex:
            system_logger.exception("Lỗi trong thread dọn dẹp: %s", ex)


def start_cleanup_thread(service, limiter=None, interval: Optional[float] = None) -> threading.Event:
    """
    Khởi động daemon thread dọn dẹp, trả về `threading.Event` để dừng thread (`event.set()`)
    """
    stop_event = threading.Event()
    interval = interval or service.config.cleanup_interval_seconds
    thread = threading.Thread(
        target=_cleanup_loop,
        args=(service, limiter, interval, stop_event),
        name="ThreatCleanupThread",
        daemon=True,
    )
    thread.start()
    return stop_event
