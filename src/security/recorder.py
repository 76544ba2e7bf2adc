"""
Ghi sự kiện đe doạ / danh sách chặn xuống CSDL theo kiểu "ghi và không chờ"

- Request chỉ đưa công việc vào hàng đợi có giới hạn (`queue.Queue(maxsize)`) rồi trả lời ngay
- 1 daemon thread lấy công việc ra và ghi bằng session riêng
- Ghi lỗi thì thử lại tối đa `max_retries` lần, vẫn lỗi thì ghi log hệ thống và bỏ qua
- Hàng đợi đầy thì bỏ công việc và ghi cảnh báo (không bao giờ chặn request)
"""
import queue
import threading
import time
from typing import Any, Callable, Dict, NamedTuple, Optional
from db import db_security
from log.system_log import system_logger


class _Job(NamedTuple):
    name: str
    write: Callable[..., Dict[str, Any]]
    args: tuple


_STOP = object()


class ThreatEventRecorder:

    def __init__(self, session_factory, maxsize: int = 1000, max_retries: int = 3, retry_sleep: float = 0.2):
        self._session_factory = session_factory
        self._queue: "queue.Queue[Any]" = queue.Queue(maxsize=maxsize)
        self.max_retries = max_retries
        self.retry_sleep = retry_sleep
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self.dropped = 0
        self.failed = 0
        self.written = 0

    # ---------------- API cho ThreatDetectionService ----------------
    def record_event(self, event) -> bool:
        return self._submit(_Job("threat_event", db_security.create_threat_event, (event,)))

    def record_block(self, fingerprint: str, reason: str, metadata: Optional[Dict[str, Any]] = None) -> bool:
        return self._submit(_Job("block_device", db_security.create_blocked_device, (fingerprint, reason, metadata or {})))

    def record_unblock(self, fingerprint: str) -> bool:
        return self._submit(_Job("unblock_device", db_security.deactivate_blocked_device, (fingerprint,)))

    def _submit(self, job: _Job) -> bool:
        try:
            self._queue.put_nowait(job)
            return True
        except queue.Full:
            with self._lock:
                self.dropped += 1
            system_logger.warning("Hàng đợi ghi sự kiện đầy, bỏ công việc %s", job.name)
            return False

    # ---------------- Worker ----------------
    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._thread = threading.Thread(target=self._run, name="ThreatEventRecorderThread", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        """Dừng worker sau khi đã ghi hết các công việc còn lại trong hàng đợi"""
        if self._thread is None:
            return
        self._queue.put(_STOP)
        self._thread.join(timeout=timeout)
        self._thread = None

    def flush(self) -> int:
        """
        Ghi ngay trong luồng hiện tại mọi công việc đang chờ (dùng khi worker chưa chạy)  
        Trả về số công việc đã xử lý
        """
        processed = 0
        while True:
            try:
                job = self._queue.get_nowait()
            except queue.Empty:
                return processed
            try:
                if job is not _STOP:
                    self._process(job)
                    processed += 1
            finally:
                self._queue.task_done()

    def pending(self) -> int:
        return self._queue.qsize()

    def _run(self) -> None:
        while True:
            job = self._queue.get()
            try:
                if job is _STOP:
                    return
                self._process(job)
            except Exception as ex:
                # Không để 1 công việc lỗi làm chết worker
                system_logger.exception("Worker ghi sự kiện lỗi ở %s: %s", getattr(job, "name", "?"), ex)
            finally:
                self._queue.task_done()

    def _process(self, job: _Job) -> bool:
        last_error = ""
        for attempt in range(1, self.max_retries + 1):
            db = self._session_factory()
            try:
                result = job.write(db, *job.args)
                if result.get("success"):
                    with self._lock:
                        self.written += 1
                    return True
                last_error = result.get("message", "")
            except Exception as ex:
                last_error = str(ex)
            finally:
                db.close()

            if attempt < self.max_retries:
                time.sleep(self.retry_sleep)

        with self._lock:
            self.failed += 1
        system_logger.error("Không thể ghi %s sau %d lần thử: %s", job.name, self.max_retries, last_error)
        return False
