import logging
import datetime as _dt
import os
import time
import threading
import shutil
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()  # Tự động tìm và nạp file .env ở thư mục hiện tại


# Đường dẫn thư mục lưu trữ log truy vấn API
LOG_DIRECTORY = os.getenv("LOG_DIRECTORY", "log/api_log")

# Tạo thư mục nếu chưa có
Path(LOG_DIRECTORY).mkdir(parents=True, exist_ok=True)


class CustomFilter(logging.Filter):
    """
    Bổ sung giá trị mặc định cho các trường tuỳ biến để formatter không bị lỗi KeyError
    """
    FIELDS = (
        "ip", "hostname", "api_name", "params", "result", "method", "status",
        "duration_ms", "user_agent", "correlation_id", "request_body", "fingerprint",
    )

    def filter(self, record):
        for name in self.FIELDS:
            if not hasattr(record, name):
                setattr(record, name, "None")
        return True


def _today_str():
    # Định dạng thư mục theo ngày: DD-MM-YY
    return _dt.datetime.now().strftime("%d-%m-%y")


def _log_file_path(day_str=None):
    """
    Tạo thư mục <LOG_DIRECTORY>/<DD-MM-YY>/ nếu chưa có.
    Trả về đường dẫn file 'api_log.log' bên trong, có fallback khi lỗi IO.
    """
    try:
        day = day_str or _today_str()
        log_dir = os.path.join(LOG_DIRECTORY, day)
        os.makedirs(log_dir, exist_ok=True)
        return os.path.join(log_dir, "api_log.log")

    except OSError:
        fb_dir = os.path.join(LOG_DIRECTORY, "fallback")
        os.makedirs(fb_dir, exist_ok=True)
        return os.path.join(fb_dir, "api_log.log")


def _remove_old_logs(logs_root=LOG_DIRECTORY, max_days=30):
    """
    Xoá thư mục ngày cũ hơn max_days, bỏ qua thư mục không đúng định dạng DD-MM-YY.
    """
    if not os.path.exists(logs_root):
        return

    now = _dt.datetime.now()
    for entry in os.listdir(logs_root):
        entry_path = os.path.join(logs_root, entry)
        if not os.path.isdir(entry_path):
            continue
        try:
            folder_date = _dt.datetime.strptime(entry, "%d-%m-%y")
        except ValueError:
            continue

        if (now - folder_date).days > max_days:
            shutil.rmtree(entry_path, ignore_errors=True)


# Formatter: mỗi dòng log là 1 request, có thêm vân tay thiết bị để đối chiếu với log bảo mật
_formatter = logging.Formatter(
    "%(asctime)s - %(hostname)s - %(ip)s - %(method)s %(api_name)s - "
    "status: %(status)s - duration: %(duration_ms)s ms - cid: %(correlation_id)s - fp: %(fingerprint)s - "
    "ua: %(user_agent)s - params: %(params)s - request_body: %(request_body)s - result: %(result)s",
    datefmt="%d-%m-%Y %H:%M:%S",
)

# Logger ghi log truy vấn API
logger = logging.getLogger("api_logger")
logger.setLevel(logging.INFO)
logger.propagate = False  # Không đẩy lên root


def _new_handler(day: str) -> logging.FileHandler:
    handler = logging.FileHandler(_log_file_path(day), encoding="utf-8")
    handler.addFilter(CustomFilter())
    handler.setFormatter(_formatter)
    return handler


_file_handler_lock = threading.Lock()
_current_day = _today_str()
_file_handler = _new_handler(_current_day)
logger.addHandler(_file_handler)


def _rotate_if_new_day():
    """
    Sang ngày mới thì thay handler (dùng lock để thay handler an toàn)
    """
    global _current_day, _file_handler
    day_now = _today_str()
    if day_now == _current_day:
        return

    with _file_handler_lock:
        if day_now == _current_day:
            return

        logger.removeHandler(_file_handler)
        _file_handler.close()

        _remove_old_logs(max_days=30)

        _current_day = day_now
        _file_handler = _new_handler(_current_day)
        logger.addHandler(_file_handler)


def _rotation_thread():
    """
    Thread nền: mỗi 1 tiếng kiểm tra xem có sang ngày mới chưa.
    Được khởi động 1 lần duy nhất ở main (không khởi động khi import)
    """
    while True:
        try:
            _rotate_if_new_day()
        except OSError:
            # Lỗi IO khi xoay vòng không được làm chết thread, lần sau sẽ thử lại
            pass
        time.sleep(3600)
