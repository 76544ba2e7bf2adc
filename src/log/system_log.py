import logging
import shutil
import threading
import time
import os
from datetime import datetime
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()  # Tự động tìm và nạp file .env ở thư mục hiện tại


# Đường dẫn thư mục lưu trữ log hệ thống (bao gồm log bảo mật: mối đe doạ, block/unblock thiết bị)
SYSTEM_LOG_DIRECTORY = os.getenv("SYSTEM_LOG_DIRECTORY", "log/system_log")
SYSTEM_LOG_MAX_DAYS = int(os.getenv("SYSTEM_LOG_MAX_DAYS", 30))
SYSTEM_LOG_CONSOLE = os.getenv("SYSTEM_LOG_CONSOLE", "false").lower() == "true"

Path(SYSTEM_LOG_DIRECTORY).mkdir(parents=True, exist_ok=True)

# Logger ứng dụng (Sử dụng thread để tự tạo tệp cho ngày mới)
system_logger = logging.getLogger("system_logger")
system_logger.setLevel(logging.INFO)
system_logger.propagate = False  # Không đẩy lên root để tránh log trùng

# Formatter: Định dạng log với đầy đủ các thông tin
_formatter = logging.Formatter(
    '%(asctime)s %(levelname)s:\t %(filename)s - Line: %(lineno)d message: %(message)s',
    datefmt='%d/%m/%Y %H:%M:%S %p'
)


def _remove_old_logs(logs_root=SYSTEM_LOG_DIRECTORY, max_days=SYSTEM_LOG_MAX_DAYS):
    """
    Xoá các thư mục log cũ hơn max_days ngày.  
    Bỏ qua các thư mục không đúng định dạng DD-MM-YY (vd: 'fallback')
    """
    try:
        if not os.path.exists(logs_root):
            return

        now = datetime.now()
        for entry in os.listdir(logs_root):
            entry_path = os.path.join(logs_root, entry)
            if not os.path.isdir(entry_path):
                continue
            try:
                folder_date = datetime.strptime(entry, "%d-%m-%y")  # Tên thư mục theo định dạng ngày
            except ValueError:
                continue

            if (now - folder_date).days > max_days:
                shutil.rmtree(entry_path, ignore_errors=True)
                system_logger.info("Đã xóa thư mục chứa log hệ thống: %s", entry_path)

    except OSError as e:
        system_logger.error("Gặp lỗi trong quá trình xóa thư mục chứa log hệ thống: %s", e)


def _log_file_path(day_str=None):
    """
    Tạo thư mục <SYSTEM_LOG_DIRECTORY>/<DD-MM-YY>/ nếu chưa có và trả về đường dẫn tệp log
    """
    day_str = day_str or datetime.now().strftime("%d-%m-%y")
    log_dir = os.path.join(SYSTEM_LOG_DIRECTORY, day_str)
    os.makedirs(log_dir, exist_ok=True)
    return os.path.join(log_dir, "system_log.log")


def _new_file_handler(day_str: str) -> logging.FileHandler:
    handler = logging.FileHandler(_log_file_path(day_str), encoding="utf-8")
    handler.setFormatter(_formatter)
    return handler


# Đảm bảo tạo file log cho ngày hiện tại
_file_handler_lock = threading.Lock()
_current_day = datetime.now().strftime("%d-%m-%y")
_file_handler = _new_file_handler(_current_day)
system_logger.addHandler(_file_handler)

# Console handler (tuỳ chọn) để thấy log ngay trên stdout khi chạy trong Docker
if SYSTEM_LOG_CONSOLE:
    _console = logging.StreamHandler()
    _console.setFormatter(_formatter)
    system_logger.addHandler(_console)


def _rotate_if_new_day():
    """
    Kiểm tra nếu sang ngày mới:
    - Gỡ handler cũ, đóng file
    - Dọn rác thư mục log cũ
    - Tạo handler mới cho ngày mới
    """
    global _current_day, _file_handler
    day_now = datetime.now().strftime("%d-%m-%y")
    if day_now == _current_day:
        return

    with _file_handler_lock:
        # Kiểm tra lại trong lock để tránh race
        if day_now == _current_day:
            return

        system_logger.removeHandler(_file_handler)
        _file_handler.close()

        _remove_old_logs()

        _current_day = day_now
        _file_handler = _new_file_handler(_current_day)
        system_logger.addHandler(_file_handler)


def _rotation_thread():
    """
    Thread nền: mỗi 1 tiếng kiểm tra xem có sang ngày mới chưa
    """
    while True:
        try:
            _rotate_if_new_day()
        except Exception as e:
            # Không để thread chết âm thầm vì exception
            system_logger.error("Không thể xoay vòng log hệ thống: %s", e)
        time.sleep(3600)
