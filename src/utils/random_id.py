import secrets
import string

_ALPHABET = string.ascii_letters + string.digits


def get_random_string(length: int) -> str:
    """
    Tạo ngẫu nhiên một chuỗi (chữ + số) với độ dài cung cấp, dùng làm ID cho bản ghi
    """
    return ''.join(secrets.choice(_ALPHABET) for _ in range(length))


def new_threat_id(now_ms: int) -> str:
    """
    ID cho sự kiện đe doạ: threat_<epoch_ms>_<9 ký tự ngẫu nhiên>
    """
    return f"threat_{now_ms}_{get_random_string(9).lower()}"
