from ipaddress import ip_address
from typing import Mapping, Optional, Tuple
from fastapi import Request


def _norm_ip(ip_raw: Optional[str]) -> Tuple[bool, Optional[str]]:
    """
    Chuẩn hoá chuỗi IP về dạng hợp lệ.  
    Trả về (True, ip_chuẩn_hoá) nếu hợp lệ, ngược lại (False, chuỗi gốc)
    """
    # Kiểm tra giá trị truyền vào tồn tại hay không và có phải là chuỗi string hay không
    if not ip_raw or not isinstance(ip_raw, str):
        return False, None

    try:
        return True, str(ip_address(ip_raw.strip()))  # Parse IPv4/IPv6; sai sẽ ném ValueError
    except ValueError:
        # Nếu không parse được, trả nguyên để không crash
        return False, ip_raw


def client_ip_from_headers(headers: Mapping[str, str], fallback: Optional[str] = None) -> str:
    """
    Lấy địa chỉ IP của client từ header:
    - X-Forwarded-For: lấy phần tử đầu (client gốc), định dạng "client, proxy1, proxy2"
    - X-Real-IP: một số cấu hình Nginx chỉ đặt header này
    - Giá trị header không phải IP hợp lệ thì bỏ qua
    - Nếu không có thì dùng `fallback` (thường là request.client.host), cuối cùng là "unknown"
    """
    candidates = []
    xff = headers.get("x-forwarded-for")
    if xff:
        candidates.append(xff.split(",")[0])
    candidates.append(headers.get("x-real-ip"))

    for raw in candidates:
        ok, ip = _norm_ip(raw)
        if ok:
            return ip

    # Host không phải IP (vd: unix socket) -> giữ nguyên chuỗi host
    _, ip = _norm_ip(fallback)
    return ip or "unknown"


def get_client_ip(request: Request) -> str:
    """
    Nhận 1 request từ FastAPI và trả về địa chỉ IP của client (ưu tiên header của reverse-proxy)
    """
    client = request.client
    return client_ip_from_headers(request.headers, fallback=client.host if client else None)


def sanitize_input(value: str, max_length: int = 1000) -> str:
    """
    Làm sạch chuỗi người dùng nhập: bỏ khoảng trắng 2 đầu, bỏ ký tự `<` `>`, cắt độ dài
    """
    return value.strip().replace("<", "").replace(">", "")[:max_length]
