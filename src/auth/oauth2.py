from sqlalchemy.orm.session import Session
from typing import Optional
from fastapi import Depends, HTTPException, status, Request
from datetime import datetime, timedelta, timezone
from jose import jwt # pip install python-jose
from jose.exceptions import JWTError
from db.database import get_db
from db import db_user_login
from utils.constants import SESSION_COOKIE_NAME, SESSION_MAX_AGE_SECONDS
from dotenv import load_dotenv
import secrets
import os

load_dotenv()  # Tự động tìm và nạp file .env ở thư mục hiện tại
 

# Khóa bí mật, nên tạo nó ngẫu nhiên bằng lệnh: openssl rand -hex 32
# Không khai báo thì mỗi lần khởi động sẽ sinh khoá mới (mọi phiên cũ mất hiệu lực)
SECRET_KEY = os.getenv("SECRET_KEY") or secrets.token_hex(32)
ALGORITHM =  os.getenv("ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_SECONDS = SESSION_MAX_AGE_SECONDS


def get_token_from_request(request: Request) -> Optional[str]:
    """
    Lấy token phiên đăng nhập:
    - Ưu tiên cookie `session_token` (http-only, trình duyệt tự gửi)
    - Sau đó tới header `Authorization: Bearer <token>`
    """
    token = request.cookies.get(SESSION_COOKIE_NAME)
    if token:
        return token

    auth: str = request.headers.get("Authorization")
    if auth and auth.lower().startswith("bearer "):
        return auth[7:]
    return None
 
def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    """
    Tạo token với tiêu chuẩn JWT  
    - **data: dict**: thông tin người dùng cần đính kèm (ID, Name, Email, Privilege)
    - **expires_delta**: Thời gian hết hạn của token, mặc định bằng thời gian sống của cookie (24 giờ)
    """
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(seconds=ACCESS_TOKEN_EXPIRE_SECONDS))
    to_encode.update({"exp": expire})

    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)

def decode_session_token(token: Optional[str]) -> Optional[dict]:
    """
    Giải mã token mà không truy vấn CSDL (middleware dùng để theo dõi phiên).  
    Token sai/hết hạn -> None
    """
    if not token:
        return None
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms= [ALGORITHM])
    except JWTError:
        return None

    if not payload.get("ID") or not payload.get("Email"):
        return None
    return payload

def _credentials_exception():
    return HTTPException(
        status_code= status.HTTP_401_UNAUTHORIZED,
        detail= {
            "message": "Authentication required"
        },
        headers= {"WWW-Authenticate": "Bearer"}
    )

def _user_from_token(token: str, db: Session) -> dict:
    payload = decode_session_token(token)
    if payload is None:
        raise _credentials_exception()

    # Tài khoản phải còn tồn tại và đang được kích hoạt
    user = db_user_login.get_user_login_by_email(db= db, email= payload["Email"])
    if not user["success"] or user["data"].Activate is None:
        raise _credentials_exception()

    return {
        "ID": payload["ID"],
        "Name": payload.get("Name") or "",
        "Email": payload["Email"],
        "Privilege": user["data"].Privilege,
    }

# Bất cứ api nào dùng hàm này, nếu không có token hợp lệ sẽ trả về 401
def required_token_user(request: Request, db: Session = Depends(get_db)):
    """
    Bắt buộc có phiên đăng nhập hợp lệ
    """
    token = get_token_from_request(request)
    if not token:
        raise _credentials_exception()
    return _user_from_token(token, db)
