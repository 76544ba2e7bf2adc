from fastapi import APIRouter, HTTPException, status, Depends, Request
from fastapi.responses import JSONResponse
from fastapi.security.oauth2 import OAuth2PasswordRequestForm
from sqlalchemy.orm.session import Session
from db.database import get_db
from db import db_user_login, db_audit
from utils.hash import Hash
from utils.utils import get_client_ip
from utils.constants import SESSION_COOKIE_NAME, SESSION_MAX_AGE_SECONDS
from auth import oauth2
from log.system_log import system_logger
import os


# Cookie chỉ gửi qua HTTPS khi chạy production
COOKIE_SECURE = os.getenv("ENVIRONMENT", "development") == "production"

router = APIRouter(
    tags=["authentication"]
)


def _audit(db: Session, request: Request, action: str, user_id=None, details=None):
    result = db_audit.create_audit_log(
        db= db,
        action= action,
        resource= "user",
        resource_id= user_id,
        user_id= user_id,
        details= details,
        ip_address= get_client_ip(request),
        user_agent= request.headers.get("user-agent", "")
    )
    if not result["success"]:
        system_logger.warning(result["message"])


@router.post("/admin/login")
def login(request: Request, form: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
    """
    Đăng nhập trang quản trị  
    - **form** theo dạng biểu mẫu của `OAuth2PasswordRequestForm` gồm `username` (email) và `password`  
    - Thành công: đặt cookie http-only `session_token` (JWT, sống 24 giờ) và trả về token
    - Mọi lần đăng nhập (thành công/thất bại) đều được ghi vào nhật ký thao tác

    ### Ví dụ

    ```python
    import requests

    response = requests.post(
        url="http://localhost:8000/admin/login",
        data={"username": "admin@feedbackhub.com", "password": "Admin123!@#"}
    )
    print(response.cookies.get("session_token"))
    ```
    """
    email = form.username.strip().lower()
    user = db_user_login.get_user_login_by_email(db= db, email= email)

    if user["success"] is False:
        raise HTTPException(
            status_code= status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": "Internal server error"}
        )

    if not user["success"]:
        _audit(db, request, "login_failed", details={"email": email, "reason": "user_not_found"})
        raise HTTPException(
            status_code= status.HTTP_401_UNAUTHORIZED,
            detail={"message": "Invalid credentials"}
        )

    user_login = user["data"]

    # Tài khoản chưa kích hoạt
    if user_login.Activate is None:
        _audit(db, request, "login_failed", user_id= user_login.ID, details={"email": email, "reason": "account_inactive"})
        raise HTTPException(
            status_code= status.HTTP_401_UNAUTHORIZED,
            detail={"message": "Account is inactive"}
        )

    # So sánh mật khẩu người dùng vừa cung cấp với mật khẩu trong CSDL
    if not Hash.verify(plain_password= form.password, hashed_password= user_login.Password):
        _audit(db, request, "login_failed", user_id= user_login.ID, details={"email": email, "reason": "invalid_password"})
        raise HTTPException(
            status_code= status.HTTP_401_UNAUTHORIZED,
            detail={"message": "Invalid credentials"}
        )

    # Không truyền datetime vào token, chỉ dùng các kiểu đơn giản như str, int, bool,...
    access_token = oauth2.create_access_token(data= {
        "ID": user_login.ID,
        "Name": user_login.User_Name,
        "Email": user_login.Email,
        "Privilege": user_login.Privilege
    })

    db_user_login.update_last_login(db= db, email= email)
    _audit(db, request, "login_success", user_id= user_login.ID, details={"email": email})

    response = JSONResponse(content={
        "message": "Login successful",
        "user": {
            "ID": user_login.ID,
            "Name": user_login.User_Name,
            "Email": user_login.Email,
            "Privilege": user_login.Privilege
        },
        "access_token": access_token,
        "token_type": "Bearer",
    })
    response.set_cookie(
        key= SESSION_COOKIE_NAME,
        value= access_token,
        max_age= SESSION_MAX_AGE_SECONDS,
        httponly= True,
        secure= COOKIE_SECURE,
        samesite= "strict",
        path= "/"
    )
    return response


@router.post("/api/auth/logout")
def logout(request: Request, db: Session = Depends(get_db)):
    """
    Đăng xuất: xoá cookie phiên và bỏ thiết bị khỏi danh sách người dùng đang hoạt động
    """
    payload = oauth2.decode_session_token(oauth2.get_token_from_request(request))
    if payload:
        request.app.state.threat_service.remove_user(payload["ID"])
        _audit(db, request, "logout", user_id= payload["ID"], details={"email": payload["Email"]})

    response = JSONResponse(content={"message": "Logout successful"})
    response.delete_cookie(key= SESSION_COOKIE_NAME, path= "/")
    return response


@router.get("/api/auth/me")
def me(user_info: dict = Depends(oauth2.required_token_user)):
    """
    Thông tin tài khoản của phiên hiện tại
    """
    return {"user": user_info}
