from sqlalchemy.orm.session import Session
from sqlalchemy import exc
from db.models import DbUser_Login
from datetime import datetime


"""
Các câu lệnh truy vấn tới bảng tài khoản quản trị Users_Login
"""

def create_new_user_login(db: Session, new_user_login: DbUser_Login):

    """
    Tạo tài khoản quản trị mới vào CSDL
    - `new_user_login`: Thông tin tài khoản cần thêm vào CSDL  
    """
    # Cú pháp trả về khi gọi CSDL
    response = {
        "success": False,
        "data": None,
        "message": "Lỗi khi thêm tài khoản mới"
    }

    # Tiến hành ghi dữ liệu
    try:
        db.add(new_user_login)
        db.commit()
        db.refresh(new_user_login)

        response["message"] = "Thêm tài khoản mới thành công"
        response["success"] = True
        response["data"] = new_user_login

    except exc.IntegrityError as e:  # Vi phạm ràng buộc (trùng email, khóa chính)
        db.rollback()
        response["message"] = f"Lỗi khi thêm tài khoản mới: Vi phạm ràng buộc dữ liệu ({str(e)})"
    
    except exc.SQLAlchemyError as e:
        db.rollback()
        response["message"] = f"Lỗi khi thêm tài khoản mới: {str(e)}"
    
    return response 

def get_user_login_by_email(db: Session, email: str):
    """
    Truy vấn thông tin tài khoản với `email` được cung cấp  
    """
    response = {
        "success": False,
        "data": None,
        "message": "Lỗi khi truy vấn tài khoản"
    }

    try:
        user_login = db.query(DbUser_Login).filter(DbUser_Login.Email == email).first()

        if user_login:
            response["success"] = True
            response["data"] = user_login
            response["message"] = f"Tìm thấy tài khoản có email: {email}"
        else:
            response["success"] = None
            response["message"] = f"Không tìm thấy tài khoản có email: {email}"

    except exc.SQLAlchemyError as e:
        response["message"] = f"Lỗi khi truy vấn thông tin tài khoản {email}: {str(e)}"
    
    return response 

def update_last_login(db: Session, email: str):
    """
    Cập nhật thời điểm đăng nhập gần nhất của tài khoản
    """
    response = {
        "success": False,
        "data": None,
        "message": "Lỗi khi cập nhật thời điểm đăng nhập"
    }

    user_login = db.query(DbUser_Login).filter(DbUser_Login.Email == email).first()
    if not user_login:
        response["message"] = f"Không tìm thấy tài khoản có địa chỉ email: {email}"
        return response

    user_login.Last_Login = datetime.now()

    try:
        db.commit()
        response["success"] = True
        response["data"] = user_login
        response["message"] = f"Đã cập nhật thời điểm đăng nhập của {email}"

    except exc.SQLAlchemyError as e:
        db.rollback()
        response["message"] = f"Không thể cập nhật thời điểm đăng nhập của {email}: {str(e)}"

    return response
