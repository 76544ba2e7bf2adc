from sqlalchemy.orm.session import Session
from db.models import DbUser_Login
from db import db_user_login
from utils.hash import Hash
from utils.random_id import get_random_string
from utils.constants import HIGH_PRIVILEGE_LIST
from datetime import datetime
from log.system_log import system_logger
from dotenv import load_dotenv
import os

load_dotenv()  # Tự động tìm và nạp file .env ở thư mục hiện tại

ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@feedbackhub.com")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "Admin123!@#")
ADMIN_NAME = os.getenv("ADMIN_NAME", "Admin User")


class User_Login_Controller:
    """
    Controller để xử lý các yêu cầu liên quan đến tài khoản quản trị
    """

    def create_user(db: Session, email: str, password: str, user_name: str, privilege: str):
        """
        Tạo tài khoản mới (đã kích hoạt), mật khẩu được mã hoá bằng bcrypt
        """
        new_user_login = DbUser_Login(
            ID = get_random_string(32),
            User_Name = user_name,
            Email = email.strip().lower(),
            Password = Hash.bcrypt(password),
            Privilege = privilege,
            Activate = datetime.now(),
            Created_At = datetime.now()
        )
        return db_user_login.create_new_user_login(db= db, new_user_login= new_user_login)

    def ensure_default_admin(db: Session) -> bool:
        """
        Tạo tài khoản Admin mặc định từ `ADMIN_EMAIL`/`ADMIN_PASSWORD` nếu chưa tồn tại.  
        Trả về True nếu vừa tạo mới
        """
        existing = db_user_login.get_user_login_by_email(db= db, email= ADMIN_EMAIL.lower())
        if existing["success"]:
            return False
        if existing["success"] is False:
            system_logger.error(existing["message"])
            return False

        created = User_Login_Controller.create_user(
            db= db,
            email= ADMIN_EMAIL,
            password= ADMIN_PASSWORD,
            user_name= ADMIN_NAME,
            privilege= HIGH_PRIVILEGE_LIST[0]
        )
        if not created["success"]:
            system_logger.error(created["message"])
            return False

        system_logger.info("Đã tạo tài khoản Admin mặc định: %s", ADMIN_EMAIL)
        return True
