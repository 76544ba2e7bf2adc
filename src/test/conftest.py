import os
import tempfile

# Cấu hình môi trường TRƯỚC khi import ứng dụng (CSDL trong bộ nhớ, log ra thư mục tạm, Redis không tồn tại)
_TMP_DIR = tempfile.mkdtemp(prefix="feedback_test_")
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["ALGORITHM"] = "HS256"
os.environ["LOG_DIRECTORY"] = os.path.join(_TMP_DIR, "api_log")
os.environ["SYSTEM_LOG_DIRECTORY"] = os.path.join(_TMP_DIR, "system_log")
os.environ["REDIS_URL"] = "redis://127.0.0.1:6390/0"
os.environ["REDIS_SOCKET_TIMEOUT"] = "0.2"
os.environ["ADMIN_EMAIL"] = "admin@feedbackhub.com"
os.environ["ADMIN_PASSWORD"] = "Admin123!@#"
os.environ["BCRYPT_ROUNDS"] = "4"

import pytest
from fastapi.testclient import TestClient

from db.database import SessionLocal, engine
from db import models
from controllers.user_login_controller import User_Login_Controller
from security.recorder import ThreatEventRecorder
import main

ADMIN_EMAIL = "admin@feedbackhub.com"
ADMIN_PASSWORD = "Admin123!@#"
MODERATOR_EMAIL = "moderator@feedbackhub.com"
MODERATOR_PASSWORD = "Moderator123!@#"

# User-Agent của trình duyệt thật (User-Agent mặc định "testclient" không khớp mẫu bot nhưng nên giống thực tế)
BROWSER_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0 Safari/537.36",
    "Accept-Language": "en-US,en;q=0.9",
}


class FakeClock:
    """Đồng hồ giả để điều khiển thời gian trong test"""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def fresh_database():
    """Mỗi test dùng CSDL trống + 2 tài khoản (Admin, Moderator)"""
    models.Base.metadata.drop_all(engine)
    models.Base.metadata.create_all(engine)
    db = SessionLocal()
    try:
        User_Login_Controller.ensure_default_admin(db= db)
        User_Login_Controller.create_user(
            db= db, email= MODERATOR_EMAIL, password= MODERATOR_PASSWORD,
            user_name= "Moderator User", privilege= "Moderator"
        )
    finally:
        db.close()
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def recorder():
    return ThreatEventRecorder(SessionLocal, maxsize=100, max_retries=1, retry_sleep=0)


@pytest.fixture
def client(recorder, clock):
    """
    TestClient trên ứng dụng thật, trạng thái bảo mật được tạo mới cho từng test.  
    Không dùng `with TestClient(...)` để lifespan (thread nền) không chạy.
    """
    main.init_security_state(main.app, recorder=recorder, clock=clock)
    return TestClient(main.app, headers=BROWSER_HEADERS)


def login(client: TestClient, email: str = ADMIN_EMAIL, password: str = ADMIN_PASSWORD):
    return client.post("/admin/login", data={"username": email, "password": password})


@pytest.fixture
def admin_client(client):
    response = login(client)
    assert response.status_code == 200, response.text
    return client


@pytest.fixture
def moderator_client(client):
    response = login(client, MODERATOR_EMAIL, MODERATOR_PASSWORD)
    assert response.status_code == 200, response.text
    return client
