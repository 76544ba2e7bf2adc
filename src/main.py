from fastapi import FastAPI # pip install "fastapi[standard]"
import uvicorn
import threading
import time
import os
from contextlib import asynccontextmanager
from starlette.middleware.base import BaseHTTPMiddleware
from fastapi.middleware.cors import CORSMiddleware
from db.database import engine, SessionLocal
from db import models, db_security
from log import system_log, logging_config
from log.system_log import system_logger
from api import feedback, health_check, security_admin
from auth import authentication
from controllers.user_login_controller import User_Login_Controller
from middleware import logger
from middleware.security_guard import security_guard  # Middleware phát hiện mối đe doạ
from security.config import THREAT_CONFIG
from security.maintenance import start_cleanup_thread
from security.rate_limiter import FixedWindowRateLimiter
from security.recorder import ThreatEventRecorder
from security.threat_service import ThreatDetectionService
from dotenv import load_dotenv

load_dotenv()  # Tự động tìm và nạp file .env ở thư mục hiện tại


PORT = int(os.getenv("PORT_HOST", "8000"))
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",") if o.strip()]


def init_security_state(app: FastAPI, recorder=None, clock=time.time) -> None:
    """
    Tạo mới toàn bộ trạng thái bảo mật của ứng dụng (dịch vụ phát hiện + bộ giới hạn đăng nhập)
    """
    app.state.threat_service = ThreatDetectionService(THREAT_CONFIG, recorder=recorder, clock=clock)
    app.state.login_limiter = FixedWindowRateLimiter(
        window_seconds=THREAT_CONFIG.login_rate_window_seconds,
        max_requests=THREAT_CONFIG.login_rate_max_requests,
        clock=clock,
    )


def _restore_blocked_devices(service: ThreatDetectionService) -> int:
    db = SessionLocal()
    try:
        result = db_security.get_active_blocked_devices(db= db)
    finally:
        db.close()

    if not result["success"]:
        system_logger.error(result["message"])
        return 0

    return service.restore_blocked(
        {
            "device_fingerprint": row.Device_Fingerprint,
            "reason": row.Reason,
            "blocked_at": row.Blocked_At.timestamp() if row.Blocked_At else None,
        }
        for row in result["data"]
    )


def _seed_admin() -> None:
    db = SessionLocal()
    try:
        User_Login_Controller.ensure_default_admin(db= db)
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Khởi động thread nền tạo file log cho ngày mới (chỉ gọi 1 lần ở đây, không gọi khi import)
    threading.Thread(target=system_log._rotation_thread, name="DailySystemLogRotationThread", daemon=True).start()
    threading.Thread(target=logging_config._rotation_thread, name="DailyApiLogRotationThread", daemon=True).start()

    recorder.start()
    restored = _restore_blocked_devices(app.state.threat_service)
    _seed_admin()
    stop_cleanup = start_cleanup_thread(app.state.threat_service, app.state.login_limiter)
    system_logger.info("Khởi động Feedback API, nạp lại %d thiết bị bị chặn", restored)
    yield
    # Các câu lệnh sau yield được thực hiện khi kết thúc chương trình
    stop_cleanup.set()
    recorder.stop()
    system_logger.info("Dừng Feedback API")


# Tạo Bảng trong DB nếu nó chưa tồn tại
models.Base.metadata.create_all(engine)

# Ghi sự kiện đe doạ xuống CSDL ở thread nền
recorder = ThreatEventRecorder(
    SessionLocal,
    maxsize=THREAT_CONFIG.recorder_queue_size,
    max_retries=THREAT_CONFIG.recorder_max_retries,
)

# Khởi tại FastAPi
app = FastAPI(
    title="Restaurant Feedback API",
    lifespan=lifespan
)
init_security_state(app, recorder=recorder)

# Middleware phát hiện mối đe doạ (thêm trước nên nằm trong middleware log)
app.middleware("http")(security_guard)

# Middleware log mọi request/response
app.add_middleware(BaseHTTPMiddleware, dispatch=logger.log_requests)

# Thêm các endpoint ở đây
app.include_router(authentication.router)
app.include_router(feedback.router)
app.include_router(security_admin.router)
app.include_router(health_check.router)

app.add_middleware(
    CORSMiddleware,
    allow_origins = CORS_ORIGINS,
    allow_credentials = True,
    allow_methods = ["*"],
    allow_headers = ["*"]
)

if __name__ == "__main__":
    uvicorn.run("__main__:app", host="0.0.0.0", port=PORT)

    # Hoặc gõ trực tiếp lệnh `fastapi dev src/main.py` để vào chế độ developer
