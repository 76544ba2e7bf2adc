from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from db.database import engine
from security.redis_client import ping_redis

router = APIRouter(
    tags= ["Health"]
)


@router.get("/healthz", summary="Liveness probe")
async def healthz():
    """
    Kiểm tra sống/chết cơ bản của tiến trình.
    """
    return {"status": "ok"}

@router.get("/readyz", summary="Readiness probe")
def readyz():
    """
    Kiểm tra sẵn sàng: CSDL bắt buộc, Redis chỉ để tham khảo (Redis down vẫn phục vụ được, chỉ mất cache).
    Trả 200 nếu CSDL ok, 503 nếu CSDL lỗi.
    """
    checks = {}

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        checks["db"] = "ok"
    except SQLAlchemyError as e:
        checks["db"] = f"error: {e.__class__.__name__}"

    checks["redis"] = "ok" if ping_redis() else "unavailable"

    ok = checks["db"] == "ok"
    return JSONResponse(
        status_code=200 if ok else 503,
        content={"status": "ok" if ok else "error", "checks": checks},
    )
