from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm.session import Session
from auth.oauth2 import required_token_user
from db.database import get_db
from schemas.schemas import Block_Device_Request, Unblock_Device_Request, Threat_Action
from controllers.security_admin_controller import Security_Admin_Controller


router = APIRouter(
    tags=["Security Admin"]
)


@router.get("/api/threats", summary="Thống kê mối đe doạ trong bộ nhớ")
def get_threats(request: Request, user_info: dict = Depends(required_token_user)):
    return Security_Admin_Controller.get_threat_stats(service= request.app.state.threat_service)

@router.post("/api/threats", summary="Mở chặn thiết bị (action=unblock)")
def post_threat_action(request: Request, body: Threat_Action, user_info: dict = Depends(required_token_user)):
    return Security_Admin_Controller.unblock_via_threats(
        service= request.app.state.threat_service,
        action= body.action,
        fingerprint= body.device_fingerprint
    )

@router.get("/api/admin/security", summary="Tổng quan bảo mật (Admin)")
def get_security_overview(request: Request, user_info: dict = Depends(required_token_user)):
    return Security_Admin_Controller.get_security_overview(service= request.app.state.threat_service, user_info= user_info)

@router.post("/api/admin/security/block_device", summary="Chặn thủ công 1 thiết bị")
def block_device(request: Request, body: Block_Device_Request, user_info: dict = Depends(required_token_user),
                 db: Session = Depends(get_db)):
    """
    Chặn thiết bị theo vân tay:
    - 400 nếu thiết bị đã bị chặn
    - 403 nếu tài khoản không phải Admin
    """
    return Security_Admin_Controller.block_device(
        service= request.app.state.threat_service,
        user_info= user_info,
        fingerprint= body.device_fingerprint,
        reason= body.reason,
        db= db
    )

@router.post("/api/admin/security/unblock_device", summary="Mở chặn 1 thiết bị")
def unblock_device(request: Request, body: Unblock_Device_Request, user_info: dict = Depends(required_token_user),
                   db: Session = Depends(get_db)):
    return Security_Admin_Controller.unblock_device(
        service= request.app.state.threat_service,
        user_info= user_info,
        fingerprint= body.device_fingerprint,
        db= db
    )

@router.get("/api/admin/security/history", summary="Lịch sử sự kiện đã lưu trong CSDL")
def get_history(limit: int = Query(100, ge=1, le=1000), user_info: dict = Depends(required_token_user),
                db: Session = Depends(get_db)):
    return Security_Admin_Controller.get_persisted_history(user_info= user_info, db= db, limit= limit)
