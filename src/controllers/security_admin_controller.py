from typing import Optional
from fastapi import HTTPException, status
from sqlalchemy.orm.session import Session
from db import db_security, db_audit
from log.system_log import system_logger
from security.threat_service import ThreatDetectionService
from utils.constants import HIGH_PRIVILEGE_LIST


def _require_admin(user_info: dict) -> None:
    # Kiểm tra quyền hạn (bắt buộc phải là Admin)
    if user_info["Privilege"] not in HIGH_PRIVILEGE_LIST:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "message": "You do not have permission to perform this action",
            }
        )

def _require_fingerprint(fingerprint: Optional[str]) -> str:
    fingerprint = (fingerprint or "").strip()
    if not fingerprint:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "message": "Device fingerprint required",
            }
        )
    return fingerprint

def _audit(db: Session, user_info: dict, action: str, fingerprint: str, details: dict) -> None:
    result = db_audit.create_audit_log(
        db= db,
        action= action,
        resource= "device",
        resource_id= fingerprint,
        user_id= user_info["ID"],
        details= details
    )
    if not result["success"]:
        system_logger.warning(result["message"])


class Security_Admin_Controller:
    """
    Controller để xử lý các vấn đề liên quan đến quản trị bảo mật (thiết bị bị chặn, sự kiện đe doạ)  
    Các thao tác thay đổi danh sách chặn yêu cầu `user_info["Privilege"]` thuộc HIGH_PRIVILEGE_LIST
    """

    def get_threat_stats(service: ThreatDetectionService) -> dict:
        """
        Thống kê trong bộ nhớ: tổng số sự kiện, thiết bị bị chặn, sự kiện 24h, người dùng/IP đang hoạt động
        """
        return service.get_stats()

    def unblock_via_threats(service: ThreatDetectionService, action: str, fingerprint: Optional[str]) -> dict:
        """
        Xử lý `POST /api/threats`: chỉ hỗ trợ action `unblock` kèm vân tay thiết bị
        """
        if action != "unblock" or not fingerprint:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"message": "Invalid action"}
            )

        if not service.unblock(fingerprint):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail={"message": "Device not found or already unblocked"}
            )
        return {"message": "Device unblocked successfully"}

    def get_security_overview(service: ThreatDetectionService, user_info: dict) -> dict:
        _require_admin(user_info)
        return {"success": True, "data": service.get_stats()}

    def block_device(service: ThreatDetectionService, user_info: dict, fingerprint: Optional[str],
                     reason: Optional[str], db: Session) -> dict:
        """
        Chặn thủ công 1 thiết bị theo vân tay
        - 400 nếu thiếu vân tay hoặc thiết bị đã bị chặn
        """
        _require_admin(user_info)
        fingerprint = _require_fingerprint(fingerprint)
        reason = reason or "Manually blocked by admin"

        if not service.block(fingerprint, reason, {"manual_block": True, "blocked_by": user_info["Email"]}):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"message": "Device already blocked"}
            )

        _audit(db, user_info, "device_blocked", fingerprint, {"reason": reason})
        return {"success": True, "message": "Device blocked successfully", "device_fingerprint": fingerprint}

    def unblock_device(service: ThreatDetectionService, user_info: dict, fingerprint: Optional[str], db: Session) -> dict:
        """
        Mở chặn 1 thiết bị, lịch sử sự kiện vẫn được giữ
        - 404 nếu thiết bị không nằm trong danh sách chặn
        """
        _require_admin(user_info)
        fingerprint = _require_fingerprint(fingerprint)

        if not service.unblock(fingerprint):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail={"message": "Device not found or already unblocked"}
            )

        _audit(db, user_info, "device_unblocked", fingerprint, {})
        return {"success": True, "message": "Device unblocked successfully", "device_fingerprint": fingerprint}

    def get_persisted_history(user_info: dict, db: Session, limit: int = 100) -> dict:
        """
        Lịch sử sự kiện đã lưu trong CSDL (có thể thiếu nếu việc ghi bất đồng bộ bị lỗi)
        """
        _require_admin(user_info)

        events = db_security.get_recent_threat_events(db= db, limit= limit)
        blocked = db_security.get_active_blocked_devices(db= db)
        if not events["success"] or not blocked["success"]:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail={"message": events["message"] if not events["success"] else blocked["message"]}
            )

        return {
            "events": [
                {
                    "id": e.ID,
                    "type": e.Type,
                    "severity": e.Severity,
                    "source_ip": e.Source_IP,
                    "device_fingerprint": e.Device_Fingerprint,
                    "request_path": e.Request_Path,
                    "blocked": bool(e.Blocked),
                    "timestamp": e.Created_At.isoformat() if e.Created_At else None,
                }
                for e in events["data"]
            ],
            "active_blocked_count": len(blocked["data"]),
        }
