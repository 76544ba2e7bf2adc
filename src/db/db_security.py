import json
from datetime import datetime
from typing import Any, Dict
from sqlalchemy.orm.session import Session
from sqlalchemy import exc
from db.models import DbThreat_Event, DbBlocked_Device


"""
Các câu lệnh truy vấn tới bảng Threat_Events và Blocked_Devices
"""

def create_threat_event(db: Session, event):
    """
    Lưu 1 sự kiện đe doạ (`security.threat_service.ThreatEvent`) xuống CSDL
    """
    response = {
        "success": False,
        "data": None,
        "message": "Lỗi khi lưu sự kiện đe doạ"
    }

    new_event = DbThreat_Event(
        ID = event.id,
        Type = event.type.value,
        Severity = event.severity.value,
        User_ID = event.user_id,
        Source_IP = event.source_ip,
        User_Agent = (event.user_agent or "")[:500],
        Device_Fingerprint = event.device_fingerprint,
        Request_Path = (event.request_path or "")[:500],
        Details = json.dumps(event.details, ensure_ascii=False, default=str),
        Blocked = event.blocked,
        Created_At = datetime.fromtimestamp(event.timestamp)
    )

    try:
        db.add(new_event)
        db.commit()

        response["success"] = True
        response["data"] = new_event
        response["message"] = f"Đã lưu sự kiện {event.id}"

    except exc.IntegrityError as e:
        db.rollback()
        response["message"] = f"Lỗi khi lưu sự kiện đe doạ: Vi phạm ràng buộc dữ liệu ({str(e)})"

    except exc.SQLAlchemyError as e:
        db.rollback()
        response["message"] = f"Lỗi khi lưu sự kiện đe doạ: {str(e)}"

    return response

def get_recent_threat_events(db: Session, limit: int = 100):
    """
    Lấy các sự kiện đe doạ mới nhất (sắp xếp giảm dần theo thời gian)
    """
    response = {
        "success": False,
        "data": [],
        "message": "Lỗi khi truy vấn lịch sử đe doạ"
    }

    try:
        events = (
            db.query(DbThreat_Event)
            .order_by(DbThreat_Event.Created_At.desc())
            .limit(limit)
            .all()
        )
        response["success"] = True
        response["data"] = events
        response["message"] = f"Tìm thấy {len(events)} sự kiện"

    except exc.SQLAlchemyError as e:
        response["message"] = f"Lỗi khi truy vấn lịch sử đe doạ: {str(e)}"

    return response

def create_blocked_device(db: Session, fingerprint: str, reason: str, metadata: Dict[str, Any]):
    """
    Ghi nhận thiết bị bị chặn. Nếu thiết bị đã có bản ghi đang hiệu lực thì giữ nguyên
    """
    response = {
        "success": False,
        "data": None,
        "message": "Lỗi khi lưu thiết bị bị chặn"
    }

    try:
        existing = (
            db.query(DbBlocked_Device)
            .filter(DbBlocked_Device.Device_Fingerprint == fingerprint, DbBlocked_Device.Is_Active == True)
            .first()
        )
        if existing:
            response["success"] = True
            response["data"] = existing
            response["message"] = f"Thiết bị {fingerprint} đã bị chặn từ trước"
            return response

        blocked = DbBlocked_Device(
            Device_Fingerprint = fingerprint,
            Reason = (reason or "")[:500],
            Metadata_Json = json.dumps(metadata or {}, ensure_ascii=False, default=str),
            Is_Active = True,
            Blocked_At = datetime.now()
        )
        db.add(blocked)
        db.commit()

        response["success"] = True
        response["data"] = blocked
        response["message"] = f"Đã chặn thiết bị {fingerprint}"

    except exc.SQLAlchemyError as e:
        db.rollback()
        response["message"] = f"Lỗi khi lưu thiết bị bị chặn: {str(e)}"

    return response

def deactivate_blocked_device(db: Session, fingerprint: str):
    """
    Mở chặn: đặt Is_Active = False cho mọi bản ghi đang hiệu lực của thiết bị (giữ lịch sử)
    """
    response = {
        "success": False,
        "data": 0,
        "message": "Lỗi khi mở chặn thiết bị"
    }

    try:
        rows = (
            db.query(DbBlocked_Device)
            .filter(DbBlocked_Device.Device_Fingerprint == fingerprint, DbBlocked_Device.Is_Active == True)
            .all()
        )
        for row in rows:
            row.Is_Active = False
            row.Unblocked_At = datetime.now()
        db.commit()

        response["success"] = True
        response["data"] = len(rows)
        response["message"] = f"Đã mở chặn {len(rows)} bản ghi của thiết bị {fingerprint}"

    except exc.SQLAlchemyError as e:
        db.rollback()
        response["message"] = f"Lỗi khi mở chặn thiết bị: {str(e)}"

    return response

def get_active_blocked_devices(db: Session):
    """
    Danh sách thiết bị đang bị chặn (dùng để nạp lại khi khởi động)
    """
    response = {
        "success": False,
        "data": [],
        "message": "Lỗi khi truy vấn danh sách chặn"
    }

    try:
        rows = db.query(DbBlocked_Device).filter(DbBlocked_Device.Is_Active == True).all()
        response["success"] = True
        response["data"] = rows
        response["message"] = f"Có {len(rows)} thiết bị đang bị chặn"

    except exc.SQLAlchemyError as e:
        response["message"] = f"Lỗi khi truy vấn danh sách chặn: {str(e)}"

    return response
