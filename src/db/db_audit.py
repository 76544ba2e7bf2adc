import json
from datetime import datetime
from typing import Any, Dict, Optional
from sqlalchemy.orm.session import Session
from sqlalchemy import exc
from db.models import DbAudit_Log


def create_audit_log(db: Session, action: str, resource: Optional[str] = None, resource_id: Optional[str] = None,
                     user_id: Optional[str] = None, details: Optional[Dict[str, Any]] = None,
                     ip_address: Optional[str] = None, user_agent: Optional[str] = None):
    """
    Ghi 1 dòng nhật ký thao tác  
    - `action`: ví dụ `login_success`, `login_failed`, `feedback_submitted`, `device_unblocked`
    """
    response = {
        "success": False,
        "data": None,
        "message": "Lỗi khi ghi nhật ký thao tác"
    }

    audit = DbAudit_Log(
        User_ID = user_id,
        Action = action,
        Resource = resource,
        Resource_ID = str(resource_id) if resource_id is not None else None,
        Details = json.dumps(details or {}, ensure_ascii=False, default=str),
        IP_Address = ip_address,
        User_Agent = (user_agent or "")[:500],
        Created_At = datetime.now()
    )

    try:
        db.add(audit)
        db.commit()
        response["success"] = True
        response["data"] = audit
        response["message"] = f"Đã ghi nhật ký {action}"

    except exc.SQLAlchemyError as e:
        db.rollback()
        response["message"] = f"Lỗi khi ghi nhật ký {action}: {str(e)}"

    return response

def get_audit_logs(db: Session, action: Optional[str] = None, limit: int = 100):
    response = {
        "success": False,
        "data": [],
        "message": "Lỗi khi truy vấn nhật ký"
    }

    try:
        query = db.query(DbAudit_Log)
        if action:
            query = query.filter(DbAudit_Log.Action == action)
        response["data"] = query.order_by(DbAudit_Log.Created_At.desc()).limit(limit).all()
        response["success"] = True
        response["message"] = f"Tìm thấy {len(response['data'])} dòng nhật ký"

    except exc.SQLAlchemyError as e:
        response["message"] = f"Lỗi khi truy vấn nhật ký: {str(e)}"

    return response
