from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy.orm.session import Session
from sqlalchemy import exc, or_
from db.models import DbFeedback


"""
Các câu lệnh truy vấn tới bảng Feedback
"""

def create_feedback(db: Session, new_feedback: DbFeedback):
    """
    Lưu phản hồi mới của khách hàng
    """
    response = {
        "success": False,
        "data": None,
        "message": "Lỗi khi lưu phản hồi"
    }

    try:
        db.add(new_feedback)
        db.commit()
        db.refresh(new_feedback)

        response["success"] = True
        response["data"] = new_feedback
        response["message"] = "Lưu phản hồi thành công"

    except exc.DataError as e:  # Sai kiểu dữ liệu / vượt độ dài
        db.rollback()
        response["message"] = f"Lỗi khi lưu phản hồi: Lỗi dữ liệu ({str(e)})"

    except exc.SQLAlchemyError as e:
        db.rollback()
        response["message"] = f"Lỗi khi lưu phản hồi: {str(e)}"

    return response

def get_feedback_by_id(db: Session, feedback_id: int):
    response = {
        "success": False,
        "data": None,
        "message": "Lỗi khi truy vấn phản hồi"
    }

    try:
        feedback = db.query(DbFeedback).filter(DbFeedback.ID == feedback_id).first()
        if feedback:
            response["success"] = True
            response["data"] = feedback
            response["message"] = f"Tìm thấy phản hồi {feedback_id}"
        else:
            response["success"] = None
            response["message"] = f"Không tìm thấy phản hồi {feedback_id}"

    except exc.SQLAlchemyError as e:
        response["message"] = f"Lỗi khi truy vấn phản hồi {feedback_id}: {str(e)}"

    return response

def search_feedback(db: Session, q: Optional[str] = None, status: Optional[str] = None,
                    category: Optional[str] = None, rating: Optional[int] = None,
                    page: int = 1, limit: int = 20):
    """
    Tìm kiếm phản hồi có phân trang  
    - `q`: tìm trong tên, email, nhận xét, địa điểm
    - Trả về `data = {"items": [...], "total": N}`
    """
    response = {
        "success": False,
        "data": {"items": [], "total": 0},
        "message": "Lỗi khi tìm kiếm phản hồi"
    }

    try:
        query = db.query(DbFeedback)
        if q:
            pattern = f"%{q}%"
            query = query.filter(or_(
                DbFeedback.Name.ilike(pattern),
                DbFeedback.Email.ilike(pattern),
                DbFeedback.Comments.ilike(pattern),
                DbFeedback.Location.ilike(pattern),
            ))
        if status:
            query = query.filter(DbFeedback.Status == status)
        if category:
            query = query.filter(DbFeedback.Category == category)
        if rating:
            query = query.filter(DbFeedback.Rating >= rating)

        total = query.count()
        items = (
            query.order_by(DbFeedback.Created_At.desc(), DbFeedback.ID.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )

        response["success"] = True
        response["data"] = {"items": items, "total": total}
        response["message"] = f"Tìm thấy {total} phản hồi"

    except exc.SQLAlchemyError as e:
        response["message"] = f"Lỗi khi tìm kiếm phản hồi: {str(e)}"

    return response

def get_feedback_in_period(db: Session, days: Optional[int] = None, category: Optional[str] = None):
    """
    Lấy toàn bộ phản hồi trong `days` ngày gần nhất (None = tất cả), dùng cho thống kê và xuất báo cáo
    """
    response = {
        "success": False,
        "data": [],
        "message": "Lỗi khi truy vấn phản hồi theo thời gian"
    }

    try:
        query = db.query(DbFeedback)
        if days:
            query = query.filter(DbFeedback.Created_At >= datetime.now() - timedelta(days=days))
        if category:
            query = query.filter(DbFeedback.Category == category)

        response["data"] = query.order_by(DbFeedback.Created_At.desc(), DbFeedback.ID.desc()).all()
        response["success"] = True
        response["message"] = f"Tìm thấy {len(response['data'])} phản hồi"

    except exc.SQLAlchemyError as e:
        response["message"] = f"Lỗi khi truy vấn phản hồi theo thời gian: {str(e)}"

    return response

def update_feedback_status(db: Session, feedback_id: int, status: str):
    response = {
        "success": False,
        "data": None,
        "message": "Lỗi khi cập nhật trạng thái phản hồi"
    }

    feedback = db.query(DbFeedback).filter(DbFeedback.ID == feedback_id).first()
    if not feedback:
        response["success"] = None
        response["message"] = f"Không tìm thấy phản hồi {feedback_id}"
        return response

    feedback.Status = status
    feedback.Updated_At = datetime.now()

    try:
        db.commit()
        db.refresh(feedback)
        response["success"] = True
        response["data"] = feedback
        response["message"] = f"Trạng thái phản hồi {feedback_id} đã chuyển thành: {status}"

    except exc.SQLAlchemyError as e:
        db.rollback()
        response["message"] = f"Không thể cập nhật trạng thái phản hồi {feedback_id}: {str(e)}"

    return response

def delete_feedback(db: Session, feedback_id: int):
    response = {
        "success": False,
        "data": None,
        "message": "Lỗi khi xoá phản hồi"
    }

    feedback = db.query(DbFeedback).filter(DbFeedback.ID == feedback_id).first()
    if not feedback:
        response["success"] = None
        response["message"] = f"Không tìm thấy phản hồi {feedback_id}"
        return response

    try:
        db.delete(feedback)
        db.commit()
        response["success"] = True
        response["message"] = f"Đã xoá phản hồi {feedback_id}"

    except exc.SQLAlchemyError as e:
        db.rollback()
        response["message"] = f"Xảy ra lỗi khi xoá phản hồi {feedback_id}: {str(e)}"

    return response
