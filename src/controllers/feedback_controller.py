import json
import re
from datetime import datetime, date
from typing import Optional
from fastapi import HTTPException, status
from sqlalchemy.orm.session import Session
from schemas.schemas import Feedback_Base, Feedback_Display
from db.models import DbFeedback
from db import db_feedback, db_audit
from utils.cache import make_cache_key, get_cache, set_cache, delete_by_prefix
from utils.constants import *
from utils.utils import sanitize_input
from log.system_log import system_logger

NAME_REGEX = r"^[a-zA-Z\s]+$"
EMAIL_REGEX = r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$"
PHONE_REGEX = r"^\+?[1-9]\d{0,15}$"

# Tiền tố cache thống kê phản hồi (xoá theo prefix khi dữ liệu thay đổi)
CACHE_STATS_PREFIX = "feedback:stats"
STATS_CACHE_TTL = 60


def invalidate_feedback_cache() -> int:
    """
    Xoá cache thống kê, gọi ngay sau khi CREATE/UPDATE/DELETE phản hồi
    """
    return delete_by_prefix(CACHE_STATS_PREFIX)

def analyze_sentiment(rating: Optional[int], comments: Optional[str]) -> str:
    """
    Phân loại cảm xúc đơn giản:
    - Theo điểm: >= 4 tích cực, <= 2 tiêu cực, còn lại trung tính
    - Nhận xét chỉ chứa từ khoá tích cực (hoặc chỉ tiêu cực) sẽ ghi đè kết quả theo điểm
    """
    sentiment = "neutral"
    if rating:
        if rating >= 4:
            sentiment = "positive"
        elif rating <= 2:
            sentiment = "negative"

    if comments:
        lowered = comments.lower()
        has_positive = any(w in lowered for w in POSITIVE_WORDS)
        has_negative = any(w in lowered for w in NEGATIVE_WORDS)
        if has_positive and not has_negative:
            sentiment = "positive"
        elif has_negative and not has_positive:
            sentiment = "negative"

    return sentiment

def _parse_rating(value) -> Optional[int]:
    if value is None or value == "":
        return None
    if isinstance(value, str):
        try:
            value = int(value)
        except ValueError:
            return None
    return value

def _parse_bool(value) -> bool:
    if isinstance(value, str):
        return value == "true"
    return bool(value)

def _parse_visit_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
    except ValueError:
        return None

def validate_feedback(request: Feedback_Base) -> dict:
    """
    Kiểm tra dữ liệu form phản hồi, trả về dict đã chuẩn hoá.  
    Có lỗi -> HTTP 400 kèm danh sách lỗi
    """
    errors = []
    name = (request.name or "").strip()
    if not name:
        errors.append("Name is required")
    elif len(name) > MAX_NAME_LENGTH:
        errors.append(f"Name must be less than {MAX_NAME_LENGTH} characters")
    elif not re.match(NAME_REGEX, name):
        errors.append("Name can only contain letters and spaces")

    email = (request.email or "").strip()
    if email and (len(email) > MAX_EMAIL_LENGTH or not re.match(EMAIL_REGEX, email)):
        errors.append("Invalid email format")

    phone = (request.phone or "").strip()
    if phone and not re.match(PHONE_REGEX, phone):
        errors.append("Invalid phone number format")

    contact = (request.contact or "").strip()
    if len(contact) > MAX_CONTACT_LENGTH:
        errors.append(f"Contact must be less than {MAX_CONTACT_LENGTH} characters")

    location = (request.location or "").strip()
    if len(location) > MAX_LOCATION_LENGTH:
        errors.append(f"Location must be less than {MAX_LOCATION_LENGTH} characters")

    rating = _parse_rating(request.rating)
    if rating is not None and not 1 <= rating <= 5:
        errors.append("Rating must be between 1 and 5")

    comments = request.comments or ""
    if len(comments) > MAX_COMMENTS_LENGTH:
        errors.append(f"Comments must be less than {MAX_COMMENTS_LENGTH} characters")

    category = request.category or "other"
    if category not in FEEDBACK_CATEGORIES:
        errors.append(f"Category must be one of: {', '.join(FEEDBACK_CATEGORIES)}")

    if errors:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "message": "Invalid input data",
                "errors": errors
            }
        )

    return {
        "name": name,
        "email": email or None,
        "phone": phone or None,
        "contact": contact or None,
        "location": location or None,
        "rating": rating,
        "comments": comments or None,
        "category": category,
        "visit_date": _parse_visit_date(request.visitDate),
        "is_anonymous": _parse_bool(request.isAnonymous),
        "tags": request.tags or None,
    }


class Feedback_Controller:
    """
    Controller để xử lý các yêu cầu liên quan đến phản hồi của khách hàng
    """

    def create_feedback(request: Feedback_Base, db: Session, ip_address: str, user_agent: str):
        """
        Lưu phản hồi mới: kiểm tra -> làm sạch -> phân loại cảm xúc -> lưu -> ghi nhật ký
        """
        data = validate_feedback(request)

        name = sanitize_input(data["name"], MAX_SANITIZED_LENGTH)
        comments = sanitize_input(data["comments"], MAX_SANITIZED_LENGTH) if data["comments"] else None
        location = sanitize_input(data["location"], MAX_SANITIZED_LENGTH) if data["location"] else None
        sentiment = analyze_sentiment(data["rating"], comments)

        new_feedback = DbFeedback(
            Name = ANONYMOUS_NAME if data["is_anonymous"] else name,
            Email = data["email"],
            Phone = data["phone"],
            Contact = data["contact"],
            Location = location,
            Rating = data["rating"],
            Comments = comments,
            Category = data["category"],
            Visit_Date = data["visit_date"],
            Is_Anonymous = data["is_anonymous"],
            Sentiment = sentiment,
            Tags = data["tags"],
            Status = DEFAULT_FEEDBACK_STATUS,
            IP_Address = ip_address,
            User_Agent = (user_agent or "")[:500],
            Created_At = datetime.now()
        )

        saved = db_feedback.create_feedback(db= db, new_feedback= new_feedback)
        if not saved["success"]:
            system_logger.error(saved["message"])
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail={"message": "Failed to create feedback"}
            )

        db_audit.create_audit_log(
            db= db,
            action= "create",
            resource= "feedback",
            resource_id= saved["data"].ID,
            details= {
                "category": data["category"],
                "rating": data["rating"],
                "sentiment": sentiment,
                "is_anonymous": data["is_anonymous"],
            },
            ip_address= ip_address,
            user_agent= user_agent
        )
        invalidate_feedback_cache()

        return saved["data"]

    def search_feedback(db: Session, q: Optional[str], status_filter: str, category: str,
                        rating: str, page: int, limit: int) -> dict:
        """
        Tìm kiếm phản hồi, các bộ lọc nhận giá trị `all` để bỏ lọc.  
        `rating` lọc các phản hồi có điểm >= giá trị truyền vào
        """
        if q and len(q) > MAX_SEARCH_LENGTH:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"message": f"Search query must be less than {MAX_SEARCH_LENGTH} characters"}
            )
        if status_filter != "all" and status_filter not in FEEDBACK_STATUSES:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail={"message": "Invalid status filter"})
        if category != "all" and category not in FEEDBACK_CATEGORIES:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail={"message": "Invalid category filter"})
        if rating != "all" and rating not in ("1", "2", "3", "4", "5"):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail={"message": "Invalid rating filter"})

        result = db_feedback.search_feedback(
            db= db,
            q= q or None,
            status= None if status_filter == "all" else status_filter,
            category= None if category == "all" else category,
            rating= None if rating == "all" else int(rating),
            page= page,
            limit= limit
        )
        if not result["success"]:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail={"message": result["message"]}
            )

        total = result["data"]["total"]
        return {
            "items": [Feedback_Display.model_validate(f).model_dump(mode="json") for f in result["data"]["items"]],
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": (total + limit - 1) // limit,
        }

    def update_status(db: Session, feedback_id: int, new_status: str, user_info: dict):
        if new_status not in FEEDBACK_STATUSES:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"message": f"Status must be one of: {', '.join(FEEDBACK_STATUSES)}"}
            )

        result = db_feedback.update_feedback_status(db= db, feedback_id= feedback_id, status= new_status)
        if result["success"] is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail={"message": "Feedback not found"})
        if not result["success"]:
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail={"message": result["message"]})

        db_audit.create_audit_log(
            db= db, action= "update", resource= "feedback", resource_id= feedback_id,
            user_id= user_info["ID"], details= {"status": new_status}
        )
        invalidate_feedback_cache()
        return result["data"]

    def delete_feedback(db: Session, feedback_id: int, user_info: dict) -> dict:
        result = db_feedback.delete_feedback(db= db, feedback_id= feedback_id)
        if result["success"] is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail={"message": "Feedback not found"})
        if not result["success"]:
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail={"message": result["message"]})

        db_audit.create_audit_log(
            db= db, action= "delete", resource= "feedback", resource_id= feedback_id, user_id= user_info["ID"]
        )
        invalidate_feedback_cache()
        return {"message": "Feedback deleted successfully"}

    def get_stats(db: Session) -> dict:
        """
        Thống kê tổng quan cho dashboard, có cache Redis (60 giây).  
        Redis down -> tính trực tiếp từ CSDL
        """
        cache_key = make_cache_key(CACHE_STATS_PREFIX, {"scope": "overview"})
        cached = get_cache(cache_key)
        if cached is not None:
            return cached

        result = db_feedback.get_feedback_in_period(db= db)
        if not result["success"]:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail={"message": "Failed to fetch feedback statistics"}
            )

        items = result["data"]
        today = datetime.now().replace(hour=0, minute=0, second=0, microsecond=0)
        ratings = [f.Rating for f in items if f.Rating is not None]

        category_breakdown = {}
        rating_distribution = {}
        for f in items:
            cat = f.Category or "other"
            category_breakdown[cat] = category_breakdown.get(cat, 0) + 1
            if f.Rating is not None:
                rating_distribution[str(f.Rating)] = rating_distribution.get(str(f.Rating), 0) + 1

        stats = {
            "total_submissions": len(items),
            "today_submissions": sum(1 for f in items if f.Created_At and f.Created_At >= today),
            "average_rating": round(sum(ratings) / len(ratings), 1) if ratings else 0,
            "anonymous_count": sum(1 for f in items if f.Is_Anonymous),
            "recent_submissions": [
                {
                    "id": f.ID,
                    "name": ANONYMOUS_NAME if f.Is_Anonymous else (f.Name or "Unknown"),
                    "rating": f.Rating or 0,
                    "category": f.Category or "other",
                    "timestamp": f.Created_At.isoformat() if f.Created_At else None,
                    "is_anonymous": bool(f.Is_Anonymous),
                }
                for f in items[:10]
            ],
            "category_breakdown": category_breakdown,
            "rating_distribution": rating_distribution,
        }

        set_cache(cache_key, stats, ttl= STATS_CACHE_TTL)
        return stats
