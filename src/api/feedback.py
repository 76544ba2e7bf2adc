from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm.session import Session
from db.database import get_db
from auth.oauth2 import required_token_user
from schemas.schemas import Feedback_Base, Feedback_Display, Feedback_Status_Update
from controllers.feedback_controller import Feedback_Controller
from controllers.report_controller import Report_Controller
from utils.utils import get_client_ip

# Khai báo router cho các endpoint phản hồi
router = APIRouter(
    tags= ["Feedback"]
)


@router.post("/api/feedback", response_model= Feedback_Display, status_code= status.HTTP_201_CREATED)
def create_feedback(request: Request, body: Feedback_Base, db: Session = Depends(get_db)):
    """
    Khách hàng gửi phản hồi (không cần đăng nhập)
    """
    return Feedback_Controller.create_feedback(
        request= body,
        db= db,
        ip_address= get_client_ip(request),
        user_agent= request.headers.get("user-agent", "")
    )

@router.get("/api/feedback")
def search_feedback(q: str = Query("", description="Tìm trong tên, email, nhận xét, địa điểm"),
                    status: str = Query("all"),
                    category: str = Query("all"),
                    rating: str = Query("all", description="Lọc điểm >= giá trị"),
                    page: int = Query(1, ge=1),
                    limit: int = Query(20, ge=1, le=100),
                    user_info: dict = Depends(required_token_user),
                    db: Session = Depends(get_db)):
    return Feedback_Controller.search_feedback(
        db= db, q= q, status_filter= status, category= category, rating= rating, page= page, limit= limit
    )

@router.get("/api/feedback/stats")
def get_feedback_stats(user_info: dict = Depends(required_token_user), db: Session = Depends(get_db)):
    """
    Thống kê tổng quan (cache 60 giây)
    """
    return Feedback_Controller.get_stats(db= db)

@router.get("/api/feedback/export")
def export_feedback(format: str = Query("csv", description="csv | excel"),
                    days: int = Query(30),
                    category: str = Query("all"),
                    user_info: dict = Depends(required_token_user),
                    db: Session = Depends(get_db)):
    return Report_Controller.export_feedback(db= db, export_format= format, days= days, category= category)

@router.patch("/api/feedback/{feedback_id}", response_model= Feedback_Display)
def update_feedback_status(feedback_id: int, body: Feedback_Status_Update,
                           user_info: dict = Depends(required_token_user),
                           db: Session = Depends(get_db)):
    return Feedback_Controller.update_status(db= db, feedback_id= feedback_id, new_status= body.status, user_info= user_info)

@router.delete("/api/feedback/{feedback_id}")
def delete_feedback(feedback_id: int, user_info: dict = Depends(required_token_user), db: Session = Depends(get_db)):
    return Feedback_Controller.delete_feedback(db= db, feedback_id= feedback_id, user_info= user_info)

@router.get("/api/analytics")
def get_analytics(days: int = Query(30), category: str = Query("all"),
                  user_info: dict = Depends(required_token_user),
                  db: Session = Depends(get_db)):
    return Report_Controller.get_analytics(db= db, days= days, category= category)

@router.get("/dashboard")
def dashboard(user_info: dict = Depends(required_token_user), db: Session = Depends(get_db)):
    """
    Trang đích sau khi đăng nhập: thông tin tài khoản + thống kê tổng quan
    """
    return {"user": user_info, "stats": Feedback_Controller.get_stats(db= db)}
