import csv
import io
from datetime import datetime
from typing import List, Optional
from fastapi import HTTPException, status
from fastapi.responses import StreamingResponse
from openpyxl import Workbook
from sqlalchemy.orm.session import Session
from db import db_feedback
from db.models import DbFeedback
from schemas.schemas import Feedback_Display
from utils.constants import FEEDBACK_CATEGORIES

EXPORT_HEADERS = [
    "ID", "Created At", "Name", "Contact", "Email", "Phone", "Rating", "Comments",
    "Location", "Category", "Visit Date", "Anonymous", "Sentiment", "Status",
]
EXPORT_FORMATS = ("csv", "excel")


def _check_filters(days: int, category: str) -> Optional[str]:
    if not 1 <= days <= 365:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": "Days must be between 1 and 365"}
        )
    if category != "all" and category not in FEEDBACK_CATEGORIES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": "Invalid category filter"}
        )
    return None if category == "all" else category

def _load_feedback(db: Session, days: int, category: Optional[str]) -> List[DbFeedback]:
    result = db_feedback.get_feedback_in_period(db= db, days= days, category= category)
    if not result["success"]:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": result["message"]}
        )
    return result["data"]

def _avg(values: List[int]) -> float:
    return sum(values) / len(values) if values else 0

def _grouped_ratings(items: List[DbFeedback], key) -> dict:
    """Gom nhóm theo `key(f)` -> {nhóm: [điểm,...]} kèm số lượng"""
    groups = {}
    for f in items:
        entry = groups.setdefault(key(f), {"count": 0, "ratings": []})
        entry["count"] += 1
        if f.Rating is not None:
            entry["ratings"].append(f.Rating)
    return groups

def _export_row(f: DbFeedback) -> list:
    return [
        f.ID,
        f.Created_At.isoformat() if f.Created_At else "",
        f.Name or "",
        f.Contact or "",
        f.Email or "",
        f.Phone or "",
        f.Rating if f.Rating is not None else "",
        f.Comments or "",
        f.Location or "",
        f.Category or "",
        f.Visit_Date.isoformat() if f.Visit_Date else "",
        "Yes" if f.Is_Anonymous else "No",
        f.Sentiment or "",
        f.Status or "",
    ]


class Report_Controller:
    """
    Thống kê và xuất báo cáo phản hồi
    """

    def get_analytics(db: Session, days: int = 30, category: str = "all") -> dict:
        category_filter = _check_filters(days, category)
        items = _load_feedback(db, days, category_filter)
        ratings = [f.Rating for f in items if f.Rating is not None]

        categories = {}
        sentiments = {}
        for f in items:
            categories[f.Category or "uncategorized"] = categories.get(f.Category or "uncategorized", 0) + 1
            sentiments[f.Sentiment or "neutral"] = sentiments.get(f.Sentiment or "neutral", 0) + 1

        daily = _grouped_ratings(items, lambda f: f.Created_At.date().isoformat())
        locations = _grouped_ratings(items, lambda f: f.Location or "Unknown")

        return {
            "total_feedback": len(items),
            "average_rating": _avg(ratings),
            "rating_distribution": [
                {"rating": r, "count": sum(1 for f in items if f.Rating == r)} for r in range(1, 6)
            ],
            "category_distribution": [{"category": k, "count": v} for k, v in categories.items()],
            "sentiment_distribution": [{"sentiment": k, "count": v} for k, v in sentiments.items()],
            "daily_feedback": sorted(
                ({"date": d, "count": v["count"], "avg_rating": _avg(v["ratings"])} for d, v in daily.items()),
                key=lambda x: x["date"]
            ),
            "location_stats": sorted(
                ({"location": loc, "count": v["count"], "avg_rating": _avg(v["ratings"])} for loc, v in locations.items()),
                key=lambda x: x["count"],
                reverse=True
            ),
            "recent_feedback": [Feedback_Display.model_validate(f).model_dump(mode="json") for f in items[:10]],
        }

    def export_feedback(db: Session, export_format: str = "csv", days: int = 30, category: str = "all"):
        """
        Xuất phản hồi ra file:
        - `csv`: text/csv (UTF-8)
        - `excel`: xlsx gồm sheet Feedback và sheet Summary
        """
        export_format = (export_format or "csv").lower()
        if export_format not in EXPORT_FORMATS:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"message": "Unsupported format"}
            )

        category_filter = _check_filters(days, category)
        items = _load_feedback(db, days, category_filter)
        stamp = datetime.now().strftime("%Y-%m-%d")

        if export_format == "csv":
            buf = io.StringIO()
            writer = csv.writer(buf, lineterminator="\n")
            writer.writerow(EXPORT_HEADERS)
            for f in items:
                writer.writerow(_export_row(f))

            return StreamingResponse(
                iter([buf.getvalue().encode("utf-8")]),
                media_type="text/csv; charset=utf-8",
                headers={"Content-Disposition": f'attachment; filename="feedback-{stamp}.csv"'},
            )

        wb = Workbook()

        # --- Sheet 1: Feedback ---
        ws1 = wb.active
        ws1.title = "Feedback"
        ws1.append(EXPORT_HEADERS)
        for f in items:
            ws1.append(_export_row(f))

        # --- Sheet 2: Summary ---
        ratings = [f.Rating for f in items if f.Rating]
        ws2 = wb.create_sheet("Summary")
        ws2.append(["Total Feedback", len(items)])
        ws2.append(["Average Rating", f"{_avg(ratings):.2f}" if ratings else "N/A"])
        for label in ("positive", "negative", "neutral"):
            ws2.append([f"{label.capitalize()} Sentiment", sum(1 for f in items if f.Sentiment == label)])

        bio = io.BytesIO()
        wb.save(bio)
        bio.seek(0)

        return StreamingResponse(
            bio,
            media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            headers={
                "Content-Disposition": f'attachment; filename="feedback-{stamp}.xlsx"',
                "Cache-Control": "no-store",
            },
        )
