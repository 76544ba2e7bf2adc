import io
import pytest
from openpyxl import load_workbook
from controllers.feedback_controller import analyze_sentiment
from db.models import DbAudit_Log, DbFeedback


def _feedback(**overrides):
    body = {
        "name": "John Doe",
        "email": "john@example.com",
        "phone": "+84901234567",
        "location": "District 1",
        "rating": 5,
        "comments": "Great food and excellent service",
        "category": "food",
        "visitDate": "2024-05-01",
    }
    body.update(overrides)
    return body


def _create(client, **overrides):
    response = client.post("/api/feedback", json=_feedback(**overrides))
    assert response.status_code == 201, response.text
    return response.json()


@pytest.mark.parametrize("rating, comments, expected", [
    (5, None, "positive"),
    (3, None, "neutral"),
    (1, None, "negative"),
    (2, "Amazing, loved it", "positive"),
    (5, "Terrible wait", "negative"),
    (3, "good but bad", "neutral"),
    (None, None, "neutral"),
])
def test_analyze_sentiment(rating, comments, expected):
    assert analyze_sentiment(rating, comments) == expected


def test_create_feedback_without_login(client, db):
    data = _create(client)
    assert data["Name"] == "John Doe"
    assert data["Sentiment"] == "positive"
    assert data["Status"] == "new"
    assert data["Visit_Date"] == "2024-05-01"

    audit = db.query(DbAudit_Log).filter(DbAudit_Log.Action == "create").all()
    assert len(audit) == 1 and audit[0].Resource_ID == str(data["ID"])


def test_create_anonymous_feedback_with_string_fields(client, db):
    data = _create(client, isAnonymous="true", rating="2", comments=None)
    assert data["Name"] == "Anonymous"
    assert data["Is_Anonymous"] is True
    assert data["Rating"] == 2
    assert data["Sentiment"] == "negative"

    row = db.query(DbFeedback).filter(DbFeedback.ID == data["ID"]).first()
    assert row.IP_Address


def test_comments_are_sanitized(client):
    data = _create(client, comments="<script>alert(1)</script> nice")
    assert "<script>" not in data["Comments"]


@pytest.mark.parametrize("overrides, error", [
    ({"name": ""}, "Name is required"),
    ({"name": "R2D2"}, "Name can only contain letters and spaces"),
    ({"email": "not-an-email"}, "Invalid email format"),
    ({"phone": "abc"}, "Invalid phone number format"),
    ({"rating": 7}, "Rating must be between 1 and 5"),
    ({"category": "parking"}, "Category must be one of: food, service, ambiance, value, cleanliness, other"),
])
def test_create_feedback_validation(client, overrides, error):
    response = client.post("/api/feedback", json=_feedback(**overrides))
    assert response.status_code == 400
    detail = response.json()["detail"]
    assert detail["message"] == "Invalid input data"
    assert error in detail["errors"]


def test_admin_endpoints_require_login(client):
    for path in ("/api/feedback", "/api/feedback/stats", "/api/analytics", "/api/feedback/export"):
        response = client.get(path)
        assert response.status_code == 401, path
        assert response.json()["detail"]["message"] == "Authentication required"


def test_search_feedback(moderator_client):
    _create(moderator_client, name="Alice", rating=5, category="food")
    _create(moderator_client, name="Bob", rating=3, category="service", comments="Slow but friendly")
    _create(moderator_client, name="Carol", rating=1, category="service", comments="Cold soup")

    everything = moderator_client.get("/api/feedback").json()
    assert everything["total"] == 3
    assert everything["total_pages"] == 1

    by_rating = moderator_client.get("/api/feedback", params={"rating": "3"}).json()
    assert sorted(i["Name"] for i in by_rating["items"]) == ["Alice", "Bob"]

    by_category = moderator_client.get("/api/feedback", params={"category": "service"}).json()
    assert by_category["total"] == 2

    by_text = moderator_client.get("/api/feedback", params={"q": "soup"}).json()
    assert [i["Name"] for i in by_text["items"]] == ["Carol"]

    paged = moderator_client.get("/api/feedback", params={"limit": 2, "page": 2}).json()
    assert len(paged["items"]) == 1
    assert paged["total_pages"] == 2


def test_search_feedback_rejects_bad_filters(moderator_client):
    assert moderator_client.get("/api/feedback", params={"status": "spam"}).status_code == 400
    assert moderator_client.get("/api/feedback", params={"rating": "9"}).status_code == 400


def test_update_and_delete_feedback(moderator_client):
    created = _create(moderator_client)
    fid = created["ID"]

    updated = moderator_client.patch(f"/api/feedback/{fid}", json={"status": "reviewed"})
    assert updated.status_code == 200
    assert updated.json()["Status"] == "reviewed"

    assert moderator_client.patch(f"/api/feedback/{fid}", json={"status": "whatever"}).status_code == 400
    assert moderator_client.patch("/api/feedback/9999", json={"status": "resolved"}).status_code == 404

    deleted = moderator_client.delete(f"/api/feedback/{fid}")
    assert deleted.status_code == 200
    assert moderator_client.delete(f"/api/feedback/{fid}").status_code == 404


def test_stats(moderator_client):
    _create(moderator_client, rating=5)
    _create(moderator_client, rating=2, isAnonymous=True, category="value", comments=None)

    stats = moderator_client.get("/api/feedback/stats").json()
    assert stats["total_submissions"] == 2
    assert stats["today_submissions"] == 2
    assert stats["average_rating"] == 3.5
    assert stats["anonymous_count"] == 1
    assert stats["category_breakdown"] == {"food": 1, "value": 1}
    assert stats["rating_distribution"] == {"5": 1, "2": 1}
    assert len(stats["recent_submissions"]) == 2


def test_analytics(moderator_client):
    _create(moderator_client, rating=4, location="Hanoi")
    _create(moderator_client, rating=2, location="Hanoi", comments=None)

    data = moderator_client.get("/api/analytics", params={"days": 7}).json()
    assert data["total_feedback"] == 2
    assert data["average_rating"] == 3
    assert {"rating": 4, "count": 1} in data["rating_distribution"]
    assert data["location_stats"][0] == {"location": "Hanoi", "count": 2, "avg_rating": 3}
    assert len(data["daily_feedback"]) == 1

    assert moderator_client.get("/api/analytics", params={"days": 0}).status_code == 400
    assert moderator_client.get("/api/analytics", params={"category": "parking"}).status_code == 400


def test_export_csv(moderator_client):
    _create(moderator_client, name="Alice")

    response = moderator_client.get("/api/feedback/export", params={"format": "csv"})
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert "attachment" in response.headers["content-disposition"]

    lines = response.text.strip().split("\n")
    assert lines[0].startswith("ID,Created At,Name")
    assert "Alice" in lines[1]


def test_export_excel(moderator_client):
    _create(moderator_client, rating=4)
    _create(moderator_client, rating=2, comments=None)

    response = moderator_client.get("/api/feedback/export", params={"format": "excel"})
    assert response.status_code == 200

    wb = load_workbook(io.BytesIO(response.content))
    assert wb.sheetnames == ["Feedback", "Summary"]
    assert wb["Feedback"].max_row == 3
    summary = {row[0]: row[1] for row in wb["Summary"].iter_rows(values_only=True)}
    assert summary["Total Feedback"] == 2
    assert summary["Average Rating"] == "3.00"


def test_export_unsupported_format(moderator_client):
    response = moderator_client.get("/api/feedback/export", params={"format": "pdf"})
    assert response.status_code == 400
    assert response.json()["detail"]["message"] == "Unsupported format"
