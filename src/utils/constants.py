"""
Các hằng số dùng chung cho toàn bộ dự án
"""

# ===== Quyền hạn người dùng =====
DEFAULT_PRIVILEGE = "Moderator"
HIGH_PRIVILEGE_LIST = ["Admin"]                       # Được phép quản trị bảo mật (block/unblock thiết bị)
FULL_PRIVILEGE_LIST = ["Admin", "Moderator"]          # Tất cả quyền hạn hợp lệ
PRIVILEGE_LIST = ", ".join(FULL_PRIVILEGE_LIST)

# ===== Phản hồi (feedback) =====
FEEDBACK_CATEGORIES = ["food", "service", "ambiance", "value", "cleanliness", "other"]
FEEDBACK_STATUSES = ["new", "reviewed", "resolved", "archived"]
DEFAULT_FEEDBACK_STATUS = "new"
ANONYMOUS_NAME = "Anonymous"

# Từ khoá để phân loại cảm xúc đơn giản (chỉ so khớp chuỗi con)
POSITIVE_WORDS = ["good", "great", "excellent", "amazing", "wonderful", "fantastic", "love", "perfect"]
NEGATIVE_WORDS = ["bad", "terrible", "awful", "horrible", "disappointed", "hate", "worst"]

# Giới hạn độ dài dữ liệu người dùng gửi lên
MAX_NAME_LENGTH = 100
MAX_EMAIL_LENGTH = 254
MAX_CONTACT_LENGTH = 100
MAX_LOCATION_LENGTH = 100
MAX_COMMENTS_LENGTH = 2000
MAX_SANITIZED_LENGTH = 1000
MAX_SEARCH_LENGTH = 100

# ===== Phiên đăng nhập =====
SESSION_COOKIE_NAME = "session_token"
SESSION_MAX_AGE_SECONDS = 24 * 60 * 60                # Cookie sống 24 giờ
