from typing import Optional, Union
from pydantic import BaseModel
from datetime import datetime, date

"""
Định nghĩa lược đồ từ người dùng đến API và từ API gửi đến người dùng  
Có nghĩa là các thông tin sẽ hiển thị khi gọi đến API, giới hạn một số thông tin bí mật không được phép cho người dùng xem khi gọi API
"""

class Feedback_Base(BaseModel):
    """
    Dữ liệu khách hàng gửi lên từ form phản hồi (kiểm tra chi tiết nằm ở controller)
    - **name**: chỉ gồm chữ cái và khoảng trắng, tối đa 100 ký tự
    - **email**, **phone**, **contact**, **location**: tuỳ chọn
    - **rating**: 1-5 (chấp nhận cả chuỗi "1".."5")
    - **category**: food, service, ambiance, value, cleanliness, other
    - **visitDate**: ngày ghé thăm theo ISO 8601
    - **isAnonymous**: ẩn danh (chấp nhận cả chuỗi "true"/"false")
    - **tags**: chuỗi JSON tuỳ ý
    """
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    contact: Optional[str] = None
    location: Optional[str] = None
    rating: Optional[Union[int, str]] = None
    comments: Optional[str] = None
    category: Optional[str] = None
    visitDate: Optional[str] = None
    isAnonymous: Union[bool, str] = False
    tags: Optional[str] = None

class Feedback_Display(BaseModel):
    """
    Thông tin phản hồi trả về cho trang quản trị
    """
    ID: int
    Name: Optional[str] = None
    Email: Optional[str] = None
    Phone: Optional[str] = None
    Contact: Optional[str] = None
    Location: Optional[str] = None
    Rating: Optional[int] = None
    Comments: Optional[str] = None
    Category: Optional[str] = None
    Visit_Date: Optional[date] = None
    Is_Anonymous: bool = False
    Sentiment: Optional[str] = None
    Tags: Optional[str] = None
    Status: Optional[str] = None
    Created_At: Optional[datetime] = None
    class Config():
        from_attributes = True

class Feedback_Status_Update(BaseModel):
    status: str

class UserAuth(BaseModel):
    """
    Thông tin người dùng khi giải mã token phiên đăng nhập
    """
    ID: str
    Name: str
    Email: str
    Privilege: str

class User_Login_Display(BaseModel):
    User_Name: str
    Email: str
    Privilege: str
    Last_Login: Optional[datetime] = None
    class Config():
        from_attributes = True

class Threat_Action(BaseModel):
    """
    Thao tác trên `/api/threats`, hiện chỉ hỗ trợ `unblock`
    """
    action: str
    device_fingerprint: Optional[str] = None

class Block_Device_Request(BaseModel):
    device_fingerprint: str
    reason: Optional[str] = None

class Unblock_Device_Request(BaseModel):
    device_fingerprint: str
