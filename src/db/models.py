from db.database import Base
from sqlalchemy import Column, Integer, DateTime, Unicode, UnicodeText, Boolean, Date

"""
Định nghĩa tất cả các bảng trong CSDL
"""

class DbUser_Login(Base):
    """
    Định nghĩa bảng tài khoản quản trị   
    Mật khẩu đã được mã hóa trước khi lưu vào CSDL
    """
    __tablename__ = "Users_Login"
    ID = Column(Unicode(200), primary_key=True)
    User_Name = Column(Unicode(500)) # Sử dụng kiểu Nvarchar: NVARCHAR
    Email = Column(Unicode(200), unique=True) # Không được trùng nhau
    Password = Column(Unicode(200))
    Privilege = Column(Unicode(100))
    Activate = Column(DateTime)
    Last_Login = Column(DateTime)
    Created_At = Column(DateTime)


class DbFeedback(Base):
    """
    Phản hồi của khách hàng gửi từ form công khai  
    Sentiment được tính bằng từ khoá khi lưu
    """
    __tablename__ = "Feedback"
    ID = Column(Integer, primary_key=True, autoincrement=True)
    Name = Column(Unicode(100))
    Email = Column(Unicode(254))
    Phone = Column(Unicode(20))
    Contact = Column(Unicode(100))
    Location = Column(Unicode(100))
    Rating = Column(Integer)
    Comments = Column(UnicodeText)
    Category = Column(Unicode(50), nullable=False, default="other")
    Visit_Date = Column(Date)
    Is_Anonymous = Column(Boolean, default=False)
    Sentiment = Column(Unicode(20))
    Tags = Column(UnicodeText)     # Chuỗi JSON
    Status = Column(Unicode(20), default="new")
    IP_Address = Column(Unicode(64))
    User_Agent = Column(Unicode(500))
    Created_At = Column(DateTime, index=True)
    Updated_At = Column(DateTime)


class DbThreat_Event(Base):
    """
    Sự kiện đe doạ đã được lớp phát hiện ghi nhận (lưu bất đồng bộ)
    """
    __tablename__ = "Threat_Events"
    ID = Column(Unicode(64), primary_key=True)
    Type = Column(Unicode(50), nullable=False)
    Severity = Column(Unicode(20), nullable=False)
    User_ID = Column(Unicode(200))
    Source_IP = Column(Unicode(64))
    User_Agent = Column(Unicode(500))
    Device_Fingerprint = Column(Unicode(64), index=True)
    Request_Path = Column(Unicode(500))
    Details = Column(UnicodeText)  # Chuỗi JSON
    Blocked = Column(Boolean, default=False)
    Created_At = Column(DateTime, index=True)


class DbBlocked_Device(Base):
    """
    Thiết bị bị chặn. Khi mở chặn chỉ đặt Is_Active = False để giữ lịch sử
    """
    __tablename__ = "Blocked_Devices"
    ID = Column(Integer, primary_key=True, autoincrement=True)
    Device_Fingerprint = Column(Unicode(64), nullable=False, index=True)
    Reason = Column(Unicode(500))
    Metadata_Json = Column(UnicodeText)
    Is_Active = Column(Boolean, default=True)
    Blocked_At = Column(DateTime)
    Unblocked_At = Column(DateTime)


class DbAudit_Log(Base):
    """
    Nhật ký thao tác (đăng nhập, gửi phản hồi, chặn/mở chặn thiết bị,...)
    """
    __tablename__ = "Audit_Logs"
    ID = Column(Integer, primary_key=True, autoincrement=True)
    User_ID = Column(Unicode(200))
    Action = Column(Unicode(100), nullable=False)
    Resource = Column(Unicode(100))
    Resource_ID = Column(Unicode(200))
    Details = Column(UnicodeText)
    IP_Address = Column(Unicode(64))
    User_Agent = Column(Unicode(500))
    Created_At = Column(DateTime, index=True)
