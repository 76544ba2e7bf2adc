import os
import bcrypt  # pip install bcrypt

# Số vòng salt, giảm khi chạy test để tăng tốc
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", 12))


class Hash():
    """
    Mã hoá và xác minh mật khẩu với bcrypt
    """

    def bcrypt(password: str) -> str:
        """
        Mã hoá mật khẩu trước khi lưu vào CSDL
        """
        hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS))
        return hashed.decode("utf-8")

    def verify(plain_password: str, hashed_password: str) -> bool:
        """
        So sánh mật khẩu người dùng cung cấp với mật khẩu đã mã hoá trong CSDL
        """
        if not plain_password or not hashed_password:
            return False
        try:
            return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))
        except ValueError:
            # Chuỗi hash trong CSDL không đúng định dạng bcrypt
            return False
