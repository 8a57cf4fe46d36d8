from datetime import timedelta
from typing import Any, Union, Optional
from jose import jwt, JWTError
import bcrypt
import secrets
import uuid
from app.core.config import settings
from app.utils.dates import utcnow

ALGORITHM = settings.ALGORITHM
SECRET_KEY = settings.SECRET_KEY


def create_access_token(
    subject: Union[str, Any], expires_delta: Optional[timedelta] = None
) -> str:
    if expires_delta:
        expire = utcnow() + expires_delta
    else:
        expire = utcnow() + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode = {"exp": expire, "sub": str(subject), "type": "access"}
    encoded_jwt = jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)
    return encoded_jwt


def create_refresh_token(
    subject: Union[str, Any], expires_delta: Optional[timedelta] = None
) -> str:
    if expires_delta:
        expire = utcnow() + expires_delta
    else:
        expire = utcnow() + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
    # jti keeps two refresh tokens minted in the same second distinct
    to_encode = {
        "exp": expire,
        "sub": str(subject),
        "type": "refresh",
        "jti": uuid.uuid4().hex,
    }
    encoded_jwt = jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)
    return encoded_jwt


def decode_token(token: str, expected_type: str = "access") -> dict:
    """Decode a JWT, raising jose errors on bad signature or expiry."""
    payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    if payload.get("type") != expected_type:
        raise JWTError(f"Expected {expected_type} token")
    return payload


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(
            plain_password.encode("utf-8"), hashed_password.encode("utf-8")
        )
    except Exception:
        return False


def get_password_hash(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(12)).decode("utf-8")


def generate_otp(length: int = 6) -> str:
    return "".join(secrets.choice("0123456789") for _ in range(length))


def validate_file_extension(filename: str, allowed_extensions: list) -> bool:
    """Validate file extension to prevent malicious uploads"""
    if not filename:
        return False

    ext = filename.split(".")[-1].lower() if "." in filename else ""
    return ext in [e.lower().lstrip(".") for e in allowed_extensions]


def generate_secure_filename(original_filename: str) -> str:
    """Random stored name that keeps the original extension"""
    if not original_filename:
        return str(uuid.uuid4())

    parts = original_filename.rsplit(".", 1)
    ext = parts[-1].lower() if len(parts) > 1 else ""
    secure_name = str(uuid.uuid4())
    return f"{secure_name}.{ext}" if ext else secure_name
