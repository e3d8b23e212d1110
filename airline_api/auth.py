"""
Airline API - 認証（パスワードハッシュ・JWT）

責務:
  - パスワードの bcrypt ハッシュ化と照合（passlib）
  - JWT の発行と検証（python-jose, HS256）

JWT はステートレスで、サーバー側にセッションは持たない。
クレーム: sub（ユーザーIDの文字列）, role, iat, exp
"""
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jose import jwt
from jose.exceptions import ExpiredSignatureError, JWTError
from passlib.context import CryptContext

from errors import AuthError, InternalError
from models import INT32_MAX, UserRole

logger = logging.getLogger(__name__)


# ─────────────────────────────────
# 設定（環境変数 or デフォルト値）
# ─────────────────────────────────
JWT_SECRET = os.environ.get("JWT_SECRET", "")
JWT_EXPIRES_IN = os.environ.get("JWT_EXPIRES_IN", "30d")
JWT_ALGORITHM = "HS256"
BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))

DEFAULT_EXPIRATION = timedelta(days=30)

# 認証済みユーザーを格納する request のキー
AUTH_USER = "auth_user"

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=BCRYPT_ROUNDS,
)


@dataclass(frozen=True)
class AuthUser:
    """検証済みトークンから得た認証済みユーザー"""
    user_id: int
    role: UserRole


# ─────────────────────────────────
# パスワード
# ─────────────────────────────────
def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str | None) -> bool:
    """平文パスワードとハッシュを照合する。ハッシュ未設定・不正形式は False。"""
    if not hashed:
        return False
    try:
        return pwd_context.verify(password, hashed)
    except ValueError as e:
        logger.warning(f"パスワードハッシュ照合不可: {e}")
        return False


# ─────────────────────────────────
# JWT
# ─────────────────────────────────
_UNITS = {
    's': 'seconds',
    'm': 'minutes',
    'h': 'hours',
    'd': 'days',
}


def parse_expiration(text: str) -> timedelta:
    """
    "30d" / "24h" / "15m" / "3600s" 形式の有効期間を timedelta にする。
    解釈できない値は既定の30日とする。
    """
    text = (text or '').strip()
    amount, unit = text[:-1], text[-1:]
    if not amount.isdigit() or unit not in _UNITS:
        logger.warning(f"JWT_EXPIRES_IN を解釈できないため30日を使用: {text!r}")
        return DEFAULT_EXPIRATION
    return timedelta(**{_UNITS[unit]: int(amount)})


def create_token(user_id: int, role: UserRole) -> str:
    if not JWT_SECRET:
        raise InternalError("JWT secret is not configured")
    now = datetime.now(timezone.utc)
    expires_at = now + parse_expiration(JWT_EXPIRES_IN)
    claims = {
        "sub": str(user_id),
        "role": UserRole(role).value,
        "iat": int(now.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    return jwt.encode(claims, JWT_SECRET, algorithm=JWT_ALGORITHM)


def verify_token(token: str) -> AuthUser:
    """トークンを検証して AuthUser を返す。失敗時は AuthError。"""
    if not JWT_SECRET:
        raise InternalError("JWT secret is not configured")
    try:
        claims = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except ExpiredSignatureError:
        raise AuthError("Token expired")
    except JWTError as e:
        logger.debug(f"JWT検証失敗: {e}")
        raise AuthError("Invalid token")

    try:
        user_id = int(claims.get("sub", ""))
    except (TypeError, ValueError):
        raise AuthError("Invalid user ID in token")
    if not 0 < user_id <= INT32_MAX:
        raise AuthError("Invalid user ID in token")
    try:
        role = UserRole(claims.get("role"))
    except ValueError:
        raise AuthError("Invalid role in token")
    return AuthUser(user_id=user_id, role=role)
