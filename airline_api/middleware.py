"""
Airline API - ミドルウェア

責務:
  - リクエストログ（メソッド・パス・ステータス・処理時間）
  - 例外 → {"success": false, "error": ...} への変換
  - JWT 認証とロールによる認可

アプリケーション全体に1回だけ登録する（ルート単位では付けない）。
登録順: logging → error → auth（先頭が最も外側）
"""
import logging
import time

from aiohttp import web

from auth import AUTH_USER, verify_token
from errors import AppError, AuthError, ForbiddenError
from models import UserRole

logger = logging.getLogger(__name__)

# リソース名 → (参照を許可するロール, 更新を許可するロール)。None は認証不要
ACCESS_POLICY_KEY = web.AppKey("access_policy", dict)

ALL_ROLES = tuple(UserRole)
SAFE_METHODS = ("GET", "HEAD", "OPTIONS")


def error_response(message: str, status: int) -> web.Response:
    return web.json_response({"success": False, "error": message}, status=status)


@web.middleware
async def logging_middleware(request: web.Request, handler):
    t0 = time.monotonic()
    status = 500
    try:
        response = await handler(request)
        status = response.status
        return response
    except web.HTTPException as e:
        status = e.status
        raise
    finally:
        elapsed = (time.monotonic() - t0) * 1000
        logger.info(f"{request.method} {request.path} {status} ({elapsed:.1f}ms)")


@web.middleware
async def error_middleware(request: web.Request, handler):
    try:
        return await handler(request)
    except AppError as e:
        if e.status >= 500:
            logger.error(f"{request.method} {request.path}: {e.message}")
        return error_response(e.message, e.status)
    except web.HTTPException as e:
        # ルーティング由来の 404 / 405 など
        if e.status < 400:
            raise
        return error_response(e.reason, e.status)
    except Exception:
        logger.exception(f"予期しないサーバーエラー: {request.method} {request.path}")
        return error_response("Internal server error", 500)


def _bearer_token(request: web.Request) -> str:
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthError("Missing or invalid Authorization header")
    return token.strip()


@web.middleware
async def auth_middleware(request: web.Request, handler):
    """
    ルート名に対応するアクセスポリシーで認証・認可する。
    ポリシー未登録のルートは「認証済みなら誰でも可」とする。
    """
    match_info = request.match_info
    if match_info.http_exception is not None:
        # 存在しないパスは認証前に 404 / 405 を返す
        return await handler(request)

    policy = request.app[ACCESS_POLICY_KEY]
    read_roles, write_roles = policy.get(match_info.route.name, (ALL_ROLES, ALL_ROLES))
    roles = read_roles if request.method in SAFE_METHODS else write_roles
    if roles is None:
        return await handler(request)

    auth_user = verify_token(_bearer_token(request))
    if auth_user.role not in roles:
        raise ForbiddenError(
            f"User role '{auth_user.role.value}' is not authorized to access this route"
        )
    request[AUTH_USER] = auth_user
    return await handler(request)
