"""
Airline API - リクエストハンドラ層

責務:
  - HTTPリクエスト（パス・クエリ・JSONボディ）をリポジトリ呼び出しに変換する
  - 結果を HTTPステータス + JSONエンベロープに変換する
      成功:       {"success": true, "data": ...}
      一覧:       {"success": true, "count", "pagination": {...}, "data": [...]}
      失敗:       {"success": false, "error": "..."}（エラーミドルウェアが生成）

全リソース共通の ResourceHandler をモデルごとにインスタンス化して使う。
業務ロジックは持たず、ページネーション情報の計算と
一意性チェック・参照整合性の結果をステータスに対応付けるだけ。
"""
import dataclasses
import logging
from typing import Any, Dict, Optional, Tuple, Type

import asyncpg
from aiohttp import web

from auth import AUTH_USER, create_token, hash_password, verify_password
from db_config import ping
from errors import AuthError, ConflictError, NotFoundError, ValidationError
from models import INT32_MAX, Resource, User, UserRole
from repository import ResourceRepository

logger = logging.getLogger(__name__)

POOL_KEY = web.AppKey("pool", asyncpg.Pool)
REPOSITORIES_KEY = web.AppKey("repositories", dict)

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MIN_PASSWORD_LENGTH = 6


# ─────────────────────────────────
# エンベロープ
# ─────────────────────────────────
def success(data: Any, status: int = 200, **extra) -> web.Response:
    return web.json_response({"success": True, **extra, "data": data}, status=status)


def total_pages(total_items: int, limit: int) -> int:
    """ceil(total_items / limit)。0件なら0ページ。"""
    return (total_items + limit - 1) // limit


def paginated(items, page: int, limit: int, total_items: int) -> web.Response:
    return web.json_response({
        "success": True,
        "count": len(items),
        "pagination": {
            "page": page,
            "limit": limit,
            "total_pages": total_pages(total_items, limit),
            "total_items": total_items,
        },
        "data": [item.to_dict() for item in items],
    })


# ─────────────────────────────────
# リクエスト解釈
# ─────────────────────────────────
def parse_pagination(request: web.Request) -> Tuple[int, int]:
    """?page=&limit= を解釈する。省略時は page=1, limit=10。"""
    try:
        page = int(request.query.get("page", DEFAULT_PAGE))
        limit = int(request.query.get("limit", DEFAULT_LIMIT))
    except ValueError:
        raise ValidationError("Page and limit must be positive integers")
    if page < 1 or limit < 1:
        raise ValidationError("Page and limit must be positive integers")
    return page, limit


async def read_json(request: web.Request) -> Dict[str, Any]:
    try:
        payload = await request.json()
    except ValueError:
        raise ValidationError("Request body must be valid JSON")
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    return payload


# ═══════════════════════════════════════
# 汎用リソースハンドラ
# ═══════════════════════════════════════

class ResourceHandler:
    """1モデル分の list / get / create / update / delete を提供する。"""

    def __init__(self, model: Type[Resource]):
        self.model = model

    def repository(self, request: web.Request) -> ResourceRepository:
        return request.app[REPOSITORIES_KEY][self.model.TABLE]

    def _not_found(self, resource_id) -> NotFoundError:
        return NotFoundError(f"{self.model.LABEL} not found with id {resource_id}")

    def _resource_id(self, request: web.Request) -> int:
        """パスのIDを取り出す。INTEGER列の範囲外のIDに該当する行はない。"""
        raw = request.match_info["id"]
        digits = raw.lstrip("0") or "0"
        if len(digits) > len(str(INT32_MAX)) or int(digits) > INT32_MAX:
            raise self._not_found(raw)
        return int(digits)

    async def _get_existing(self, repo: ResourceRepository, resource_id: int) -> Resource:
        resource = await repo.find_by_id(resource_id)
        if resource is None:
            raise self._not_found(resource_id)
        return resource

    async def _check_unique(self, repo: ResourceRepository, resource: Resource,
                            exclude_id: Optional[int] = None):
        """一意であるべき列の組が既存行と重複していれば ConflictError。"""
        for columns in self.model.UNIQUE:
            values = resource.db_values(list(columns))
            if any(v is None for v in values):
                continue
            criteria = dict(zip(columns, values))
            if await repo.exists(criteria, exclude_id=exclude_id):
                described = ', '.join(f"{k}={v!r}" for k, v in criteria.items())
                raise ConflictError(f"{self.model.LABEL} with {described} already exists")

    async def _before_save(self, resource: Resource, payload: Dict[str, Any]) -> Resource:
        """保存直前の差し込み口（ユーザーのパスワードハッシュ化など）。"""
        return resource

    async def create_resource(self, request: web.Request, payload: Dict[str, Any]) -> Resource:
        resource = self.model.from_payload(payload)
        resource = await self._before_save(resource, payload)
        repo = self.repository(request)
        await self._check_unique(repo, resource)
        new_id = await repo.insert(resource)
        logger.info(f"{self.model.LABEL} 作成: id={new_id}")
        return await self._get_existing(repo, new_id)

    # ─────────────────────────────────
    # エンドポイント
    # ─────────────────────────────────
    async def list_all(self, request: web.Request) -> web.Response:
        page, limit = parse_pagination(request)
        repo = self.repository(request)
        items = await repo.find_all(page, limit)
        total_items = await repo.count()
        return paginated(items, page, limit, total_items)

    async def get_one(self, request: web.Request) -> web.Response:
        resource_id = self._resource_id(request)
        resource = await self._get_existing(self.repository(request), resource_id)
        return success(resource.to_dict())

    async def create(self, request: web.Request) -> web.Response:
        payload = await read_json(request)
        resource = await self.create_resource(request, payload)
        return success(resource.to_dict(), status=201)

    async def update(self, request: web.Request) -> web.Response:
        """部分更新。ボディに無い（またはnullの）フィールドは現状維持。"""
        resource_id = self._resource_id(request)
        payload = await read_json(request)
        repo = self.repository(request)
        existing = await self._get_existing(repo, resource_id)
        resource = await self._before_save(existing.merge(payload), payload)
        await self._check_unique(repo, resource, exclude_id=resource_id)
        if not await repo.update(resource):
            # 取得後に削除された
            raise self._not_found(resource_id)
        updated = await self._get_existing(repo, resource_id)
        return success(updated.to_dict())

    async def delete(self, request: web.Request) -> web.Response:
        resource_id = self._resource_id(request)
        repo = self.repository(request)
        await self._get_existing(repo, resource_id)
        if not await repo.delete(resource_id):
            raise ConflictError(
                f"Cannot delete {self.model.LABEL} with id {resource_id}: "
                f"dependent records exist"
            )
        logger.info(f"{self.model.LABEL} 削除: id={resource_id}")
        return success({})


class UserHandler(ResourceHandler):
    """
    ユーザー用: 作成時はメール・パスワード必須。
    パスワードは bcrypt でハッシュ化してから保存する。
    """

    def __init__(self):
        super().__init__(User)

    async def _before_save(self, resource: User, payload: Dict[str, Any]) -> User:
        password = payload.get("password")
        if resource.id is None and (not resource.email or password is None):
            raise ValidationError("Please provide name, email and password")
        if password is None:
            return resource
        if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"'password' must be a string of at least {MIN_PASSWORD_LENGTH} characters"
            )
        return dataclasses.replace(resource, password=hash_password(password))


user_handler = UserHandler()


# ═══════════════════════════════════════
# 認証エンドポイント
# ═══════════════════════════════════════

def _users(request: web.Request) -> ResourceRepository:
    return request.app[REPOSITORIES_KEY][User.TABLE]


def _issue_token(user: Optional[User], password: str) -> web.Response:
    """資格情報を照合してトークンを発行する。ユーザー不在とパスワード不一致は区別しない。"""
    if user is None or not verify_password(password, user.password):
        raise AuthError("Invalid credentials")
    token = create_token(user.user_id, user.role)
    logger.info(f"ログイン: user_id={user.user_id}")
    return success(user.to_dict(), token=token)


def _credential(payload: Dict[str, Any], name: str) -> Optional[str]:
    value = payload.get(name)
    if not isinstance(value, str) or not value.strip():
        return None
    return value.strip()


async def register(request: web.Request) -> web.Response:
    """メールアドレスで新規登録する。ロールは常に user。"""
    payload = await read_json(request)
    payload["role"] = UserRole.USER.value
    user = await user_handler.create_resource(request, payload)
    token = create_token(user.user_id, user.role)
    return success(user.to_dict(), status=201, token=token)


async def login(request: web.Request) -> web.Response:
    payload = await read_json(request)
    email = _credential(payload, "email")
    password = payload.get("password")
    if email is None or not isinstance(password, str) or not password:
        raise ValidationError("Please provide email and password")
    user = await _users(request).find_by("email", email.lower())
    return _issue_token(user, password)


async def login_phone(request: web.Request) -> web.Response:
    payload = await read_json(request)
    phone = _credential(payload, "phone")
    password = payload.get("password")
    if phone is None or not isinstance(password, str) or not password:
        raise ValidationError("Please provide phone and password")
    user = await _users(request).find_by("contact_number", phone)
    return _issue_token(user, password)


async def me(request: web.Request) -> web.Response:
    auth_user = request[AUTH_USER]
    user = await _users(request).find_by_id(auth_user.user_id)
    if user is None:
        raise NotFoundError(f"User not found with id {auth_user.user_id}")
    return success(user.to_dict())


async def logout(request: web.Request) -> web.Response:
    # JWTはステートレスなので、クライアント側でトークンを破棄するだけ
    return success({})


# ═══════════════════════════════════════
# ルート・ヘルスチェック
# ═══════════════════════════════════════

async def root(request: web.Request) -> web.Response:
    return web.json_response({"message": "Welcome to Airline Transportation API"})


async def health(request: web.Request) -> web.Response:
    if await ping(request.app[POOL_KEY]):
        return web.json_response({
            "status": "ok",
            "message": "Service is healthy",
            "database": "connected",
        })
    return web.json_response({
        "status": "error",
        "message": "Service is unhealthy",
        "database": "disconnected",
    }, status=503)
