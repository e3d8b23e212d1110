"""
Airline API - ルーティング

責務:
  - (HTTPメソッド, パス) → ハンドラの対応表
  - リソースごとのアクセスポリシー（参照ロール / 更新ロール）

各リソースは同じ形で展開される:
  GET    /api/<resource>            一覧（?page=&limit=）
  POST   /api/<resource>            作成
  GET    /api/<resource>/{id}       1件取得
  PUT    /api/<resource>/{id}       部分更新
  DELETE /api/<resource>/{id}       削除
"""
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from aiohttp import web

import handlers
from handlers import ResourceHandler, user_handler
from middleware import ACCESS_POLICY_KEY, ALL_ROLES
from models import Aircraft, Crew, CrewMember, Flight, FlightSeat, Route, Ticket, UserRole

Roles = Optional[Tuple[UserRole, ...]]

STAFF_ROLES = (UserRole.ADMIN, UserRole.WORKER)
ADMIN_ONLY = (UserRole.ADMIN,)
PUBLIC = (None, None)


@dataclass(frozen=True)
class ResourceRoute:
    path: str
    handler: ResourceHandler
    read_roles: Roles
    write_roles: Roles


RESOURCE_ROUTES = (
    ResourceRoute("/api/routes", ResourceHandler(Route), ALL_ROLES, STAFF_ROLES),
    ResourceRoute("/api/aircraft", ResourceHandler(Aircraft), ALL_ROLES, STAFF_ROLES),
    ResourceRoute("/api/crews", ResourceHandler(Crew), STAFF_ROLES, STAFF_ROLES),
    ResourceRoute("/api/crew-members", ResourceHandler(CrewMember), STAFF_ROLES, STAFF_ROLES),
    ResourceRoute("/api/flights", ResourceHandler(Flight), ALL_ROLES, STAFF_ROLES),
    ResourceRoute("/api/flight-seats", ResourceHandler(FlightSeat), ALL_ROLES, STAFF_ROLES),
    ResourceRoute("/api/tickets", ResourceHandler(Ticket), ALL_ROLES, ALL_ROLES),
    ResourceRoute("/api/users", user_handler, ADMIN_ONLY, ADMIN_ONLY),
)


def add_resource_routes(app: web.Application, route: ResourceRoute, policy: Dict):
    """1リソース分の5ルートを登録し、アクセスポリシーを記録する。"""
    name = route.handler.model.TABLE
    collection = app.router.add_resource(route.path, name=name)
    collection.add_route("GET", route.handler.list_all)
    collection.add_route("POST", route.handler.create)

    item = app.router.add_resource(route.path + r"/{id:\d+}", name=f"{name}.item")
    item.add_route("GET", route.handler.get_one)
    item.add_route("PUT", route.handler.update)
    item.add_route("DELETE", route.handler.delete)

    policy[name] = policy[f"{name}.item"] = (route.read_roles, route.write_roles)


def setup_routes(app: web.Application):
    policy = {}

    app.router.add_get("/", handlers.root, name="root")
    app.router.add_get("/health", handlers.health, name="health")
    policy["root"] = policy["health"] = PUBLIC

    # 認証
    app.router.add_post("/api/auth/register", handlers.register, name="auth.register")
    app.router.add_post("/api/auth/login", handlers.login, name="auth.login")
    app.router.add_post("/api/auth/login-phone", handlers.login_phone, name="auth.login_phone")
    app.router.add_get("/api/auth/me", handlers.me, name="auth.me")
    app.router.add_get("/api/auth/logout", handlers.logout, name="auth.logout")
    for name in ("auth.register", "auth.login", "auth.login_phone"):
        policy[name] = PUBLIC
    for name in ("auth.me", "auth.logout"):
        policy[name] = (ALL_ROLES, ALL_ROLES)

    for route in RESOURCE_ROUTES:
        add_resource_routes(app, route, policy)

    app[ACCESS_POLICY_KEY] = policy
