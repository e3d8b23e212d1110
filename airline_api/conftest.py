"""
テスト共通フィクスチャ

  - FakePool:           asyncpg.Pool の代わりに SQL と引数を記録し、用意した結果を順に返す
  - InMemoryRepository: ResourceRepository と同じインターフェースのインメモリ実装
  - client:             インメモリリポジトリで組み立てた aiohttp アプリのテストクライアント
"""
import os

# auth の import より前に設定する（テストでは bcrypt のコストを下げる）
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import dataclasses
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import pytest

import auth
from errors import MissingIdentifierError
from main import create_app
from models import RESOURCE_MODELS, UserRole

TEST_SECRET = "test-secret"


# ═══════════════════════════════════════
# 記録型の偽プール
# ═══════════════════════════════════════

class FakeConnection:
    def __init__(self, pool: "FakePool"):
        self._pool = pool

    async def fetchrow(self, sql, *args):
        return self._pool.respond("fetchrow", sql, args)

    async def fetch(self, sql, *args):
        return self._pool.respond("fetch", sql, args)

    async def fetchval(self, sql, *args):
        return self._pool.respond("fetchval", sql, args)

    async def execute(self, sql, *args):
        return self._pool.respond("execute", sql, args)

    @asynccontextmanager
    async def transaction(self):
        self._pool.transactions += 1
        yield


class FakePool:
    """
    呼び出しを (メソッド名, 空白を正規化したSQL, 引数) として calls に記録する。
    結果は コンストラクタに渡した順に1つずつ返す。例外インスタンスなら送出する。
    """

    def __init__(self, *results):
        self.results = list(results)
        self.calls = []
        self.transactions = 0

    def respond(self, method, sql, args):
        self.calls.append((method, " ".join(sql.split()), args))
        result = self.results.pop(0) if self.results else None
        if isinstance(result, BaseException):
            raise result
        return result

    @asynccontextmanager
    async def acquire(self):
        yield FakeConnection(self)

    async def fetchval(self, sql, *args):
        return self.respond("fetchval", sql, args)


# ═══════════════════════════════════════
# インメモリリポジトリ
# ═══════════════════════════════════════

def _db_value(resource, column):
    return resource.db_values([column])[0]


class InMemoryRepository:
    """
    blocked に入れたIDは「参照元あり」として削除を拒否する。
    error を設定するとすべての操作でその例外を送出する。
    """

    def __init__(self, model):
        self.model = model
        self.rows = {}
        self.blocked = set()
        self.error = None
        self._next_id = 1

    def _check(self):
        if self.error is not None:
            raise self.error

    def _ordered(self):
        keys = (*self.model.ORDER_BY, self.model.ID_COLUMN)
        return sorted(self.rows.values(), key=lambda r: tuple(getattr(r, k) for k in keys))

    async def find_by_id(self, resource_id):
        self._check()
        row = self.rows.get(resource_id)
        return dataclasses.replace(row) if row else None

    async def find_all(self, page, limit):
        self._check()
        start = (page - 1) * limit
        return self._ordered()[start:start + limit]

    async def find_by(self, column, value):
        self._check()
        for row in sorted(self.rows.values(), key=lambda r: r.id):
            if _db_value(row, column) == value:
                return dataclasses.replace(row)
        return None

    async def exists(self, criteria, exclude_id=None):
        self._check()
        return any(
            row.id != exclude_id
            and all(_db_value(row, k) == v for k, v in criteria.items())
            for row in self.rows.values()
        )

    async def count(self):
        self._check()
        return len(self.rows)

    async def insert(self, resource):
        self._check()
        new_id = self._next_id
        self._next_id += 1
        now = datetime.now(timezone.utc)
        self.rows[new_id] = dataclasses.replace(
            resource, **{self.model.ID_COLUMN: new_id, "created_at": now, "updated_at": now}
        )
        setattr(resource, self.model.ID_COLUMN, new_id)
        return new_id

    async def update(self, resource):
        self._check()
        if resource.id is None:
            raise MissingIdentifierError(f"Cannot update {self.model.LABEL} without an identifier")
        current = self.rows.get(resource.id)
        if current is None:
            return False
        self.rows[resource.id] = dataclasses.replace(
            resource, created_at=current.created_at, updated_at=datetime.now(timezone.utc)
        )
        return True

    async def delete(self, resource_id):
        self._check()
        if resource_id in self.blocked:
            return False
        return self.rows.pop(resource_id, None) is not None


# ═══════════════════════════════════════
# フィクスチャ
# ═══════════════════════════════════════

@pytest.fixture(autouse=True)
def jwt_secret(monkeypatch):
    monkeypatch.setattr(auth, "JWT_SECRET", TEST_SECRET)
    return TEST_SECRET


@pytest.fixture
def repositories():
    return {model.TABLE: InMemoryRepository(model) for model in RESOURCE_MODELS}


@pytest.fixture
def fake_pool():
    return FakePool()


@pytest.fixture
async def client(aiohttp_client, fake_pool, repositories):
    app = create_app(pool=fake_pool, repositories=repositories)
    return await aiohttp_client(app)


def bearer(user_id: int, role: UserRole) -> dict:
    return {"Authorization": f"Bearer {auth.create_token(user_id, role)}"}


@pytest.fixture
def admin_headers(jwt_secret):
    return bearer(1, UserRole.ADMIN)


@pytest.fixture
def worker_headers(jwt_secret):
    return bearer(2, UserRole.WORKER)


@pytest.fixture
def user_headers(jwt_secret):
    return bearer(3, UserRole.USER)
