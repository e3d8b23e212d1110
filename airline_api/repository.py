"""
Airline API - リポジトリ層

責務:
  - データベースに対するCRUD操作の一元管理
  - 全リソース共通の汎用実装（モデルのメタデータからSQLを組み立てる）
  - 参照元が残っている行の削除ガード

設計方針:
  - asyncpg コネクションプールから接続を取得して操作する
  - プールはコンストラクタで受け取る（グローバル変数にしない）
  - 1操作 = 1往復。削除のみ件数チェックと DELETE をトランザクションで囲む
  - asyncpg 由来の例外は DatabaseError に変換して送出する
"""
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Mapping, Optional, Type

import asyncpg

from errors import DatabaseError, MissingIdentifierError
from models import RESOURCE_MODELS, Resource

logger = logging.getLogger(__name__)

# DB起因として扱う例外
DB_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)

# LIMIT / OFFSET に渡せる上限 (BIGINT)
BIGINT_MAX = 2**63 - 1


def _affected_rows(status: str) -> int:
    """'UPDATE 1' / 'DELETE 0' 形式のコマンドステータスから件数を取り出す。"""
    try:
        return int(status.split()[-1])
    except (AttributeError, IndexError, ValueError):
        return 0


class ResourceRepository:
    def __init__(self, pool: asyncpg.Pool, model: Type[Resource]):
        self._pool = pool
        self.model = model
        self._columns = ', '.join(model.column_names())

    @asynccontextmanager
    async def _connection(self):
        """接続を1本借り、DB例外を DatabaseError に変換する。"""
        try:
            async with self._pool.acquire() as conn:
                yield conn
        except DB_ERRORS as e:
            logger.error(f"DBエラー ({self.model.TABLE}): {e.__class__.__name__}: {e}")
            raise DatabaseError(str(e)) from e

    def _check_columns(self, names):
        known = self.model.column_names()
        for name in names:
            if name not in known:
                raise ValueError(f"unknown column for {self.model.TABLE}: {name}")

    # ─────────────────────────────────
    # 参照系
    # ─────────────────────────────────
    async def find_by_id(self, resource_id: int) -> Optional[Resource]:
        """IDで1件取得する。該当なしは None（エラーではない）。"""
        m = self.model
        async with self._connection() as conn:
            row = await conn.fetchrow(
                f'SELECT {self._columns} FROM {m.TABLE} WHERE {m.ID_COLUMN} = $1',
                resource_id,
            )
        return m.from_record(row) if row else None

    async def find_all(self, page: int, limit: int) -> List[Resource]:
        """
        ページ単位で一覧を取得する（page は1始まり）。
        並び順はモデルの安定ソートキー + ID。範囲外のページは空リスト。
        """
        if page < 1 or limit < 1:
            raise ValueError("page and limit must be positive")
        m = self.model
        order_by = ', '.join((*m.ORDER_BY, m.ID_COLUMN))
        offset = (page - 1) * limit
        if offset > BIGINT_MAX:
            return []
        async with self._connection() as conn:
            rows = await conn.fetch(
                f'SELECT {self._columns} FROM {m.TABLE} '
                f'ORDER BY {order_by} LIMIT $1 OFFSET $2',
                min(limit, BIGINT_MAX), offset,
            )
        return [m.from_record(row) for row in rows]

    async def find_by(self, column: str, value: Any) -> Optional[Resource]:
        """任意の1列で最初の1件を取得する（ログイン時のメール・電話番号検索など）。"""
        self._check_columns([column])
        m = self.model
        async with self._connection() as conn:
            row = await conn.fetchrow(
                f'SELECT {self._columns} FROM {m.TABLE} WHERE {column} = $1 '
                f'ORDER BY {m.ID_COLUMN} LIMIT 1',
                value,
            )
        return m.from_record(row) if row else None

    async def exists(self, criteria: Mapping[str, Any], exclude_id: Optional[int] = None) -> bool:
        """
        指定した列の値の組を持つ行が存在するか。
        exclude_id 指定時はその行自身を除外する（更新時の一意性チェック用）。
        """
        self._check_columns(criteria)
        m = self.model
        conditions = [f'{name} = ${i}' for i, name in enumerate(criteria, start=1)]
        args = list(criteria.values())
        if exclude_id is not None:
            args.append(exclude_id)
            conditions.append(f'{m.ID_COLUMN} <> ${len(args)}')
        async with self._connection() as conn:
            return await conn.fetchval(
                f'SELECT EXISTS(SELECT 1 FROM {m.TABLE} WHERE {" AND ".join(conditions)})',
                *args,
            )

    async def count(self) -> int:
        """総件数（ページネーションの total_items）。"""
        async with self._connection() as conn:
            return await conn.fetchval(f'SELECT COUNT(*) FROM {self.model.TABLE}')

    # ─────────────────────────────────
    # 更新系
    # ─────────────────────────────────
    async def insert(self, resource: Resource) -> int:
        """
        1行INSERTし、採番されたIDを返す。
        渡されたインスタンスにもIDを設定する。
        """
        m = self.model
        names = [f.name for f in m.editable_fields()]
        placeholders = ', '.join(f'${i}' for i in range(1, len(names) + 1))
        async with self._connection() as conn:
            new_id = await conn.fetchval(
                f'INSERT INTO {m.TABLE} ({", ".join(names)}) '
                f'VALUES ({placeholders}) RETURNING {m.ID_COLUMN}',
                *resource.db_values(names),
            )
        setattr(resource, m.ID_COLUMN, new_id)
        logger.debug(f"INSERT {m.TABLE}: id={new_id}")
        return new_id

    async def update(self, resource: Resource) -> bool:
        """
        IDで指定した行の全編集可能列を書き換える。
        該当行が存在して更新された場合のみ True。
        """
        m = self.model
        if resource.id is None:
            raise MissingIdentifierError(f"Cannot update {m.LABEL} without an identifier")
        names = [f.name for f in m.editable_fields()]
        assignments = ', '.join(f'{name} = ${i}' for i, name in enumerate(names, start=1))
        async with self._connection() as conn:
            status = await conn.execute(
                f'UPDATE {m.TABLE} SET {assignments}, updated_at = NOW() '
                f'WHERE {m.ID_COLUMN} = ${len(names) + 1}',
                *resource.db_values(names), resource.id,
            )
        return _affected_rows(status) > 0

    async def delete(self, resource_id: int) -> bool:
        """
        参照元テーブルに依存行が1件でもあれば削除せず False を返す。
        依存行がなければ DELETE し、1行以上消えた場合のみ True。

        件数チェックと DELETE は同一トランザクション。
        チェック後に依存行が割り込んだ場合はFK制約違反になるため、それも False とする。
        """
        m = self.model
        async with self._connection() as conn:
            try:
                async with conn.transaction():
                    for table, column in m.DEPENDENTS:
                        dependents = await conn.fetchval(
                            f'SELECT COUNT(*) FROM {table} WHERE {column} = $1',
                            resource_id,
                        )
                        if dependents:
                            logger.info(
                                f"削除ブロック: {m.TABLE} id={resource_id} "
                                f"({table} に {dependents}件の参照あり)"
                            )
                            return False
                    status = await conn.execute(
                        f'DELETE FROM {m.TABLE} WHERE {m.ID_COLUMN} = $1',
                        resource_id,
                    )
            except asyncpg.ForeignKeyViolationError:
                logger.info(f"削除ブロック: {m.TABLE} id={resource_id} (FK制約違反)")
                return False
        return _affected_rows(status) > 0


def build_repositories(pool: asyncpg.Pool) -> Dict[str, ResourceRepository]:
    """全リソースのリポジトリをテーブル名をキーにして生成する。"""
    return {model.TABLE: ResourceRepository(pool, model) for model in RESOURCE_MODELS}
