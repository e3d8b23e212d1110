"""
Airline API - アプリケーション本体

責務:
  - aiohttp アプリケーションの組み立て（ルート・ミドルウェア・DBプール）
  - コネクションプールのライフサイクル管理（起動時に生成、終了時に解放）
  - CLI エントリポイント

構成:
  Router → Middleware (logging → error → auth) → Handler → Repository → Pool → PostgreSQL
"""
import logging
import os

from aiohttp import web

import auth
from database import init_db
from db_config import INIT_SCHEMA, create_pool
from handlers import POOL_KEY, REPOSITORIES_KEY
from middleware import auth_middleware, error_middleware, logging_middleware
from repository import build_repositories
from routing import setup_routes

# ─────────────────────────────────
# 定数
# ─────────────────────────────────
SERVER_HOST = os.environ.get("SERVER_HOST", "0.0.0.0")
SERVER_PORT = int(os.environ.get("SERVER_PORT", "3000"))
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

logger = logging.getLogger("airline_api")


async def _database_ctx(app: web.Application):
    """プールを生成してアプリに登録し、終了時に閉じる。"""
    pool = await create_pool()
    if INIT_SCHEMA:
        await init_db(pool)
    app[POOL_KEY] = pool
    app[REPOSITORIES_KEY] = build_repositories(pool)
    yield
    await pool.close()
    logger.info("DBプール解放")


def create_app(pool=None, repositories=None) -> web.Application:
    """
    アプリケーションを生成する。

    pool を渡した場合はそれをそのまま使い、ライフサイクル管理はしない。
    repositories を渡すと任意の実装（テスト用のインメモリ実装など）に差し替えられる。
    """
    app = web.Application(middlewares=[
        logging_middleware,
        error_middleware,
        auth_middleware,
    ])
    setup_routes(app)

    if pool is None:
        app.cleanup_ctx.append(_database_ctx)
    else:
        app[POOL_KEY] = pool
        app[REPOSITORIES_KEY] = repositories if repositories is not None else build_repositories(pool)
    return app


# ─────────────────────────────────
# CLI
# ─────────────────────────────────
if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Airline Transportation API サーバー")
    parser.add_argument(
        "--host",
        default=SERVER_HOST,
        help=f"待ち受けホスト (デフォルト: {SERVER_HOST})",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=SERVER_PORT,
        help=f"待ち受けポート (デフォルト: {SERVER_PORT})",
    )
    parser.add_argument(
        "--log-level",
        default=LOG_LEVEL,
        help=f"ログレベル (デフォルト: {LOG_LEVEL})",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )

    if not auth.JWT_SECRET:
        parser.error("JWT_SECRET が未設定です")

    try:
        import uvloop
        uvloop.install()
        logger.info("uvloop 有効化")
    except ImportError:
        pass

    logger.info(f"サーバー起動 | {args.host}:{args.port}")
    web.run_app(create_app(), host=args.host, port=args.port, print=None)
