"""
Airline API - データベース初期化・テーブル定義

責務:
  - PostgreSQLテーブルの生成（冪等: CREATE TABLE IF NOT EXISTS）
  - 外部キー・一意制約・インデックスの定義

外部キーは ON DELETE の既定動作（NO ACTION）のままとし、
参照元が残っている行の削除はリポジトリ層のガードで事前に弾く。
"""
import logging

import asyncpg

logger = logging.getLogger(__name__)


async def init_db(pool: asyncpg.Pool):
    """データベースのテーブルを初期化する。"""
    async with pool.acquire() as conn:
        async with conn.transaction():
            # ══════════════════════════════════════
            # 1. 利用者
            # ══════════════════════════════════════
            await conn.execute('''
                CREATE TABLE IF NOT EXISTS users (
                    user_id         SERIAL PRIMARY KEY,
                    email           TEXT UNIQUE,
                    password        TEXT,
                    role            TEXT NOT NULL DEFAULT 'user'
                        CHECK (role IN ('admin', 'worker', 'user')),
                    first_name      TEXT NOT NULL,
                    last_name       TEXT NOT NULL,
                    passport_number TEXT UNIQUE,
                    nationality     TEXT,
                    date_of_birth   DATE,
                    contact_number  TEXT,
                    gender          TEXT,
                    created_at      TIMESTAMPTZ DEFAULT NOW(),
                    updated_at      TIMESTAMPTZ DEFAULT NOW()
                )
            ''')

            # ══════════════════════════════════════
            # 2. 路線
            # ══════════════════════════════════════
            await conn.execute('''
                CREATE TABLE IF NOT EXISTS routes (
                    route_id           SERIAL PRIMARY KEY,
                    origin             TEXT NOT NULL,
                    destination        TEXT NOT NULL,
                    distance           DOUBLE PRECISION NOT NULL,
                    estimated_duration TEXT NOT NULL,
                    created_at         TIMESTAMPTZ DEFAULT NOW(),
                    updated_at         TIMESTAMPTZ DEFAULT NOW()
                )
            ''')

            # ══════════════════════════════════════
            # 3. 機体
            # ══════════════════════════════════════
            await conn.execute('''
                CREATE TABLE IF NOT EXISTS aircraft (
                    aircraft_id         SERIAL PRIMARY KEY,
                    model               TEXT    NOT NULL,
                    manufacturer        TEXT    NOT NULL,
                    registration_number TEXT    NOT NULL UNIQUE,
                    capacity            INTEGER NOT NULL CHECK (capacity > 0),
                    status              TEXT    NOT NULL DEFAULT 'active'
                        CHECK (status IN ('active', 'maintenance', 'retired')),
                    created_at          TIMESTAMPTZ DEFAULT NOW(),
                    updated_at          TIMESTAMPTZ DEFAULT NOW()
                )
            ''')

            # ══════════════════════════════════════
            # 4. 乗務員チーム・乗務員
            # ══════════════════════════════════════
            await conn.execute('''
                CREATE TABLE IF NOT EXISTS crews (
                    crew_id    SERIAL PRIMARY KEY,
                    name       TEXT NOT NULL UNIQUE,
                    created_at TIMESTAMPTZ DEFAULT NOW(),
                    updated_at TIMESTAMPTZ DEFAULT NOW()
                )
            ''')

            await conn.execute('''
                CREATE TABLE IF NOT EXISTS crew_members (
                    member_id      SERIAL PRIMARY KEY,
                    crew_id        INTEGER NOT NULL REFERENCES crews(crew_id),
                    first_name     TEXT    NOT NULL,
                    last_name      TEXT    NOT NULL,
                    position       TEXT    NOT NULL
                        CHECK (position IN ('captain', 'first_officer',
                                            'flight_attendant', 'engineer')),
                    license_number TEXT UNIQUE,
                    created_at     TIMESTAMPTZ DEFAULT NOW(),
                    updated_at     TIMESTAMPTZ DEFAULT NOW()
                )
            ''')

            # ══════════════════════════════════════
            # 5. 運航便
            # ══════════════════════════════════════
            await conn.execute('''
                CREATE TABLE IF NOT EXISTS flights (
                    flight_id      SERIAL PRIMARY KEY,
                    flight_number  TEXT    NOT NULL UNIQUE,
                    route_id       INTEGER NOT NULL REFERENCES routes(route_id),
                    aircraft_id    INTEGER NOT NULL REFERENCES aircraft(aircraft_id),
                    crew_id        INTEGER REFERENCES crews(crew_id),
                    departure_time TIMESTAMPTZ NOT NULL,
                    arrival_time   TIMESTAMPTZ NOT NULL,
                    base_price     NUMERIC(10, 2) NOT NULL,
                    status         TEXT NOT NULL DEFAULT 'scheduled'
                        CHECK (status IN ('scheduled', 'boarding', 'departed',
                                          'arrived', 'delayed', 'cancelled')),
                    created_at     TIMESTAMPTZ DEFAULT NOW(),
                    updated_at     TIMESTAMPTZ DEFAULT NOW(),
                    CHECK (arrival_time > departure_time)
                )
            ''')

            # ══════════════════════════════════════
            # 6. 座席
            #    同一便・同一座席番号の重複を複合ユニークキーで防ぐ
            # ══════════════════════════════════════
            await conn.execute('''
                CREATE TABLE IF NOT EXISTS flight_seats (
                    seat_id      SERIAL PRIMARY KEY,
                    flight_id    INTEGER NOT NULL REFERENCES flights(flight_id),
                    seat_number  TEXT    NOT NULL,
                    seat_class   TEXT    NOT NULL DEFAULT 'economy'
                        CHECK (seat_class IN ('economy', 'business', 'first')),
                    price        NUMERIC(10, 2) NOT NULL,
                    is_available BOOLEAN NOT NULL DEFAULT TRUE,
                    created_at   TIMESTAMPTZ DEFAULT NOW(),
                    updated_at   TIMESTAMPTZ DEFAULT NOW(),
                    UNIQUE(flight_id, seat_number)
                )
            ''')

            # ══════════════════════════════════════
            # 7. 航空券
            # ══════════════════════════════════════
            await conn.execute('''
                CREATE TABLE IF NOT EXISTS tickets (
                    ticket_id     SERIAL PRIMARY KEY,
                    ticket_number TEXT    NOT NULL UNIQUE,
                    user_id       INTEGER NOT NULL REFERENCES users(user_id),
                    flight_id     INTEGER NOT NULL REFERENCES flights(flight_id),
                    seat_id       INTEGER REFERENCES flight_seats(seat_id),
                    price         NUMERIC(10, 2) NOT NULL,
                    status        TEXT NOT NULL DEFAULT 'booked'
                        CHECK (status IN ('booked', 'checked_in', 'cancelled')),
                    created_at    TIMESTAMPTZ DEFAULT NOW(),
                    updated_at    TIMESTAMPTZ DEFAULT NOW()
                )
            ''')

            # ══════════════════════════════════════
            # 8. インデックス（参照元の件数チェック・一覧ソートの高速化）
            # ══════════════════════════════════════
            await conn.execute('''
                CREATE INDEX IF NOT EXISTS idx_flights_route
                    ON flights(route_id)
            ''')
            await conn.execute('''
                CREATE INDEX IF NOT EXISTS idx_flights_aircraft
                    ON flights(aircraft_id)
            ''')
            await conn.execute('''
                CREATE INDEX IF NOT EXISTS idx_flights_crew
                    ON flights(crew_id)
            ''')
            await conn.execute('''
                CREATE INDEX IF NOT EXISTS idx_crew_members_crew
                    ON crew_members(crew_id)
            ''')
            await conn.execute('''
                CREATE INDEX IF NOT EXISTS idx_tickets_user
                    ON tickets(user_id)
            ''')
            await conn.execute('''
                CREATE INDEX IF NOT EXISTS idx_tickets_flight
                    ON tickets(flight_id)
            ''')
            await conn.execute('''
                CREATE INDEX IF NOT EXISTS idx_tickets_seat
                    ON tickets(seat_id)
            ''')
            await conn.execute('''
                CREATE INDEX IF NOT EXISTS idx_routes_order
                    ON routes(origin, destination)
            ''')
    logger.info("テーブル初期化完了")
