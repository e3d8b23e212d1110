"""
Airline API - データモデル定義

各Entityの責務:
  - Route:      航空路線（出発地 → 目的地、距離、標準所要時間）
  - Aircraft:   機体マスタ
  - Crew:       乗務員チーム
  - CrewMember: 乗務員（Crewに所属）
  - Flight:     運航便（Route × Aircraft × Crew × 発着時刻）
  - FlightSeat: 便ごとの座席
  - Ticket:     航空券（User × Flight × Seat）
  - User:       利用者・スタッフアカウント

共通の振る舞い（Resource）:
  - テーブル名・ID列・安定ソートキー・参照元テーブルなどのメタデータ
  - JSONペイロードからの生成（作成DTO）と部分更新のマージ（更新DTO）
  - JSONに安全な dict への変換
  - IDと created_at / updated_at はDB側で採番・設定する（呼び出し側は設定しない）

各フィールドの制約は pydantic の型で宣言し、生成・置換のたびに検証される。
数値の上限はDBの列型（INTEGER, NUMERIC(10, 2)）に合わせる。
"""
import dataclasses
from dataclasses import fields
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, ClassVar, Dict, List, Mapping, Optional, Tuple

from pydantic import (
    AfterValidator,
    BeforeValidator,
    Field,
    StringConstraints,
    model_validator,
)
from pydantic import ValidationError as PydanticValidationError
from pydantic.dataclasses import dataclass

from date_format import calculate_duration, format_date, parse_date, parse_duration
from errors import ValidationError

# DBが設定するタイムスタンプ列
TIMESTAMP_FIELDS = ('created_at', 'updated_at')

# PostgreSQL INTEGER の上限
INT32_MAX = 2**31 - 1


# ─────────────────────────────────
# 列挙型
# ─────────────────────────────────
class UserRole(str, Enum):
    ADMIN = 'admin'
    WORKER = 'worker'
    USER = 'user'


class AircraftStatus(str, Enum):
    ACTIVE = 'active'
    MAINTENANCE = 'maintenance'
    RETIRED = 'retired'


class CrewPosition(str, Enum):
    CAPTAIN = 'captain'
    FIRST_OFFICER = 'first_officer'
    FLIGHT_ATTENDANT = 'flight_attendant'
    ENGINEER = 'engineer'


class FlightStatus(str, Enum):
    SCHEDULED = 'scheduled'
    BOARDING = 'boarding'
    DEPARTED = 'departed'
    ARRIVED = 'arrived'
    DELAYED = 'delayed'
    CANCELLED = 'cancelled'


class SeatClass(str, Enum):
    ECONOMY = 'economy'
    BUSINESS = 'business'
    FIRST = 'first'


class TicketStatus(str, Enum):
    BOOKED = 'booked'
    CHECKED_IN = 'checked_in'
    CANCELLED = 'cancelled'


# ─────────────────────────────────
# フィールド型
# ─────────────────────────────────
def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _as_utc(value: datetime) -> datetime:
    # タイムゾーン無指定はUTCとして扱う
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _check_duration(value: str) -> str:
    parse_duration(value)
    return value


def _date_text(value: Any) -> Any:
    if isinstance(value, str):
        return parse_date(value) if value.strip() else None
    return value


Text = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
OptionalText = Annotated[Optional[Text], BeforeValidator(_blank_to_none)]

# 便名・機体記号・座席番号など（大文字に正規化）
Code = Annotated[str, StringConstraints(strip_whitespace=True, to_upper=True, min_length=1)]
OptionalCode = Annotated[Optional[Code], BeforeValidator(_blank_to_none)]

Email = Annotated[
    Optional[Annotated[str, StringConstraints(
        strip_whitespace=True, to_lower=True, pattern=r'^[^@\s]+@[^@\s]+$',
    )]],
    BeforeValidator(_blank_to_none),
]

Duration = Annotated[str, StringConstraints(strip_whitespace=True), AfterValidator(_check_duration)]

# 外部キー・主キー。bool や文字列の数字は受け付けない
RowId = Annotated[int, Field(strict=True, ge=1, le=INT32_MAX)]
Capacity = Annotated[int, Field(strict=True, gt=0, le=INT32_MAX)]

Distance = Annotated[float, Field(gt=0, allow_inf_nan=False)]   # km

# NUMERIC(10, 2) にそのまま収まる金額のみ（丸めない）
Money = Annotated[Decimal, Field(ge=0, max_digits=10, decimal_places=2, allow_inf_nan=False)]

UtcDatetime = Annotated[datetime, AfterValidator(_as_utc)]

# YYYY-MM-DD のみ
OptionalDate = Annotated[Optional[date], BeforeValidator(_date_text)]


def _describe(exc: PydanticValidationError) -> str:
    """pydantic の検証エラーのうち最初の1件を応答用メッセージにする。"""
    error = exc.errors()[0]
    field = '.'.join(str(part) for part in error['loc'])
    if error['type'] == 'missing':
        return f"'{field}' is required"
    message = error['msg']
    if error['type'] == 'value_error':
        message = str(error['ctx']['error'])
    return f"'{field}': {message}" if field else message


def _to_json(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return format_date(value)
    if isinstance(value, Decimal):
        return float(value)
    return value


def _to_db(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    return value


# ═══════════════════════════════════════
# 共通基底
# ═══════════════════════════════════════

class Resource:
    """
    テーブル1行に対応するリソースの共通基底。
    具象クラスは pydantic の @dataclass として定義し、以下のメタデータを持つ。
    """
    TABLE: ClassVar[str]
    ID_COLUMN: ClassVar[str]
    LABEL: ClassVar[str]
    # find_all の安定ソートキー（末尾にID列が自動で付く）
    ORDER_BY: ClassVar[Tuple[str, ...]] = ()
    # 削除をブロックする参照元 (テーブル, FK列)
    DEPENDENTS: ClassVar[Tuple[Tuple[str, str], ...]] = ()
    # 一意であるべき列の組
    UNIQUE: ClassVar[Tuple[Tuple[str, ...], ...]] = ()
    # レスポンスに含めない列
    HIDDEN: ClassVar[Tuple[str, ...]] = ()

    @property
    def id(self) -> Optional[int]:
        return getattr(self, self.ID_COLUMN)

    @classmethod
    def column_names(cls) -> List[str]:
        return [f.name for f in fields(cls)]

    @classmethod
    def editable_fields(cls) -> List[dataclasses.Field]:
        """呼び出し側が設定できるフィールド（ID・タイムスタンプ以外）"""
        return [
            f for f in fields(cls)
            if f.name != cls.ID_COLUMN and f.name not in TIMESTAMP_FIELDS
        ]

    @classmethod
    def _editable_values(cls, payload: Mapping[str, Any]) -> Dict[str, Any]:
        # null は「指定なし」と同じ扱い
        return {
            f.name: payload[f.name]
            for f in cls.editable_fields()
            if payload.get(f.name) is not None
        }

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> 'Resource':
        return cls(**{name: record[name] for name in cls.column_names()})

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> 'Resource':
        """
        作成リクエストのJSONから未永続化（IDなし）のインスタンスを生成する。
        ID・タイムスタンプ・未知のキーは無視する。
        """
        try:
            return cls(**cls._editable_values(payload))
        except PydanticValidationError as e:
            raise ValidationError(_describe(e)) from e

    def merge(self, payload: Mapping[str, Any]) -> 'Resource':
        """
        部分更新: ペイロードに含まれない（またはnullの）フィールドは現状維持。
        IDは引き継がれる。結果は作成時と同じ制約で検証される。
        """
        try:
            return dataclasses.replace(self, **self._editable_values(payload))
        except PydanticValidationError as e:
            raise ValidationError(_describe(e)) from e

    def db_values(self, names: List[str]) -> List[Any]:
        return [_to_db(getattr(self, name)) for name in names]

    def to_dict(self) -> Dict[str, Any]:
        return {
            f.name: _to_json(getattr(self, f.name))
            for f in fields(self)
            if f.name not in self.HIDDEN
        }


# ═══════════════════════════════════════
# 各リソース
# ═══════════════════════════════════════

@dataclass
class Route(Resource):
    """航空路線"""
    TABLE = 'routes'
    ID_COLUMN = 'route_id'
    LABEL = 'Route'
    ORDER_BY = ('origin', 'destination')
    DEPENDENTS = (('flights', 'route_id'),)

    origin: Text
    destination: Text
    distance: Distance
    estimated_duration: Duration        # "HH:MM"
    route_id: Optional[RowId] = None
    created_at: Optional[UtcDatetime] = None
    updated_at: Optional[UtcDatetime] = None

    @model_validator(mode='after')
    def check_endpoints(self):
        if self.origin.upper() == self.destination.upper():
            raise ValueError("origin and destination must differ")
        return self


@dataclass
class Aircraft(Resource):
    """機体マスタ"""
    TABLE = 'aircraft'
    ID_COLUMN = 'aircraft_id'
    LABEL = 'Aircraft'
    ORDER_BY = ('manufacturer', 'model')
    DEPENDENTS = (('flights', 'aircraft_id'),)
    UNIQUE = (('registration_number',),)

    model: Text                         # 機種 (例: "A320neo")
    manufacturer: Text
    registration_number: Code           # 機体記号 (例: "JA31MC")
    capacity: Capacity
    status: AircraftStatus = AircraftStatus.ACTIVE
    aircraft_id: Optional[RowId] = None
    created_at: Optional[UtcDatetime] = None
    updated_at: Optional[UtcDatetime] = None


@dataclass
class Crew(Resource):
    TABLE = 'crews'
    ID_COLUMN = 'crew_id'
    LABEL = 'Crew'
    ORDER_BY = ('name',)
    DEPENDENTS = (('crew_members', 'crew_id'), ('flights', 'crew_id'))
    UNIQUE = (('name',),)

    name: Text
    crew_id: Optional[RowId] = None
    created_at: Optional[UtcDatetime] = None
    updated_at: Optional[UtcDatetime] = None


@dataclass
class CrewMember(Resource):
    TABLE = 'crew_members'
    ID_COLUMN = 'member_id'
    LABEL = 'Crew member'
    ORDER_BY = ('last_name', 'first_name')
    UNIQUE = (('license_number',),)

    crew_id: RowId
    first_name: Text
    last_name: Text
    position: CrewPosition
    license_number: OptionalCode = None
    member_id: Optional[RowId] = None
    created_at: Optional[UtcDatetime] = None
    updated_at: Optional[UtcDatetime] = None


@dataclass
class Flight(Resource):
    """運航便"""
    TABLE = 'flights'
    ID_COLUMN = 'flight_id'
    LABEL = 'Flight'
    ORDER_BY = ('departure_time', 'flight_number')
    DEPENDENTS = (('flight_seats', 'flight_id'), ('tickets', 'flight_id'))
    UNIQUE = (('flight_number',),)

    flight_number: Code                 # 便名 (例: "NH123")
    route_id: RowId
    aircraft_id: RowId
    departure_time: UtcDatetime
    arrival_time: UtcDatetime
    base_price: Money
    crew_id: Optional[RowId] = None
    status: FlightStatus = FlightStatus.SCHEDULED
    flight_id: Optional[RowId] = None
    created_at: Optional[UtcDatetime] = None
    updated_at: Optional[UtcDatetime] = None

    @model_validator(mode='after')
    def check_schedule(self):
        if self.arrival_time <= self.departure_time:
            raise ValueError("arrival_time must be after departure_time")
        return self

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data['duration'] = calculate_duration(self.departure_time, self.arrival_time)
        return data


@dataclass
class FlightSeat(Resource):
    """便ごとの座席（1便 × 1座席番号 = 1レコード）"""
    TABLE = 'flight_seats'
    ID_COLUMN = 'seat_id'
    LABEL = 'Flight seat'
    ORDER_BY = ('flight_id', 'seat_number')
    DEPENDENTS = (('tickets', 'seat_id'),)
    UNIQUE = (('flight_id', 'seat_number'),)

    flight_id: RowId
    seat_number: Code                   # 例: "12A"
    price: Money
    seat_class: SeatClass = SeatClass.ECONOMY
    is_available: bool = True
    seat_id: Optional[RowId] = None
    created_at: Optional[UtcDatetime] = None
    updated_at: Optional[UtcDatetime] = None


@dataclass
class Ticket(Resource):
    TABLE = 'tickets'
    ID_COLUMN = 'ticket_id'
    LABEL = 'Ticket'
    ORDER_BY = ('ticket_number',)
    UNIQUE = (('ticket_number',),)

    ticket_number: Code
    user_id: RowId
    flight_id: RowId
    price: Money
    seat_id: Optional[RowId] = None
    status: TicketStatus = TicketStatus.BOOKED
    ticket_id: Optional[RowId] = None
    created_at: Optional[UtcDatetime] = None
    updated_at: Optional[UtcDatetime] = None


@dataclass
class User(Resource):
    """
    利用者・スタッフアカウント。
    password はハッシュ済みの値を保持し、レスポンスには決して含めない。
    """
    TABLE = 'users'
    ID_COLUMN = 'user_id'
    LABEL = 'User'
    ORDER_BY = ('last_name', 'first_name')
    DEPENDENTS = (('tickets', 'user_id'),)
    UNIQUE = (('email',), ('passport_number',))
    HIDDEN = ('password',)

    first_name: Text
    last_name: Text
    email: Email = None
    password: Optional[str] = None
    role: UserRole = UserRole.USER
    passport_number: OptionalText = None
    nationality: OptionalText = None
    date_of_birth: OptionalDate = None
    contact_number: OptionalText = None
    gender: OptionalText = None
    user_id: Optional[RowId] = None
    created_at: Optional[UtcDatetime] = None
    updated_at: Optional[UtcDatetime] = None


# 外部キーの依存順（参照先が先）
RESOURCE_MODELS = (User, Route, Aircraft, Crew, CrewMember, Flight, FlightSeat, Ticket)
