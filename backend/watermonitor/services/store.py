"""
Telemetry Store
===============

The one place that talks to the database.

WHAT IT DOES:
------------
1. Appends readings and finds the latest one (for the duty cycle and the API)
2. Rewrites device rows on every scheduler tick
3. Keeps users, password reset tokens and login tokens
4. Seeds an empty database with sample data so the dashboard has something to show

Every database failure comes out as a StoreError. The scheduler logs those
and moves on; the routers turn them into 500s.

Works with any SQLAlchemy URL. Local development uses a SQLite file;
production points DATABASE_URL at PostgreSQL.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import String, cast, delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from werkzeug.security import generate_password_hash

from watermonitor.database import (
    Base,
    DeviceRow,
    PasswordResetTokenRow,
    SensorReadingRow,
    SessionTokenRow,
    UserRow,
    make_engine,
)
from watermonitor.exceptions import DuplicateEmailError, StoreError
from watermonitor.models import (
    DeviceState,
    DeviceStateUpdate,
    Reading,
    ReadingStatus,
    ResetTokenRecord,
    UserRecord,
)
from watermonitor.services.status_engine import overall_status

logger = logging.getLogger(__name__)


# =============================================================================
# SEED DATA
# =============================================================================

SAMPLE_USER = {
    "full_name": "Demo Operator",
    "email": "operator@watermonitor.local",
    "password": "123456",
}

# name, metric, status, battery, heartbeat, signal, calibration, freshness
SAMPLE_DEVICES = [
    ("Temperature Sensor", "temperature", "on", 91, "2s ago", 84, "Calibrated", 12),
    ("Turbidity Sensor", "turbidity", "on", 88, "8s ago", 63, "Due Soon", 38),
    ("pH Sensor", "ph", "off", 42, "Offline", 24, "Needs Calibration", 97),
]

# minutes ago, ph, turbidity, temperature
SAMPLE_READINGS = [
    (0, 7.2, 3.5, 25.4),
    (40, 6.8, 5.1, 26.1),
    (80, 7.5, 2.0, 24.8),
    (120, 7.1, 3.9, 25.3),
    (160, 7.3, 4.2, 25.9),
    (200, 7.0, 4.8, 24.7),
    (240, 7.6, 3.1, 24.3),
    (280, 6.9, 5.5, 26.4),
]


# =============================================================================
# TIME HELPERS
# =============================================================================

def _to_db(value: datetime) -> datetime:
    """Aware datetime -> naive UTC for storage."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _from_db(value: Optional[datetime]) -> Optional[datetime]:
    """Naive UTC from storage -> aware UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _reading_from_row(row: SensorReadingRow) -> Reading:
    return Reading(
        id=row.id,
        ph=float(row.ph),
        turbidity=float(row.turbidity),
        temperature=float(row.temperature),
        status=ReadingStatus(row.status),
        recorded_at=_from_db(row.recorded_at),
    )


def _device_from_row(row: DeviceRow) -> DeviceState:
    return DeviceState(
        id=row.id,
        name=row.name,
        metric=row.metric,
        status=row.status,
        battery=row.battery,
        heartbeat=row.heartbeat,
        signal=row.signal,
        calibration=row.calibration,
        freshness_minutes=row.freshness_minutes,
        last_update=_from_db(row.last_update),
    )


def _user_from_row(row: UserRow) -> UserRecord:
    return UserRecord(
        id=row.id,
        full_name=row.full_name,
        email=row.email,
        password_hash=row.password,
        created_at=_from_db(row.created_at),
    )


class TelemetryStore:
    """
    SQLAlchemy-backed store for everything the backend persists.

    Each method opens its own short session, so one store can be shared by
    the scheduler and the request handlers.
    """

    def __init__(self, database_url: str):
        self.database_url = database_url
        self.engine = make_engine(database_url)
        self._sessions = sessionmaker(bind=self.engine, expire_on_commit=False)

    def _session(self) -> Session:
        return self._sessions()

    # =========================================================================
    # SETUP
    # =========================================================================

    def init_database(self, seed: bool = True):
        """Create the tables and, if they are empty, fill them with sample data."""
        try:
            Base.metadata.create_all(self.engine)
            if seed:
                self._seed()
        except SQLAlchemyError as e:
            logger.error(f"Database initialization error: {e}")
            raise StoreError(f"Database initialization failed: {e}") from e
        logger.info("Database initialized successfully")

    def _seed(self):
        now = datetime.now(timezone.utc)

        with self._session() as session, session.begin():
            if session.scalar(select(func.count()).select_from(UserRow)) == 0:
                session.add(UserRow(
                    full_name=SAMPLE_USER["full_name"],
                    email=SAMPLE_USER["email"],
                    password=generate_password_hash(SAMPLE_USER["password"]),
                    created_at=_to_db(now),
                ))
                logger.info("Sample user created")

            if session.scalar(select(func.count()).select_from(DeviceRow)) == 0:
                for name, metric, status, battery, heartbeat, signal, calibration, freshness in SAMPLE_DEVICES:
                    session.add(DeviceRow(
                        name=name,
                        metric=metric,
                        status=status,
                        battery=battery,
                        heartbeat=heartbeat,
                        signal=signal,
                        calibration=calibration,
                        freshness_minutes=freshness,
                        last_update=_to_db(now),
                    ))
                logger.info("Sample devices created")

            if session.scalar(select(func.count()).select_from(SensorReadingRow)) == 0:
                for minutes_ago, ph, turbidity, temperature in SAMPLE_READINGS:
                    session.add(SensorReadingRow(
                        ph=ph,
                        turbidity=turbidity,
                        temperature=temperature,
                        status=overall_status(ph, turbidity, temperature).value,
                        recorded_at=_to_db(now - timedelta(minutes=minutes_ago)),
                    ))
                logger.info("Sample readings created")

    def close(self):
        self.engine.dispose()

    # =========================================================================
    # READINGS
    # =========================================================================

    def insert_reading(
        self,
        ph: float,
        turbidity: float,
        temperature: float,
        status: ReadingStatus,
        recorded_at: datetime
    ) -> int:
        """Append a reading and return its id."""
        row = SensorReadingRow(
            ph=ph,
            turbidity=turbidity,
            temperature=temperature,
            status=ReadingStatus(status).value,
            recorded_at=_to_db(recorded_at),
        )
        try:
            with self._session() as session, session.begin():
                session.add(row)
                session.flush()
                return row.id
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to insert reading: {e}") from e

    def latest_reading(self) -> Optional[Reading]:
        """The reading with the greatest recorded_at, or None if there are none."""
        stmt = (
            select(SensorReadingRow)
            .order_by(SensorReadingRow.recorded_at.desc(), SensorReadingRow.id.desc())
            .limit(1)
        )
        try:
            with self._session() as session:
                row = session.scalars(stmt).first()
                return _reading_from_row(row) if row else None
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to fetch latest reading: {e}") from e

    def recent_readings(self, limit: int = 5) -> list[Reading]:
        """The last `limit` readings, newest first."""
        return self.reading_history(limit=limit)

    def reading_history(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        query: Optional[str] = None,
        limit: int = 100
    ) -> list[Reading]:
        """
        Readings newest first, optionally filtered.

        Args:
            start: Only readings recorded at or after this time
            end: Only readings recorded at or before this time
            query: Case-insensitive substring of the timestamp text (e.g. "2026-10-18")
            limit: Maximum rows to return
        """
        stmt = select(SensorReadingRow)
        if start is not None:
            stmt = stmt.where(SensorReadingRow.recorded_at >= _to_db(start))
        if end is not None:
            stmt = stmt.where(SensorReadingRow.recorded_at <= _to_db(end))
        if query:
            stmt = stmt.where(cast(SensorReadingRow.recorded_at, String).ilike(f"%{query}%"))
        stmt = stmt.order_by(
            SensorReadingRow.recorded_at.desc(), SensorReadingRow.id.desc()
        ).limit(limit)

        try:
            with self._session() as session:
                return [_reading_from_row(row) for row in session.scalars(stmt)]
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to fetch reading history: {e}") from e

    # =========================================================================
    # DEVICES
    # =========================================================================

    def update_device_state(self, device_id: Optional[int], state: DeviceStateUpdate) -> int:
        """
        Rewrite the tick-driven fields of one device, or of all devices when
        device_id is None. Returns the number of rows touched.
        """
        stmt = update(DeviceRow).values(
            status=state.status.value,
            heartbeat=state.heartbeat,
            signal=state.signal,
            freshness_minutes=state.freshness_minutes,
            last_update=_to_db(state.last_update),
        )
        if device_id is not None:
            stmt = stmt.where(DeviceRow.id == device_id)

        try:
            with self._session() as session, session.begin():
                return session.execute(stmt).rowcount
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to update device state: {e}") from e

    def list_devices(self) -> list[DeviceState]:
        """All devices, ordered by id."""
        try:
            with self._session() as session:
                rows = session.scalars(select(DeviceRow).order_by(DeviceRow.id.asc()))
                return [_device_from_row(row) for row in rows]
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to list devices: {e}") from e

    # =========================================================================
    # USERS
    # =========================================================================

    def create_user(self, full_name: str, email: str, password_hash: str) -> UserRecord:
        row = UserRow(
            full_name=full_name,
            email=email,
            password=password_hash,
            created_at=_to_db(datetime.now(timezone.utc)),
        )
        try:
            with self._session() as session, session.begin():
                session.add(row)
                session.flush()
                return _user_from_row(row)
        except IntegrityError as e:
            raise DuplicateEmailError(f"Email already exists: {email}") from e
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to create user: {e}") from e

    def get_user(self, user_id: int) -> Optional[UserRecord]:
        try:
            with self._session() as session:
                row = session.get(UserRow, user_id)
                return _user_from_row(row) if row else None
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to fetch user: {e}") from e

    def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        try:
            with self._session() as session:
                row = session.scalars(select(UserRow).where(UserRow.email == email)).first()
                return _user_from_row(row) if row else None
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to fetch user: {e}") from e

    def list_users(self) -> list[UserRecord]:
        try:
            with self._session() as session:
                rows = session.scalars(select(UserRow).order_by(UserRow.id.asc()))
                return [_user_from_row(row) for row in rows]
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to list users: {e}") from e

    def update_password(self, user_id: int, password_hash: str):
        try:
            with self._session() as session, session.begin():
                session.execute(
                    update(UserRow).where(UserRow.id == user_id).values(password=password_hash)
                )
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to update password: {e}") from e

    # =========================================================================
    # PASSWORD RESET TOKENS
    # =========================================================================

    def invalidate_reset_tokens(self, user_id: int, at: datetime):
        """Mark every unused reset token of this user as used."""
        stmt = (
            update(PasswordResetTokenRow)
            .where(PasswordResetTokenRow.user_id == user_id)
            .where(PasswordResetTokenRow.used_at.is_(None))
            .values(used_at=_to_db(at))
        )
        try:
            with self._session() as session, session.begin():
                session.execute(stmt)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to invalidate reset tokens: {e}") from e

    def create_reset_token(self, user_id: int, token_hash: str, expires_at: datetime) -> int:
        row = PasswordResetTokenRow(
            user_id=user_id,
            token_hash=token_hash,
            expires_at=_to_db(expires_at),
            created_at=_to_db(datetime.now(timezone.utc)),
        )
        try:
            with self._session() as session, session.begin():
                session.add(row)
                session.flush()
                return row.id
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to create reset token: {e}") from e

    def get_reset_token(self, token_hash: str) -> Optional[ResetTokenRecord]:
        stmt = select(PasswordResetTokenRow).where(PasswordResetTokenRow.token_hash == token_hash)
        try:
            with self._session() as session:
                row = session.scalars(stmt).first()
                if row is None:
                    return None
                return ResetTokenRecord(
                    id=row.id,
                    user_id=row.user_id,
                    expires_at=_from_db(row.expires_at),
                    used_at=_from_db(row.used_at),
                )
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to fetch reset token: {e}") from e

    def mark_reset_token_used(self, token_id: int, at: datetime):
        stmt = (
            update(PasswordResetTokenRow)
            .where(PasswordResetTokenRow.id == token_id)
            .values(used_at=_to_db(at))
        )
        try:
            with self._session() as session, session.begin():
                session.execute(stmt)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to mark reset token used: {e}") from e

    # =========================================================================
    # SESSION TOKENS
    # =========================================================================

    def create_session_token(
        self, user_id: int, token_hash: str, expires_at: datetime, now: Optional[datetime] = None
    ):
        """Store a new login token and drop this user's tokens that expired by `now`."""
        now = _to_db(now or datetime.now(timezone.utc))
        row = SessionTokenRow(
            user_id=user_id,
            token_hash=token_hash,
            expires_at=_to_db(expires_at),
            created_at=now,
        )
        purge = (
            delete(SessionTokenRow)
            .where(SessionTokenRow.user_id == user_id)
            .where(SessionTokenRow.expires_at <= now)
        )
        try:
            with self._session() as session, session.begin():
                session.execute(purge)
                session.add(row)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to create session token: {e}") from e

    def get_user_by_session_token(self, token_hash: str, now: datetime) -> Optional[UserRecord]:
        """The user owning an unexpired session token, or None."""
        stmt = (
            select(UserRow)
            .join(SessionTokenRow, SessionTokenRow.user_id == UserRow.id)
            .where(SessionTokenRow.token_hash == token_hash)
            .where(SessionTokenRow.expires_at > _to_db(now))
        )
        try:
            with self._session() as session:
                row = session.scalars(stmt).first()
                return _user_from_row(row) if row else None
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to fetch session: {e}") from e
