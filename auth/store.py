"""
auth/store.py -- SQLAlchemy Core persistence layer for accounts and sign-in codes.

Pattern: Repository + Data Mapper.
AccountStore is the repository; _row_to_account is the mapper. Services and
routes never touch SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Every email-keyed method lower-cases its argument before it reaches SQL.

Atomicity:
  consume_reset_token() and consume_verification_code() are single conditional
  statements (UPDATE ... WHERE token = :t AND expiry > :now, DELETE ... WHERE
  hash = :h AND expires_at > :now). There is no read-then-write window for a
  concurrent reset or sign-in to slip into; rowcount decides who won.

  update_reset_token() writes token and expiry in one UPDATE, so concurrent
  issuances leave exactly one live token (last write wins).

Timestamps:
  reset_token_expiry and expires_at are stored as REAL epoch seconds (UTC) so
  expiry comparisons happen in SQL without timezone ambiguity. The mapper
  converts back to aware datetimes.

DB path: expressconnect.db at the repository root unless DATABASE_URL is set.

Layer rule: no imports from api/ or notify/.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, Float, Integer, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Engine

from auth.models import ATTENDEE_ROLES, HOST_ROLES, Account, Role, normalize_email

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_accounts = Table(
    "accounts",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("email", String(255), nullable=False, unique=True),  # always lower-case
    Column("role", String(30), nullable=False),
    Column("first_name", String(100), nullable=False, server_default=""),
    Column("last_name", String(100), nullable=False, server_default=""),
    Column("hashed_password", Text),  # NULL whenever password_set = 0
    Column("password_set", Integer, nullable=False, server_default="0"),
    Column("reset_token", String(36), unique=True),
    Column("reset_token_expiry", Float),  # epoch seconds, paired with reset_token
    Column("host_id", String(64)),
    Column("attendee_company_id", String(64)),
    Column("created_at", String(32), nullable=False),
)

_verification_codes = Table(
    "verification_codes",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("identifier", String(255), nullable=False, index=True),  # lower-case email
    Column("token_hash", String(64), nullable=False, unique=True),  # HMAC-SHA256 hex
    Column("expires_at", Float, nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers never block on a writer.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _epoch(moment: datetime) -> float:
    return moment.timestamp()


def _validate_tenant_link(account: Account) -> None:
    """Host roles need host_id only, attendee roles attendee_company_id only, ADMIN neither."""
    if account.role not in {r.value for r in Role}:
        raise ValueError(f"Unknown role: {account.role!r}")
    if account.role in HOST_ROLES:
        if not account.host_id or account.attendee_company_id:
            raise ValueError(f"{account.role} accounts must be linked to a host and nothing else")
    elif account.role in ATTENDEE_ROLES:
        if not account.attendee_company_id or account.host_id:
            raise ValueError(f"{account.role} accounts must be linked to an attendee company and nothing else")
    elif account.host_id or account.attendee_company_id:
        raise ValueError("ADMIN accounts carry no tenant link")


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountStore:
    """Repository for Account records and the one-time-code verification window.

    Usage:
        store = AccountStore("sqlite:///:memory:")
        store.create_account(Account(email="a@example.com", role="ADMIN"))
        account = store.find_by_email("A@Example.com")
        store.close()
    """

    def __init__(self, db_url: str, timeout: float = 5.0) -> None:
        connect_args: dict = {}
        engine_kwargs: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
            # Busy timeout: a locked database fails the call after `timeout`
            # seconds instead of blocking the request indefinitely.
            connect_args["timeout"] = timeout
        else:
            engine_kwargs["pool_timeout"] = timeout
        self.engine: Engine = create_engine(db_url, connect_args=connect_args, **engine_kwargs)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Account queries
    # ------------------------------------------------------------------

    def create_account(self, account: Account) -> str:
        """Insert a new account and return its id.

        Raises ValueError if the tenant linkage does not match the role.
        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        """
        _validate_tenant_link(account)
        account_id = account.id or str(uuid.uuid4())
        hashed = account.hashed_password if account.password_set else None
        with self.engine.connect() as conn:
            conn.execute(
                _accounts.insert().values(
                    id=account_id,
                    email=normalize_email(account.email),
                    role=account.role,
                    first_name=account.first_name or "",
                    last_name=account.last_name or "",
                    hashed_password=hashed,
                    password_set=1 if hashed else 0,
                    host_id=account.host_id,
                    attendee_company_id=account.attendee_company_id,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
        return account_id

    def find_by_email(self, email: str) -> Account | None:
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.email == normalize_email(email))).fetchone()
        return _row_to_account(row) if row is not None else None

    def find_by_id(self, account_id: str) -> Account | None:
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.id == account_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def find_by_reset_token(self, token: str, now: datetime) -> Account | None:
        """Return the account holding `token` only while the token is unexpired."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _accounts.select().where(
                    (_accounts.c.reset_token == token) & (_accounts.c.reset_token_expiry > _epoch(now))
                )
            ).fetchone()
        return _row_to_account(row) if row is not None else None

    def holds_reset_token(self, token: str) -> bool:
        """True if any account holds `token`, expired or not."""
        with self.engine.connect() as conn:
            count = conn.execute(
                select(func.count()).select_from(_accounts).where(_accounts.c.reset_token == token)
            ).scalar()
        return (count or 0) > 0

    def update_password(self, email: str, hashed_password: str) -> bool:
        """Store a new password hash and mark the password as set.

        Returns True if a row was updated, False if the email is unknown.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _accounts.update()
                .where(_accounts.c.email == normalize_email(email))
                .values(hashed_password=hashed_password, password_set=1)
            )
            conn.commit()
        return result.rowcount > 0

    def update_reset_token(self, email: str, token: str, expiry: datetime) -> bool:
        """Overwrite the account's reset token and expiry as one unit."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _accounts.update()
                .where(_accounts.c.email == normalize_email(email))
                .values(reset_token=token, reset_token_expiry=_epoch(expiry))
            )
            conn.commit()
        return result.rowcount > 0

    def update_otp_invalidation(self, email: str) -> bool:
        """Disable the password channel after an email code was delivered."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _accounts.update()
                .where(_accounts.c.email == normalize_email(email))
                .values(hashed_password=None, password_set=0)
            )
            conn.commit()
        return result.rowcount > 0

    def consume_reset_token(self, token: str, hashed_password: str, now: datetime) -> bool:
        """Atomically swap an unexpired reset token for a new password.

        One conditional UPDATE sets the hash, marks the password as set and
        clears token + expiry. Returns True only for the single caller whose
        statement matched the row.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _accounts.update()
                .where((_accounts.c.reset_token == token) & (_accounts.c.reset_token_expiry > _epoch(now)))
                .values(
                    hashed_password=hashed_password,
                    password_set=1,
                    reset_token=None,
                    reset_token_expiry=None,
                )
            )
            conn.commit()
        return result.rowcount == 1

    # ------------------------------------------------------------------
    # One-time-code verification window
    # ------------------------------------------------------------------

    def save_verification_code(self, email: str, token_hash: str, expires_at: datetime) -> None:
        """Replace any pending code for `email` with a new one.

        Delete and insert share one transaction, so an email never has two
        live codes.
        """
        identifier = normalize_email(email)
        with self.engine.begin() as conn:
            conn.execute(_verification_codes.delete().where(_verification_codes.c.identifier == identifier))
            conn.execute(
                _verification_codes.insert().values(
                    identifier=identifier,
                    token_hash=token_hash,
                    expires_at=_epoch(expires_at),
                )
            )

    def consume_verification_code(self, email: str, token_hash: str, now: datetime) -> bool:
        """Delete the matching unexpired code. True means the code was valid and is now spent."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _verification_codes.delete().where(
                    (_verification_codes.c.identifier == normalize_email(email))
                    & (_verification_codes.c.token_hash == token_hash)
                    & (_verification_codes.c.expires_at > _epoch(now))
                )
            )
            conn.commit()
        return result.rowcount == 1

    def purge_expired_codes(self, now: datetime | None = None) -> int:
        """Delete every expired code. Returns number of rows removed."""
        cutoff = _epoch(now or datetime.now(timezone.utc))
        with self.engine.connect() as conn:
            result = conn.execute(_verification_codes.delete().where(_verification_codes.c.expires_at <= cutoff))
            conn.commit()
        return result.rowcount

    def ping(self) -> bool:
        """Cheap liveness probe for the health endpoint."""
        with self.engine.connect() as conn:
            conn.execute(select(1))
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    expiry = row.reset_token_expiry
    return Account(
        id=row.id,
        email=row.email,
        role=row.role,
        first_name=row.first_name or "",
        last_name=row.last_name or "",
        hashed_password=row.hashed_password,
        password_set=bool(row.password_set),
        reset_token=row.reset_token,
        reset_token_expiry=datetime.fromtimestamp(expiry, timezone.utc) if expiry is not None else None,
        host_id=row.host_id,
        attendee_company_id=row.attendee_company_id,
        created_at=row.created_at,
    )
