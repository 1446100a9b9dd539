"""
Database abstraction for submissions, voting rounds, pledges and app config.

SqlDbClient accepts any SQLAlchemy URL: a SQLite file in production and an
in-memory SQLite database for tests and local development.
"""

from __future__ import annotations

import json
import random
import string
import time
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional, Protocol, Union

from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    delete,
    select,
)
from sqlalchemy.engine import make_url
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

STATUS_RUNNING = "running"
STATUS_STOPPED = "stopped"
VOTING_STATUSES = (STATUS_RUNNING, STATUS_STOPPED)

AUTO_REPLY_KEY = "auto_reply_message"
DEFAULT_AUTO_REPLY = "Thank you for your pledge!"

_BASE36 = string.digits + string.ascii_lowercase


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def generate_short_id() -> str:
    """
    Return a short submission id: the last 6 base-36 digits of the current
    epoch milliseconds followed by 4 random base-36 characters.
    """
    millis = _to_base36(int(time.time() * 1000))[-6:]
    return millis + "".join(random.choices(_BASE36, k=4))


class VoteOutcome(str, Enum):
    ACCEPTED = "accepted"
    PENDING = "pending"
    DUPLICATE = "duplicate"


@dataclass
class SubmissionRecord:
    id: str
    name: str
    image_path: str
    image_url: str
    created_at: str

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class VoteRecord:
    id: int
    phone_number: str
    letter: str
    round: int
    created_at: str

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class PendingVoteRecord:
    id: int
    phone_number: str
    letter: str
    created_at: str

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class VotingState:
    current_round: int = 1
    status: str = STATUS_STOPPED


@dataclass
class RoundHistoryRecord:
    id: int
    round: int
    votes: list[dict]
    ended_at: str


@dataclass
class DonationRecord:
    id: str
    phone: str
    amount: int
    message: str
    tags: str
    created_at: str


@dataclass
class ConfigEntry:
    key: str
    value: Optional[str]
    updated_at: str


@dataclass
class CastVoteResult:
    outcome: VoteOutcome
    vote: Union[VoteRecord, PendingVoteRecord, None] = None


class DbClient(Protocol):
    """Interface for database access."""

    def create_submission(
        self, submission_id: str, name: str, image_path: str, image_url: str
    ) -> SubmissionRecord:
        ...

    def list_submissions(self) -> list[SubmissionRecord]:
        ...

    def get_submission(self, submission_id: str) -> Optional[SubmissionRecord]:
        ...

    def rename_submission(
        self, submission_id: str, name: str
    ) -> Optional[SubmissionRecord]:
        ...

    def clear_submissions(self) -> list[SubmissionRecord]:
        ...

    def get_voting_state(self) -> VotingState:
        ...

    def set_voting_status(self, status: str) -> VotingState:
        ...

    def clear_round(self) -> VotingState:
        ...

    def cast_vote(self, phone_number: str, letter: str) -> CastVoteResult:
        ...

    def delete_vote(self, vote_id: int) -> bool:
        ...

    def list_votes(self) -> list[VoteRecord]:
        ...

    def list_pending_votes(self) -> list[PendingVoteRecord]:
        ...

    def list_history(self) -> list[RoundHistoryRecord]:
        ...

    def create_donation(
        self, phone: str, amount: int, message: str, tags: str
    ) -> DonationRecord:
        ...

    def list_donations(self, tags: Optional[str] = None) -> list[DonationRecord]:
        ...

    def get_config(self, key: str) -> Optional[ConfigEntry]:
        ...

    def set_config(self, key: str, value: str) -> ConfigEntry:
        ...


class SqlDbClient:
    """
    SQLAlchemy-backed implementation. Multi-step voting operations (round
    close, clear, duplicate check + insert) each run in a single transaction.
    """

    def __init__(
        self, database_url: str, *, default_auto_reply: str = DEFAULT_AUTO_REPLY
    ):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlDbClient")
        url = make_url(database_url)
        engine_kwargs: dict = {"future": True}
        if url.get_backend_name() == "sqlite":
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if url.database in (None, "", ":memory:"):
                # One shared connection, otherwise every checkout sees an empty db.
                engine_kwargs["poolclass"] = StaticPool
            else:
                Path(url.database).parent.mkdir(parents=True, exist_ok=True)
        else:
            engine_kwargs.update(pool_pre_ping=True, pool_recycle=1800)
        self.engine = create_engine(url, **engine_kwargs)
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        self.default_auto_reply = default_auto_reply
        self.init_schema()

    def init_schema(self) -> None:
        """Create tables and seed the voting singleton and the auto-reply config."""
        Base.metadata.create_all(self.engine)
        with self.Session.begin() as session:
            self._voting_row(session)
            if session.get(AppConfigRow, AUTO_REPLY_KEY) is None:
                session.add(
                    AppConfigRow(
                        key=AUTO_REPLY_KEY,
                        value=self.default_auto_reply,
                        updated_at=_now(),
                    )
                )

    # Submissions

    def _to_submission(self, row: "SubmissionRow") -> SubmissionRecord:
        return SubmissionRecord(
            id=row.id,
            name=row.name,
            image_path=row.image_path,
            image_url=row.image_url,
            created_at=row.created_at,
        )

    def create_submission(
        self, submission_id: str, name: str, image_path: str, image_url: str
    ) -> SubmissionRecord:
        with self.Session.begin() as session:
            row = SubmissionRow(
                id=submission_id,
                name=name,
                image_path=image_path,
                image_url=image_url,
                created_at=_now(),
            )
            session.add(row)
        return self._to_submission(row)

    def list_submissions(self) -> list[SubmissionRecord]:
        with self.Session() as session:
            rows = session.execute(
                select(SubmissionRow).order_by(SubmissionRow.created_at.desc())
            ).scalars()
            return [self._to_submission(row) for row in rows]

    def get_submission(self, submission_id: str) -> Optional[SubmissionRecord]:
        with self.Session() as session:
            row = session.get(SubmissionRow, submission_id)
            return self._to_submission(row) if row else None

    def rename_submission(
        self, submission_id: str, name: str
    ) -> Optional[SubmissionRecord]:
        with self.Session.begin() as session:
            row = session.get(SubmissionRow, submission_id)
            if not row:
                return None
            row.name = name
            return self._to_submission(row)

    def clear_submissions(self) -> list[SubmissionRecord]:
        """Delete every submission row and return what was removed."""
        with self.Session.begin() as session:
            rows = session.execute(select(SubmissionRow)).scalars().all()
            removed = [self._to_submission(row) for row in rows]
            session.execute(delete(SubmissionRow))
            return removed

    # Voting

    def _to_vote(self, row: "VoteRow") -> VoteRecord:
        return VoteRecord(
            id=row.id,
            phone_number=row.phone_number,
            letter=row.letter,
            round=row.round,
            created_at=row.created_at,
        )

    def _to_pending(self, row: "PendingVoteRow") -> PendingVoteRecord:
        return PendingVoteRecord(
            id=row.id,
            phone_number=row.phone_number,
            letter=row.letter,
            created_at=row.created_at,
        )

    def _voting_row(self, session: Session) -> "VotingConfigRow":
        row = session.get(VotingConfigRow, 1)
        if row is None:
            row = VotingConfigRow(id=1, current_round=1, status=STATUS_STOPPED)
            session.add(row)
            session.flush()
        return row

    def _archive_round(self, session: Session, round_number: int) -> int:
        votes = (
            session.execute(
                select(VoteRow)
                .where(VoteRow.round == round_number)
                .order_by(VoteRow.id.asc())
            )
            .scalars()
            .all()
        )
        if votes:
            session.add(
                VotingHistoryRow(
                    round=round_number,
                    votes_json=json.dumps(
                        [self._to_vote(vote).as_dict() for vote in votes]
                    ),
                    ended_at=_now(),
                )
            )
        session.execute(delete(VoteRow).where(VoteRow.round == round_number))
        return len(votes)

    def get_voting_state(self) -> VotingState:
        with self.Session() as session:
            row = session.get(VotingConfigRow, 1)
            if not row:
                return VotingState()
            return VotingState(current_round=row.current_round, status=row.status)

    def set_voting_status(self, status: str) -> VotingState:
        """
        Stopping a round that is not already stopped archives its votes,
        clears them and opens the next round. Starting a round discards every
        pending vote.
        """
        if status not in VOTING_STATUSES:
            raise ValueError(f"Unknown voting status: {status}")
        with self.Session.begin() as session:
            row = self._voting_row(session)
            if status == STATUS_STOPPED and row.status != STATUS_STOPPED:
                self._archive_round(session, row.current_round)
                row.current_round = row.current_round + 1
            elif status == STATUS_RUNNING:
                session.execute(delete(PendingVoteRow))
            row.status = status
            return VotingState(current_round=row.current_round, status=row.status)

    def clear_round(self) -> VotingState:
        """Archive and clear the current round without advancing the counter."""
        with self.Session.begin() as session:
            row = self._voting_row(session)
            self._archive_round(session, row.current_round)
            row.status = STATUS_STOPPED
            return VotingState(current_round=row.current_round, status=row.status)

    def cast_vote(self, phone_number: str, letter: str) -> CastVoteResult:
        letter = letter.upper()
        now = _now()
        try:
            with self.Session.begin() as session:
                state = self._voting_row(session)
                if state.status != STATUS_RUNNING:
                    pending = PendingVoteRow(
                        phone_number=phone_number, letter=letter, created_at=now
                    )
                    session.add(pending)
                    session.flush()
                    return CastVoteResult(
                        VoteOutcome.PENDING, self._to_pending(pending)
                    )

                existing = session.execute(
                    select(VoteRow.id).where(
                        VoteRow.phone_number == phone_number,
                        VoteRow.round == state.current_round,
                    )
                ).first()
                if existing is not None:
                    return CastVoteResult(VoteOutcome.DUPLICATE)

                vote = VoteRow(
                    phone_number=phone_number,
                    letter=letter,
                    round=state.current_round,
                    created_at=now,
                )
                session.add(vote)
                session.flush()
                return CastVoteResult(VoteOutcome.ACCEPTED, self._to_vote(vote))
        except IntegrityError:
            # Lost a race against a concurrent vote from the same phone.
            return CastVoteResult(VoteOutcome.DUPLICATE)

    def delete_vote(self, vote_id: int) -> bool:
        with self.Session.begin() as session:
            result = session.execute(delete(VoteRow).where(VoteRow.id == vote_id))
            return bool(result.rowcount)

    def list_votes(self) -> list[VoteRecord]:
        with self.Session() as session:
            rows = session.execute(
                select(VoteRow).order_by(VoteRow.created_at.desc(), VoteRow.id.desc())
            ).scalars()
            return [self._to_vote(row) for row in rows]

    def list_pending_votes(self) -> list[PendingVoteRecord]:
        with self.Session() as session:
            rows = session.execute(
                select(PendingVoteRow).order_by(
                    PendingVoteRow.created_at.desc(), PendingVoteRow.id.desc()
                )
            ).scalars()
            return [self._to_pending(row) for row in rows]

    def list_history(self) -> list[RoundHistoryRecord]:
        with self.Session() as session:
            rows = session.execute(
                select(VotingHistoryRow).order_by(
                    VotingHistoryRow.ended_at.desc(), VotingHistoryRow.id.desc()
                )
            ).scalars()
            return [
                RoundHistoryRecord(
                    id=row.id,
                    round=row.round,
                    votes=json.loads(row.votes_json),
                    ended_at=row.ended_at,
                )
                for row in rows
            ]

    # Donations

    def _to_donation(self, row: "DonationRow") -> DonationRecord:
        return DonationRecord(
            id=row.id,
            phone=row.phone,
            amount=row.amount,
            message=row.message or "",
            tags=row.tags,
            created_at=row.created_at,
        )

    def create_donation(
        self, phone: str, amount: int, message: str, tags: str
    ) -> DonationRecord:
        with self.Session.begin() as session:
            row = DonationRow(
                id=uuid.uuid4().hex,
                phone=phone,
                amount=amount,
                message=message,
                tags=tags,
                created_at=_now(),
            )
            session.add(row)
        return self._to_donation(row)

    def list_donations(self, tags: Optional[str] = None) -> list[DonationRecord]:
        with self.Session() as session:
            stmt = select(DonationRow)
            if tags:
                stmt = stmt.where(DonationRow.tags == tags)
            rows = session.execute(
                stmt.order_by(DonationRow.created_at.desc())
            ).scalars()
            return [self._to_donation(row) for row in rows]

    # App config

    def get_config(self, key: str) -> Optional[ConfigEntry]:
        with self.Session() as session:
            row = session.get(AppConfigRow, key)
            if not row:
                return None
            return ConfigEntry(key=row.key, value=row.value, updated_at=row.updated_at)

    def set_config(self, key: str, value: str) -> ConfigEntry:
        now = _now()
        with self.Session.begin() as session:
            row = session.get(AppConfigRow, key)
            if row:
                row.value = value
                row.updated_at = now
            else:
                session.add(AppConfigRow(key=key, value=value, updated_at=now))
        return ConfigEntry(key=key, value=value, updated_at=now)


Base = declarative_base()


class SubmissionRow(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    image_path = Column(String, nullable=False)
    image_url = Column(String, nullable=False)
    created_at = Column(String, nullable=False, index=True)


class VoteRow(Base):
    __tablename__ = "votes"
    __table_args__ = (
        UniqueConstraint("phone_number", "round", name="uq_votes_phone_round"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    phone_number = Column(String, nullable=False)
    letter = Column(String, nullable=False)
    round = Column(Integer, nullable=False, index=True)
    created_at = Column(String, nullable=False)


class PendingVoteRow(Base):
    __tablename__ = "pending_votes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    phone_number = Column(String, nullable=False)
    letter = Column(String, nullable=False)
    created_at = Column(String, nullable=False)


class VotingConfigRow(Base):
    __tablename__ = "voting_config"

    id = Column(Integer, primary_key=True, default=1)
    current_round = Column(Integer, nullable=False, default=1)
    status = Column(String, nullable=False, default=STATUS_STOPPED)


class VotingHistoryRow(Base):
    __tablename__ = "voting_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    round = Column(Integer, nullable=False)
    votes_json = Column(Text, nullable=False)
    ended_at = Column(String, nullable=False)


class DonationRow(Base):
    __tablename__ = "donations"

    id = Column(String, primary_key=True)
    phone = Column(String, nullable=False)
    amount = Column(Integer, nullable=False, default=0)
    message = Column(Text, nullable=True)
    tags = Column(String, nullable=True, index=True)
    created_at = Column(String, nullable=False)


class AppConfigRow(Base):
    __tablename__ = "app_config"

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=True)
    updated_at = Column(String, nullable=False)
