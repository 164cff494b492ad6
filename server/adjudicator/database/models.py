from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.orm import declarative_base

Base = declarative_base()

DEFAULT_ELO_RATING = 1200


def utcnow():
    return datetime.now(timezone.utc)


class DebateStatus(Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    VERDICT_READY = "VERDICT_READY"
    APPEALED = "APPEALED"


class AppealStatus(Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    RESOLVED = "RESOLVED"
    DENIED = "DENIED"


class Decision(Enum):
    CHALLENGER_WINS = "CHALLENGER_WINS"
    OPPONENT_WINS = "OPPONENT_WINS"
    TIE = "TIE"


class VerdictPhase(Enum):
    ORIGINAL = "ORIGINAL"
    APPEAL = "APPEAL"


class NotificationType(Enum):
    DEBATE_WON = "DEBATE_WON"
    DEBATE_LOST = "DEBATE_LOST"
    DEBATE_TIED = "DEBATE_TIED"
    APPEAL_SUBMITTED = "APPEAL_SUBMITTED"
    VERDICT_APPEALED = "VERDICT_APPEALED"


class User(Base):
    __tablename__ = "user"

    id = Column(Integer, primary_key=True)
    auth_id = Column(String, unique=True, nullable=True)
    username = Column(String, nullable=False)

    elo_rating = Column(Integer, nullable=False, default=DEFAULT_ELO_RATING)
    debates_won = Column(Integer, nullable=False, default=0)
    debates_lost = Column(Integer, nullable=False, default=0)
    debates_tied = Column(Integer, nullable=False, default=0)
    total_debates = Column(Integer, nullable=False, default=0)
    total_score = Column(Float, nullable=False, default=0)
    total_max_score = Column(Float, nullable=False, default=0)
    average_rounds = Column(Float, nullable=False, default=0)

    notifications = relationship("Notification", back_populates="user")


class Judge(Base):
    __tablename__ = "judge"

    id = Column(Integer, primary_key=True)
    name = Column(String, unique=True, nullable=False)
    personality = Column(String)
    system_prompt = Column(Text, nullable=False)
    debates_judged = Column(Integer, nullable=False, default=0)


class Debate(Base):
    __tablename__ = "debate"

    id = Column(Integer, primary_key=True)
    topic = Column(String, nullable=False)
    challenger_position = Column(String, nullable=False, default="FOR")
    opponent_position = Column(String, nullable=False, default="AGAINST")

    challenger_id = Column(Integer, ForeignKey("user.id"), nullable=False)
    opponent_id = Column(Integer, ForeignKey("user.id"), nullable=True)
    challenger = relationship("User", foreign_keys=[challenger_id])
    opponent = relationship("User", foreign_keys=[opponent_id])

    current_round = Column(Integer, nullable=False, default=1)
    total_rounds = Column(Integer, nullable=False, default=5)
    status = Column(String, nullable=False, default=DebateStatus.ACTIVE.value)

    # null winner means a tie once verdict_reached is set
    winner_id = Column(Integer, ForeignKey("user.id"), nullable=True)
    verdict_reached = Column(Boolean, nullable=False, default=False)
    verdict_date = Column(DateTime(timezone=True), nullable=True)
    challenger_elo_change = Column(Integer, nullable=True)
    opponent_elo_change = Column(Integer, nullable=True)
    # set when a resolution run claims the debate; cleared if that run fails
    resolution_started_at = Column(DateTime(timezone=True), nullable=True)

    appeal_status = Column(String, nullable=True)
    appeal_count = Column(Integer, nullable=False, default=0)
    appealed_at = Column(DateTime(timezone=True), nullable=True)
    appealed_by = Column(Integer, ForeignKey("user.id"), nullable=True)
    appeal_reason = Column(Text, nullable=True)
    appealed_verdict_ids = Column(JSON, default=list)
    original_winner_id = Column(Integer, ForeignKey("user.id"), nullable=True)
    appeal_rejection_reason = Column(Text, nullable=True)

    tournament_match_id = Column(String, nullable=True)

    statements = relationship(
        "Statement",
        back_populates="debate",
        order_by="[Statement.created_at, Statement.id]",
    )
    verdicts = relationship("Verdict", back_populates="debate")


class Statement(Base):
    __tablename__ = "statement"

    id = Column(Integer, primary_key=True)
    debate_id = Column(Integer, ForeignKey("debate.id"), nullable=False)
    debate = relationship("Debate", back_populates="statements")
    author_id = Column(Integer, ForeignKey("user.id"), nullable=False)
    round = Column(Integer, nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class Verdict(Base):
    __tablename__ = "verdict"
    __table_args__ = (
        UniqueConstraint("debate_id", "phase", "judge_id", name="uq_verdict_phase_judge"),
    )

    id = Column(Integer, primary_key=True)
    debate_id = Column(Integer, ForeignKey("debate.id"), nullable=False)
    debate = relationship("Debate", back_populates="verdicts")
    judge_id = Column(Integer, ForeignKey("judge.id"), nullable=False)
    phase = Column(String, nullable=False, default=VerdictPhase.ORIGINAL.value)

    decision = Column(String, nullable=False)
    reasoning = Column(Text, nullable=False)
    challenger_score = Column(Float, nullable=False)
    opponent_score = Column(Float, nullable=False)
    winner_id = Column(Integer, ForeignKey("user.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class Notification(Base):
    __tablename__ = "notification"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("user.id"), nullable=False)
    user = relationship("User", back_populates="notifications")
    type = Column(String, nullable=False)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    debate_id = Column(Integer, ForeignKey("debate.id"), nullable=True)
    read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
