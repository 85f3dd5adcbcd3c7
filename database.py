from datetime import datetime, timezone
import uuid

from sqlalchemy import (
    create_engine,
    Column,
    Integer,
    String,
    Float,
    DateTime,
    ForeignKey,
    Boolean,
    Index,
)
from sqlalchemy.orm import sessionmaker, declarative_base, relationship

from config import get_settings


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}


DATABASE_URL = get_settings().database_url
engine = create_engine(DATABASE_URL, **_engine_kwargs(DATABASE_URL))
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def utcnow():
    return datetime.now(timezone.utc)


def new_id():
    return str(uuid.uuid4())


class Couple(Base):
    __tablename__ = "couples"
    id = Column(String(64), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    members = relationship(
        "User", back_populates="couple", cascade="all, delete-orphan"
    )
    expenses = relationship(
        "Expense", back_populates="couple", cascade="all, delete-orphan"
    )
    allocation_ratios = relationship(
        "AllocationRatio", back_populates="couple", cascade="all, delete-orphan"
    )


class User(Base):
    __tablename__ = "users"
    id = Column(String(64), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    role = Column(String(16), nullable=False)
    couple_id = Column(String(64), ForeignKey("couples.id"), nullable=False, index=True)
    # identity-provider subject of the linked login, if any
    auth_id = Column(String(255), unique=True, nullable=True, index=True)
    email = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    couple = relationship("Couple", back_populates="members")
    expenses = relationship(
        "Expense", back_populates="payer", cascade="all, delete-orphan"
    )


class Expense(Base):
    __tablename__ = "expenses"
    id = Column(String(64), primary_key=True, default=new_id)
    description = Column(String(500), nullable=False)
    amount = Column(Integer, nullable=False)
    payer_id = Column(String(64), ForeignKey("users.id"), nullable=False, index=True)
    couple_id = Column(String(64), ForeignKey("couples.id"), nullable=False, index=True)
    expense_year = Column(Integer, nullable=False)
    expense_month = Column(Integer, nullable=False)
    custom_husband_ratio = Column(Float, nullable=True)
    custom_wife_ratio = Column(Float, nullable=True)
    uses_custom_ratio = Column(Boolean, default=False, nullable=False, index=True)
    created_at = Column(
        DateTime(timezone=True), default=utcnow, nullable=False, index=True
    )
    updated_at = Column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    payer = relationship("User", back_populates="expenses")
    couple = relationship("Couple", back_populates="expenses")
    settlement = relationship(
        "Settlement",
        back_populates="expense",
        uselist=False,
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("idx_expenses_monthly", "expense_year", "expense_month"),
        Index("idx_expenses_monthly_payer", "expense_year", "expense_month", "payer_id"),
    )


class AllocationRatio(Base):
    __tablename__ = "allocation_ratios"
    id = Column(String(64), primary_key=True, default=new_id)
    couple_id = Column(String(64), ForeignKey("couples.id"), nullable=False, index=True)
    husband_ratio = Column(Float, nullable=False)
    wife_ratio = Column(Float, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    couple = relationship("Couple", back_populates="allocation_ratios")


class Settlement(Base):
    __tablename__ = "settlements"
    id = Column(String(64), primary_key=True, default=new_id)
    expense_id = Column(
        String(64), ForeignKey("expenses.id"), unique=True, nullable=False, index=True
    )
    husband_amount = Column(Integer, nullable=False)
    wife_amount = Column(Integer, nullable=False)
    payer = Column(String(16), nullable=False)
    receiver = Column(String(16), nullable=False)
    settlement_amount = Column(Integer, nullable=False)
    status = Column(String(16), nullable=False, default="pending", index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    expense = relationship("Expense", back_populates="settlement")


def init_db(bind=None):
    Base.metadata.create_all(bind=bind or engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
