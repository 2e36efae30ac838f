"""DB engine, session helpers and ORM models for the Finance Tracker."""

from collections.abc import Iterator

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, String, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, relationship, sessionmaker

from finance_tracker.core.utils import utcnow

Base = declarative_base()


class TransactionTag(Base):
    """One label on a transaction; `position` keeps the tags in the order they were given."""

    __tablename__ = "transaction_tags"
    id = Column(Integer, primary_key=True)
    transaction_id = Column(Integer, ForeignKey("transactions.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    value = Column(String, nullable=False, index=True)


class TransactionRecord(Base):
    """An income or expense entry, amount stored in the base currency.

    Ids are never reused, so a debt pointing at a deleted mirror cannot pick up a later transaction.
    """

    __tablename__ = "transactions"
    __table_args__ = {"sqlite_autoincrement": True}
    id = Column(Integer, primary_key=True, index=True)
    description = Column(String, nullable=False)
    amount = Column(Float, nullable=False)
    type = Column(String, nullable=False, index=True)
    date = Column(DateTime, nullable=False, default=utcnow)

    tag_rows = relationship(
        "TransactionTag",
        order_by="TransactionTag.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def tags(self) -> list[str]:
        """Return the tag labels in their stored order."""
        return [row.value for row in self.tag_rows]


class DebtRecord(Base):
    """Money owed to a lender, mirrored by an expense transaction."""

    __tablename__ = "debts"
    id = Column(Integer, primary_key=True, index=True)
    description = Column(String, nullable=False)
    amount = Column(Float, nullable=False)
    lender = Column(String, nullable=False, default="Unknown")
    due_date = Column(DateTime, nullable=False)
    is_paid = Column(Boolean, nullable=False, default=False)
    date_created = Column(DateTime, nullable=False, default=utcnow)
    linked_transaction_id = Column(Integer, nullable=True)
    link_pending = Column(Boolean, nullable=False, default=True)


def get_engine(url: str | None = None) -> Engine:
    """Create a SQLAlchemy engine using the configured database URL."""
    from finance_tracker.core.settings import get_settings

    url = url or get_settings().database_url
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args)


engine = get_engine()
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_session() -> Iterator[Session]:
    """Yield a database session and make sure it is closed after the request."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
