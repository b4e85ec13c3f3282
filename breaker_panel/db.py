import logging
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    event,
)
from sqlalchemy.orm import declarative_base, relationship, sessionmaker
from sqlalchemy.pool import StaticPool

from breaker_panel.core.settings import settings

logger = logging.getLogger(__name__)

SLOT_POSITIONS = ("single", "A", "B")
BREAKER_TYPES = ("single", "double_pole", "tandem")
CIRCUIT_TYPES = ("outlet", "lighting", "heating", "appliance", "subpanel")
ROOM_LEVELS = ("basement", "main", "upper", "outside")

Base = declarative_base()


def _quoted(values) -> str:
    return ", ".join(f"'{v}'" for v in values)


class Panel(Base):
    __tablename__ = "panels"
    __table_args__ = (
        CheckConstraint("length(name) > 0", name="ck_panel_name"),
        CheckConstraint("size >= 12 AND size <= 42", name="ck_panel_size"),
    )

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False)
    size = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    breakers = relationship(
        "Breaker",
        back_populates="panel",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Breaker.position",
    )
    # Circuits elsewhere that feed this panel; nulled on delete
    feeding_circuits = relationship("Circuit", back_populates="subpanel", foreign_keys="Circuit.subpanel_id")


class Breaker(Base):
    __tablename__ = "breakers"
    __table_args__ = (
        UniqueConstraint("panel_id", "position", "slot_position", name="uq_breaker_slot"),
        CheckConstraint("position > 0", name="ck_breaker_position"),
        CheckConstraint(f"slot_position IN ({_quoted(SLOT_POSITIONS)})", name="ck_breaker_slot"),
        CheckConstraint(f"breaker_type IN ({_quoted(BREAKER_TYPES)})", name="ck_breaker_type"),
        CheckConstraint("amperage IS NULL OR (amperage > 0 AND amperage <= 200)", name="ck_breaker_amperage"),
    )

    id = Column(Integer, primary_key=True)
    panel_id = Column(Integer, ForeignKey("panels.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    slot_position = Column(String(10), nullable=False, default="single")
    breaker_type = Column(String(20), nullable=False, default="single")
    label = Column(String(200))
    amperage = Column(Integer)
    critical = Column(Boolean, nullable=False, default=False)
    monitor = Column(Boolean, nullable=False, default=False)
    confirmed = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    panel = relationship("Panel", back_populates="breakers")
    circuits = relationship(
        "Circuit",
        back_populates="breaker",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Circuit.id",
    )


class Room(Base):
    __tablename__ = "rooms"
    __table_args__ = (
        CheckConstraint("length(name) > 0", name="ck_room_name"),
        CheckConstraint(f"level IN ({_quoted(ROOM_LEVELS)})", name="ck_room_level"),
    )

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False, unique=True)
    level = Column(String(20), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    circuits = relationship("Circuit", back_populates="room")


class Circuit(Base):
    __tablename__ = "circuits"
    __table_args__ = (
        CheckConstraint(f"type IS NULL OR type IN ({_quoted(CIRCUIT_TYPES)})", name="ck_circuit_type"),
    )

    id = Column(Integer, primary_key=True)
    breaker_id = Column(Integer, ForeignKey("breakers.id", ondelete="CASCADE"), nullable=False, index=True)
    room_id = Column(Integer, ForeignKey("rooms.id", ondelete="SET NULL"))
    type = Column(String(20))
    notes = Column(Text)
    subpanel_id = Column(Integer, ForeignKey("panels.id", ondelete="SET NULL"))
    created_at = Column(DateTime, default=datetime.utcnow)

    breaker = relationship("Breaker", back_populates="circuits")
    room = relationship("Room", back_populates="circuits")
    subpanel = relationship("Panel", back_populates="feeding_circuits", foreign_keys=[subpanel_id])

    @property
    def room_name(self):
        return self.room.name if self.room is not None else None

    @property
    def room_level(self):
        return self.room.level if self.room is not None else None


def make_engine(url: str, echo: bool = False):
    """Build an engine; SQLite connections get foreign keys switched on."""
    kwargs = {"echo": echo}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:"):
            # one shared connection, otherwise every session sees an empty database
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_pre_ping"] = True
        kwargs["pool_recycle"] = 300

    new_engine = create_engine(url, **kwargs)

    if url.startswith("sqlite"):
        @event.listens_for(new_engine, "connect")
        def _sqlite_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return new_engine


engine = make_engine(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind=None):
    target = bind if bind is not None else engine
    Base.metadata.create_all(bind=target)
    logger.info("Database tables ready (%s)", target.url)


def get_db():
    """FastAPI dependency: one session per request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
