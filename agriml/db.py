"""
Database layer for prediction records.

One table, ``predictions``. Nested parts of a record (the prediction value,
model metadata, inputs, validation) are kept as JSON columns; everything the
store filters or sorts on gets its own column. Datetimes are stored as naive
UTC.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, DateTime, Float, Index, String, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Mapped, declarative_base, mapped_column, sessionmaker

logger = logging.getLogger(__name__)

Base = declarative_base()


class PredictionRow(Base):
    __tablename__ = "predictions"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    type: Mapped[str] = mapped_column(String(16), nullable=False, index=True)

    # Location
    country: Mapped[str] = mapped_column(String(128), nullable=False)
    region: Mapped[str] = mapped_column(String(128), nullable=False)
    lat: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    lng: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # Prediction value
    value: Mapped[Any] = mapped_column(JSON, nullable=True)
    confidence: Mapped[float] = mapped_column(Float, nullable=False)
    severity: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)

    timeframe_start: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    timeframe_end: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    model_info: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)
    input_data: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)

    status: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    validation: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        Index("ix_predictions_location", "country", "region"),
        Index("ix_predictions_created", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<PredictionRow(id={self.id}, type={self.type}, status={self.status})>"


def create_database_engine(database_url: str, echo: bool = False) -> Engine:
    """Engine for ``database_url``; tables are created if missing."""
    connect_args = {}
    if database_url.startswith("sqlite"):
        # Routes run in FastAPI's threadpool
        connect_args["check_same_thread"] = False

    logger.info("Creating database engine for: %s", database_url.split("@")[-1])
    engine = create_engine(database_url, echo=echo, connect_args=connect_args, future=True)
    Base.metadata.create_all(engine)
    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )
