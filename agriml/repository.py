"""
Prediction record repository.

Persists every prediction the service returns so it can be listed, validated
against ground truth and expired once its window has passed. Backed by
SQLAlchemy; any database URL it accepts works, SQLite by default.
"""
import logging
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Generator, List, Mapping, Optional, Union

from sqlalchemy import desc, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from agriml.db import PredictionRow, create_database_engine, create_session_factory
from agriml.envelope import utcnow
from agriml.errors import PredictionNotFoundError
from agriml.schemas import (
    CropPrediction,
    HazardType,
    Location,
    ModelInfo,
    PredictionRecord,
    PredictionStatus,
    PredictionValidation,
    PredictionValue,
    PricePrediction,
    RiskPrediction,
    Severity,
    Timeframe,
)

logger = logging.getLogger(__name__)

ModelResult = Union[RiskPrediction, CropPrediction, PricePrediction]

# Validations above this accuracy confirm the prediction
VALIDATION_ACCURACY_CUTOFF = 0.7
DEFAULT_CROP_CONFIDENCE = 0.7


def prediction_value(result: ModelResult) -> PredictionValue:
    if isinstance(result, RiskPrediction):
        return PredictionValue(value=result.prediction, confidence=result.confidence, severity=result.severity)
    if isinstance(result, CropPrediction):
        recs = result.recommendations
        return PredictionValue(
            value=[rec.model_dump() for rec in recs],
            confidence=recs[0].confidence if recs else DEFAULT_CROP_CONFIDENCE,
        )
    return PredictionValue(value=result.prediction.model_dump(), confidence=result.confidence)


def _to_db(value: datetime) -> datetime:
    """Naive UTC, the way datetimes are stored."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _from_db(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def _to_record(row: PredictionRow) -> PredictionRecord:
    return PredictionRecord(
        id=row.id,
        type=row.type,
        location=Location(country=row.country, region=row.region, lat=row.lat, lng=row.lng),
        prediction=PredictionValue(value=row.value, confidence=row.confidence, severity=row.severity),
        timeframe=Timeframe(start_date=_from_db(row.timeframe_start), end_date=_from_db(row.timeframe_end)),
        model_info=ModelInfo(**row.model_info),
        input_data=row.input_data,
        status=row.status,
        validation=PredictionValidation(**row.validation) if row.validation else None,
        created_at=_from_db(row.created_at),
        updated_at=_from_db(row.updated_at),
    )


class PredictionStore:
    """
    Repository for prediction records.

    Methods:
    - create: persist a model result with its inputs and location
    - get / list: read back, newest first
    - validate: attach ground truth and settle the status
    - high_risk: recent medium/high severity records
    - expire: mark active records whose window has ended
    """

    def __init__(self, database_url: str):
        self._engine = create_database_engine(database_url)
        self._sessions = create_session_factory(self._engine)

    @contextmanager
    def _session(self) -> Generator[Session, None, None]:
        """Commits only if no exception occurs."""
        session = self._sessions()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            logger.error("Database transaction failed, rolling back: %s", e)
            session.rollback()
            raise
        finally:
            session.close()

    def close(self) -> None:
        self._engine.dispose()

    def __len__(self) -> int:
        with self._session() as session:
            return session.scalar(select(func.count()).select_from(PredictionRow))

    # --------------------------------------------------------
    # WRITE OPERATIONS
    # --------------------------------------------------------

    def create(
        self,
        result: ModelResult,
        input_data: Mapping[str, Any],
        location: Optional[Location] = None,
        now: Optional[datetime] = None,
    ) -> PredictionRecord:
        now = _to_db(now or utcnow())
        location = location or Location()
        value = prediction_value(result).model_dump(mode="json")
        row = PredictionRow(
            id=uuid.uuid4().hex,
            type=result.type.value,
            country=location.country,
            region=location.region,
            lat=location.lat,
            lng=location.lng,
            value=value["value"],
            confidence=value["confidence"],
            severity=value["severity"],
            timeframe_start=_to_db(result.timeframe.start_date),
            timeframe_end=_to_db(result.timeframe.end_date),
            model_info=result.model_info.model_dump(mode="json"),
            input_data=dict(input_data),
            status=PredictionStatus.ACTIVE.value,
            created_at=now,
            updated_at=now,
        )
        with self._session() as session:
            session.add(row)
        logger.info("Stored %s prediction %s", row.type, row.id)
        return _to_record(row)

    def validate(
        self,
        prediction_id: str,
        actual_value: Any,
        accuracy: float,
        validated_by: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> PredictionRecord:
        """Attach ground truth; the stored prediction itself is left untouched."""
        now = now or utcnow()
        status = PredictionStatus.VALIDATED if accuracy > VALIDATION_ACCURACY_CUTOFF else PredictionStatus.INVALIDATED
        with self._session() as session:
            row = session.get(PredictionRow, prediction_id)
            if row is None:
                raise PredictionNotFoundError(prediction_id)
            row.validation = PredictionValidation(
                actual_value=actual_value,
                accuracy=accuracy,
                validated_at=now,
                validated_by=validated_by,
            ).model_dump(mode="json")
            row.status = status.value
            row.updated_at = _to_db(now)
        logger.info("Prediction %s %s (accuracy=%.2f)", prediction_id, status.value, accuracy)
        return _to_record(row)

    def expire(self, now: Optional[datetime] = None) -> int:
        """Mark active records whose window ended before ``now`` as expired."""
        now = _to_db(now or utcnow())
        with self._session() as session:
            rows = session.scalars(
                select(PredictionRow).where(
                    PredictionRow.status == PredictionStatus.ACTIVE.value,
                    PredictionRow.timeframe_end < now,
                )
            ).all()
            for row in rows:
                row.status = PredictionStatus.EXPIRED.value
                row.updated_at = now
        if rows:
            logger.info("Expired %d predictions", len(rows))
        return len(rows)

    # --------------------------------------------------------
    # READ OPERATIONS
    # --------------------------------------------------------

    def get(self, prediction_id: str) -> PredictionRecord:
        with self._session() as session:
            row = session.get(PredictionRow, prediction_id)
        if row is None:
            raise PredictionNotFoundError(prediction_id)
        return _to_record(row)

    def list(
        self,
        type: Optional[HazardType] = None,
        country: Optional[str] = None,
        region: Optional[str] = None,
        active_only: bool = False,
        limit: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> List[PredictionRecord]:
        """Matching records, newest first."""
        stmt = select(PredictionRow)
        if type is not None:
            stmt = stmt.where(PredictionRow.type == HazardType(type).value)
        if country is not None:
            stmt = stmt.where(PredictionRow.country == country)
        if region is not None:
            stmt = stmt.where(PredictionRow.region == region)
        if active_only:
            stmt = stmt.where(
                PredictionRow.status == PredictionStatus.ACTIVE.value,
                PredictionRow.timeframe_end >= _to_db(now or utcnow()),
            )
        stmt = stmt.order_by(desc(PredictionRow.created_at))
        if limit is not None:
            stmt = stmt.limit(limit)

        with self._session() as session:
            rows = session.scalars(stmt).all()
        return [_to_record(row) for row in rows]

    def high_risk(self, since: datetime, min_confidence: float = 0.7) -> List[PredictionRecord]:
        """Recent medium/high severity predictions worth notifying about."""
        stmt = (
            select(PredictionRow)
            .where(
                PredictionRow.created_at >= _to_db(since),
                PredictionRow.severity.in_([Severity.HIGH.value, Severity.MEDIUM.value]),
                PredictionRow.confidence >= min_confidence,
            )
            .order_by(desc(PredictionRow.created_at))
        )
        with self._session() as session:
            rows = session.scalars(stmt).all()
        return [_to_record(row) for row in rows]
