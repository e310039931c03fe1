"""SQLAlchemy 2.0 async repository implementations."""

import logging
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from litestar_carriers.contrib.sqlalchemy.models import (
    CarrierProfileModel,
    ShipmentModel,
    TrackingLogModel,
)
from litestar_carriers.exceptions import DuplicateShipmentError

logger = logging.getLogger(__name__)

COUNTER_FIELDS = frozenset(
    {
        "total_shipments",
        "successful_deliveries",
        "failed_deliveries",
        "rto_count",
    }
)

# Enum-valued columns are stored as their plain string value.
_ENUM_FIELDS = ("status", "source", "priority")


def _plain(fields: dict[str, Any]) -> dict[str, Any]:
    for key in _ENUM_FIELDS:
        if fields.get(key) is not None:
            fields[key] = str(fields[key])
    return fields


class SQLAlchemyCarrierProfileRepository:
    """Carrier profile repository backed by SQLAlchemy async sessions.

    Counter updates are single UPDATE statements whose SET clauses read
    the stored values, so concurrent writers never lose an increment.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        self._session_factory = session_factory

    async def create(self, **kwargs) -> CarrierProfileModel:
        async with self._session_factory() as session:
            profile = CarrierProfileModel(**kwargs)
            session.add(profile)
            await session.commit()
            await session.refresh(profile)
            session.expunge(profile)
            return profile

    async def _list(self, *, active_only: bool) -> list[CarrierProfileModel]:
        async with self._session_factory() as session:
            stmt = select(CarrierProfileModel).order_by(
                CarrierProfileModel.name
            )
            if active_only:
                stmt = stmt.where(CarrierProfileModel.is_active.is_(True))
            result = await session.execute(stmt)
            profiles = list(result.scalars().all())
            for p in profiles:
                session.expunge(p)
            return profiles

    async def list_active(self) -> list[CarrierProfileModel]:
        return await self._list(active_only=True)

    async def list_all(self) -> list[CarrierProfileModel]:
        return await self._list(active_only=False)

    async def get_by_name(self, name: str) -> CarrierProfileModel:
        """Get a profile by name. Raises KeyError if not found."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(CarrierProfileModel).where(
                    CarrierProfileModel.name == name
                )
            )
            profile = result.scalar_one_or_none()
            if profile is None:
                raise KeyError(name)
            session.expunge(profile)
            return profile

    async def _update(self, name: str, **values) -> None:
        async with self._session_factory() as session:
            stmt = (
                update(CarrierProfileModel)
                .where(CarrierProfileModel.name == name)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            await session.commit()
            if result.rowcount == 0:
                logger.warning("Carrier profile %r not found", name)

    async def increment_counters(self, name: str, **deltas: int) -> None:
        unknown = set(deltas) - COUNTER_FIELDS
        if unknown:
            raise ValueError(f"Unknown counters: {sorted(unknown)}")
        model = CarrierProfileModel
        await self._update(
            name,
            **{
                field: getattr(model, field) + delta
                for field, delta in deltas.items()
            },
            performance_updated_at=datetime.now(tz=UTC),
        )

    async def record_delivery(
        self, name: str, *, on_time: bool, delivery_days: float
    ) -> None:
        """Count one delivery and roll the averages in the same statement.

        rate_n = (rate_old * (n - 1) + outcome) / n, with n the new count.
        """
        model = CarrierProfileModel
        count = model.successful_deliveries + 1
        outcome = 100.0 if on_time else 0.0
        await self._update(
            name,
            successful_deliveries=count,
            on_time_rate=(
                model.on_time_rate * model.successful_deliveries + outcome
            )
            / count,
            average_delivery_days=(
                model.average_delivery_days * model.successful_deliveries
                + delivery_days
            )
            / count,
            performance_updated_at=datetime.now(tz=UTC),
        )

    async def deactivate(self, name: str) -> None:
        await self._update(name, is_active=False)


class SQLAlchemyShipmentRepository:
    """Shipment repository backed by SQLAlchemy async sessions.

    Implements the ShipmentRepository protocol.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        self._session_factory = session_factory

    async def get_by_id(self, shipment_id: str) -> ShipmentModel:
        """Get a shipment by ID. Raises KeyError if not found."""
        async with self._session_factory() as session:
            result = await session.get(ShipmentModel, shipment_id)
            if result is None:
                raise KeyError(shipment_id)
            session.expunge(result)
            return result

    async def _get_one(self, *criteria) -> ShipmentModel | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ShipmentModel).where(*criteria)
            )
            shipment = result.scalar_one_or_none()
            if shipment is not None:
                session.expunge(shipment)
            return shipment

    async def get_by_awb(self, awb: str) -> ShipmentModel:
        """Get a shipment by AWB. Raises KeyError if not found."""
        shipment = await self._get_one(ShipmentModel.awb == awb)
        if shipment is None:
            raise KeyError(awb)
        return shipment

    async def find_by_order(self, order_id: str) -> ShipmentModel | None:
        return await self._get_one(ShipmentModel.order_id == order_id)

    async def list_shipments(
        self,
        *,
        status: str | None = None,
        carrier_name: str | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[ShipmentModel], int]:
        criteria = []
        if status is not None:
            criteria.append(ShipmentModel.status == str(status))
        if carrier_name is not None:
            criteria.append(ShipmentModel.carrier_name == carrier_name)
        async with self._session_factory() as session:
            total = await session.scalar(
                select(func.count())
                .select_from(ShipmentModel)
                .where(*criteria)
            )
            result = await session.execute(
                select(ShipmentModel)
                .where(*criteria)
                .order_by(
                    ShipmentModel.created_at.desc(), ShipmentModel.id.desc()
                )
                .offset(offset)
                .limit(limit)
            )
            shipments = list(result.scalars().all())
            for s in shipments:
                session.expunge(s)
            return shipments, total or 0

    async def create(self, **kwargs) -> ShipmentModel:
        """Create a new shipment record."""
        _plain(kwargs)
        async with self._session_factory() as session:
            shipment = ShipmentModel(**kwargs)
            session.add(shipment)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                order_id = kwargs.get("order_id", "")
                if await self.find_by_order(order_id) is not None:
                    raise DuplicateShipmentError(order_id) from exc
                raise
            await session.refresh(shipment)
            session.expunge(shipment)
            return shipment

    async def compare_and_set_status(
        self,
        shipment_id: str,
        expected_status: str,
        new_status: str,
        **fields,
    ) -> ShipmentModel | None:
        """Set status only if the stored value is still ``expected_status``."""
        values = _plain({**fields, "status": new_status})
        async with self._session_factory() as session:
            stmt = (
                update(ShipmentModel)
                .where(
                    ShipmentModel.id == shipment_id,
                    ShipmentModel.status == str(expected_status),
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            await session.commit()
            if result.rowcount == 0:
                return None
        return await self.get_by_id(shipment_id)

    async def update_fields(self, shipment_id: str, **fields) -> ShipmentModel:
        """Update non-status fields of a shipment."""
        fields.pop("status", None)
        _plain(fields)
        async with self._session_factory() as session:
            shipment = await session.get(ShipmentModel, shipment_id)
            if shipment is None:
                raise KeyError(shipment_id)
            for key, value in fields.items():
                if hasattr(shipment, key):
                    setattr(shipment, key, value)
            await session.commit()
            await session.refresh(shipment)
            session.expunge(shipment)
            return shipment


class SQLAlchemyTrackingLogRepository:
    """Append-only tracking log.

    The unique constraint on (shipment_id, awb, status, timestamp) makes
    replays of the same observation a no-op.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        self._session_factory = session_factory

    async def append(self, **kwargs) -> TrackingLogModel | None:
        _plain(kwargs)
        async with self._session_factory() as session:
            entry = TrackingLogModel(**kwargs)
            session.add(entry)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                return None
            await session.refresh(entry)
            session.expunge(entry)
            return entry

    async def list_by_awb(
        self, awb: str, limit: int = 50
    ) -> list[TrackingLogModel]:
        async with self._session_factory() as session:
            stmt = (
                select(TrackingLogModel)
                .where(TrackingLogModel.awb == awb)
                .order_by(
                    TrackingLogModel.timestamp.desc(),
                    TrackingLogModel.id.desc(),
                )
                .limit(limit)
            )
            result = await session.execute(stmt)
            entries = list(result.scalars().all())
            for e in entries:
                session.expunge(e)
            return entries
