"""
Bookings Repository Layer

Data access for bookings. Status and payment writes go through
``update_if`` so the guard evaluated by the service is re-checked by the
database in the same statement.
"""

from typing import Optional, List, Tuple, Any, Dict
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func

from app.domain.bookings.models import Booking, BookingStatus


class BookingRepository:
    """Repository for booking data access operations"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, booking_data: dict) -> Booking:
        booking = Booking(**booking_data)
        self.db.add(booking)
        await self.db.commit()
        await self.db.refresh(booking)
        return booking

    async def get_by_id(self, booking_id: str, active_only: bool = True) -> Optional[Booking]:
        """Fresh read of a booking, bypassing anything cached in the session"""
        query = select(Booking).where(Booking.id == booking_id)
        if active_only:
            query = query.where(Booking.is_active.is_(True))
        result = await self.db.execute(query.execution_options(populate_existing=True))
        return result.scalar_one_or_none()

    async def search(
        self,
        skip: int = 0,
        limit: int = 10,
        user_id: Optional[str] = None,
        lab_id: Optional[str] = None,
        status: Optional[BookingStatus] = None,
        active_only: bool = True,
        order_by_appointment: bool = False
    ) -> Tuple[List[Booking], int]:
        """Filtered, paginated booking list with the total count"""
        conditions = []
        if active_only:
            conditions.append(Booking.is_active.is_(True))
        if user_id:
            conditions.append(Booking.user_id == user_id)
        if lab_id:
            conditions.append(Booking.lab_id == lab_id)
        if status:
            conditions.append(Booking.status == status)

        query = select(Booking).where(*conditions)
        if order_by_appointment:
            query = query.order_by(Booking.appointment_date.desc(), Booking.appointment_time.desc())
        else:
            query = query.order_by(Booking.created_at.desc())

        result = await self.db.execute(query.offset(skip).limit(limit))
        bookings = list(result.scalars().all())

        count_result = await self.db.execute(select(func.count(Booking.id)).where(*conditions))
        total = count_result.scalar_one()

        return bookings, total

    async def update_if(
        self,
        booking_id: str,
        values: Dict[str, Any],
        *criteria: Any
    ) -> Optional[Booking]:
        """Apply ``values`` only if the row still matches ``criteria``.

        Returns the refreshed booking, or None when another writer changed
        the row first (nothing is written in that case).
        """
        stmt = (
            update(Booking)
            .where(Booking.id == booking_id, *criteria)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        if result.rowcount == 0:
            await self.db.rollback()
            return None

        await self.db.commit()
        return await self.get_by_id(booking_id, active_only=False)
