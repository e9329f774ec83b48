"""
Delivery slots: capacity, availability and urgent-delivery derivation.

Normal deliveries book a (branch, date, slot) seat; each combination holds
settings.NORMAL_SLOT_CAPACITY deliveries. Urgent deliveries are promised for
now + 1 hour and occupy the slot whose window contains that instant; each
(branch, slot, day) accepts settings.URGENT_SLOT_CAPACITY of them.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from quickpharma.core.clock import local_now
from quickpharma.core.config import settings
from quickpharma.models.location import Branch, City
from quickpharma.models.order import Shipping, Slot

logger = logging.getLogger(__name__)

URGENT_LEAD_TIME = timedelta(hours=1)


@dataclass
class SlotCheck:
    ok: bool
    message: str = ""


@dataclass
class UrgentAvailability:
    available: bool
    slot_id: Optional[int] = None
    slot_name: Optional[str] = None
    target_time: Optional[datetime] = None
    reason: str = ""

    def as_dict(self) -> dict:
        return {
            "available": self.available,
            "slot_id": self.slot_id,
            "slot_name": self.slot_name,
            "target_time": self.target_time.isoformat() if self.target_time else None,
            "reason": self.reason,
        }


def slot_to_dict(slot: Slot) -> dict:
    return {
        "slot_id": slot.id,
        "slot_name": slot.name,
        "start": slot.start_time.strftime("%H:%M") if slot.start_time else None,
        "end": slot.end_time.strftime("%H:%M") if slot.end_time else None,
        "description": slot.description,
    }


def all_slots(db: Session) -> List[Slot]:
    return db.query(Slot).order_by(Slot.start_time, Slot.id).all()


def map_city_to_branch(db: Session, city_id: Optional[int]) -> Optional[int]:
    if not city_id or city_id <= 0:
        return None
    city = db.query(City).filter(City.id == city_id).first()
    return city.branch_id if city else None


def normal_bookings(db: Session, branch_id: int, day: date, slot_id: int) -> int:
    day_start = datetime.combine(day, time.min)
    return (
        db.query(func.count(Shipping.id))
        .filter(
            Shipping.branch_id == branch_id,
            Shipping.is_delivery.is_(True),
            Shipping.is_urgent.isnot(True),
            Shipping.slot_id == slot_id,
            Shipping.shipping_date >= day_start,
            Shipping.shipping_date < day_start + timedelta(days=1),
        )
        .scalar()
    ) or 0


def is_slot_full(db: Session, branch_id: int, day: date, slot_id: int) -> bool:
    return normal_bookings(db, branch_id, day, slot_id) >= settings.NORMAL_SLOT_CAPACITY


def validate_slot_booking(
    db: Session,
    branch_id: int,
    shipping_date: Optional[date],
    slot_id: Optional[int],
    now: Optional[datetime] = None,
) -> SlotCheck:
    now = now or local_now()
    today = now.date()

    if shipping_date is None:
        return SlotCheck(False, "Shipping date is required.")
    if not slot_id or slot_id <= 0:
        return SlotCheck(False, "Time slot is required.")
    if shipping_date < today or shipping_date > today + timedelta(days=settings.BOOKING_WINDOW_DAYS):
        return SlotCheck(False, f"Shipping date must be within the next {settings.BOOKING_WINDOW_DAYS} days.")

    slot = db.query(Slot).filter(Slot.id == slot_id).first()
    if not slot:
        return SlotCheck(False, "Invalid time slot.")
    if shipping_date == today and slot.end_time <= now.time():
        return SlotCheck(False, "Selected time slot has already ended.")
    if is_slot_full(db, branch_id, shipping_date, slot_id):
        return SlotCheck(False, "Selected slot is full. Please choose another slot.")

    return SlotCheck(True)


def available_delivery_slots(
    db: Session,
    branch_id: int,
    days_ahead: int = 6,
    now: Optional[datetime] = None,
) -> List[dict]:
    """Per date from today to today+days_ahead, the slots still bookable."""
    now = now or local_now()
    days_ahead = max(0, min(days_ahead, 30))
    slots = all_slots(db)

    result = []
    for offset in range(days_ahead + 1):
        day = now.date() + timedelta(days=offset)
        open_slots = []
        for slot in slots:
            if day == now.date() and slot.end_time <= now.time():
                continue
            if is_slot_full(db, branch_id, day, slot.id):
                continue
            open_slots.append(slot_to_dict(slot))
        result.append({"date": day.isoformat(), "slots": open_slots})
    return result


def derive_urgent_slot(slots: List[Slot], target: time) -> Optional[Slot]:
    """Slot whose [start, end) window contains target; an exact start match wins."""
    for slot in slots:
        if slot.start_time == target:
            return slot
    for slot in slots:
        if slot.start_time <= target < slot.end_time:
            return slot
    return None


def urgent_bookings(db: Session, branch_id: int, day: date, slot: Slot) -> int:
    window_start = datetime.combine(day, slot.start_time)
    window_end = datetime.combine(day, slot.end_time)
    return (
        db.query(func.count(Shipping.id))
        .filter(
            Shipping.branch_id == branch_id,
            Shipping.is_delivery.is_(True),
            Shipping.is_urgent.is_(True),
            Shipping.shipping_date >= window_start,
            Shipping.shipping_date < window_end,
        )
        .scalar()
    ) or 0


def urgent_availability(db: Session, branch_id: Optional[int], now: Optional[datetime] = None) -> UrgentAvailability:
    now = now or local_now()
    if not branch_id:
        return UrgentAvailability(False, reason="No branch serves this location.")

    target = now + URGENT_LEAD_TIME
    if target.date() != now.date():
        return UrgentAvailability(False, target_time=target, reason="Urgent delivery is not available at this time.")

    slot = derive_urgent_slot(all_slots(db), target.time().replace(microsecond=0))
    if not slot:
        return UrgentAvailability(False, target_time=target, reason="Urgent delivery is not available at this time.")

    if urgent_bookings(db, branch_id, target.date(), slot) >= settings.URGENT_SLOT_CAPACITY:
        return UrgentAvailability(
            False, slot.id, slot.name, target,
            reason="Urgent delivery for this time slot is already booked.",
        )

    return UrgentAvailability(True, slot.id, slot.name, target)


@dataclass
class ShippingChoice:
    ok: bool
    branch_id: Optional[int] = None
    message: str = ""


def validate_shipping_choice(
    db: Session,
    is_delivery: bool,
    branch_id: Optional[int] = None,
    city_id: Optional[int] = None,
) -> ShippingChoice:
    """Resolve the fulfilling branch for a pickup or delivery choice."""
    if not is_delivery:
        if not branch_id or branch_id <= 0:
            return ShippingChoice(False, message="Please select a pickup branch.")
        if not db.query(Branch.id).filter(Branch.id == branch_id).first():
            return ShippingChoice(False, message="Invalid branchId.")
        return ShippingChoice(True, branch_id)

    if not city_id or city_id <= 0:
        return ShippingChoice(False, message="Please select a city for delivery.")
    mapped = map_city_to_branch(db, city_id)
    if not mapped:
        return ShippingChoice(False, message="This city is not assigned to any branch.")
    return ShippingChoice(True, mapped)
