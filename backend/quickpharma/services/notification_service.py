"""Customer notifications. Fire-and-forget: failures are logged, never raised."""
import logging
import smtplib
from decimal import Decimal
from typing import Optional

from quickpharma.core.emailer import send_email

logger = logging.getLogger(__name__)

SIGNATURE = "Best regards,\nQuickPharmaPlus Support"


def _deliver(to_email: Optional[str], subject: str, body: str, html: Optional[str] = None) -> bool:
    if not to_email:
        logger.warning(f"Skipping email {subject!r}: recipient has no address")
        return False
    try:
        send_email(to_email, subject, body, html=html)
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"Email {subject!r} to {to_email} failed: {e}")
        return False
    return True


def _money(amount) -> str:
    return f"{Decimal(amount or 0):.3f} BHD"


def send_order_confirmation(to_email: str, customer_name: str, order_id: int, total, method_label: str) -> bool:
    body = (
        f"Hello {customer_name},\n\n"
        f"Your order #{order_id} has been placed.\n"
        f"Fulfillment: {method_label}\n"
        f"Total: {_money(total)}\n\n{SIGNATURE}"
    )
    return _deliver(to_email, f"QuickPharmaPlus - Order #{order_id} confirmed", body)


def send_prescription_approved(to_email: str, customer_name: str, prescription_id: int,
                               product_name: str, expiry_date, order_id: Optional[int] = None) -> bool:
    lines = [
        f"Hello {customer_name},",
        "",
        f"Your prescription #{prescription_id} has been approved for {product_name}.",
        f"It is valid until {expiry_date}.",
    ]
    if order_id:
        lines.append(f"Your order #{order_id} will now be prepared.")
    lines += ["", SIGNATURE]
    return _deliver(to_email, "QuickPharmaPlus - Prescription approved", "\n".join(lines))


def send_prescription_rejected(to_email: str, customer_name: str, prescription_id: int,
                               reason: Optional[str]) -> bool:
    body = (
        f"Hello {customer_name},\n\n"
        f"Unfortunately your prescription #{prescription_id} could not be approved."
        + (f"\nReason: {reason}" if reason else "")
        + f"\n\n{SIGNATURE}"
    )
    return _deliver(to_email, "QuickPharmaPlus - Prescription rejected", body)


def send_out_for_delivery(to_email: str, customer_name: str, order_id: int) -> bool:
    body = f"Hello {customer_name},\n\nYour order #{order_id} is out for delivery.\n\n{SIGNATURE}"
    return _deliver(to_email, f"QuickPharmaPlus - Order #{order_id} is on its way", body)


def send_delivered(to_email: str, customer_name: str, order_id: int) -> bool:
    body = f"Hello {customer_name},\n\nYour order #{order_id} has been delivered.\n\n{SIGNATURE}"
    return _deliver(to_email, f"QuickPharmaPlus - Order #{order_id} delivered", body)


def send_plan_email(to_email: str, customer_name: str, stage: str, prescription_label: str,
                    method_label: str, location_label: str, total) -> bool:
    location_title = "Address" if method_label == "Delivery" else "Branch"
    if stage == "REMINDER":
        subject = "QuickPharmaPlus - Monthly Prescription Reminder"
        opening = f"This is a reminder that your prescription for {prescription_label} will be ready in 3 days."
    else:
        subject = "QuickPharmaPlus - Monthly Prescription Ready"
        if method_label == "Pickup":
            opening = f"Your prescription for {prescription_label} can be picked up today."
        else:
            opening = f"Your prescription for {prescription_label} will be delivered today."

    body = (
        f"Hello {customer_name},\n\n{opening}\n\n"
        f"{location_title}: {location_label}\n"
        f"Total Amount: {_money(total)}\n\n{SIGNATURE}"
    )
    return _deliver(to_email, subject, body)
