"""Create all tables and seed reference data. Run on app startup.

SECURITY: the first admin gets a random password (not hardcoded), printed
once; change it after first login.
"""
import secrets
from datetime import time

from sqlalchemy.orm import Session

from quickpharma.db.base import Base
from quickpharma.db.session import engine, SessionLocal
from quickpharma import models  # noqa: F401 - register models
from quickpharma.models.lookup import SEED_ROWS, RoleName, Role
from quickpharma.models.order import Slot
from quickpharma.models.user import User
from quickpharma.core.security import get_password_hash


DEFAULT_SLOTS = [
    (1, "Morning", time(9, 0), time(12, 0), "9:00 AM - 12:00 PM"),
    (2, "Afternoon", time(12, 0), time(15, 0), "12:00 PM - 3:00 PM"),
    (3, "Evening", time(15, 0), time(18, 0), "3:00 PM - 6:00 PM"),
    (4, "Night", time(18, 0), time(21, 0), "6:00 PM - 9:00 PM"),
]

ADMIN_EMAIL = "admin@quickpharmaplus.com"


def seed_reference_data(db: Session) -> None:
    """Insert missing lookup rows and default delivery slots. Idempotent."""
    for model, rows in SEED_ROWS.items():
        existing = {row.id for row in db.query(model.id).all()}
        for row_id, name in rows:
            if row_id not in existing:
                db.add(model(id=row_id, name=name))

    if db.query(Slot).count() == 0:
        for slot_id, name, start, end, description in DEFAULT_SLOTS:
            db.add(Slot(id=slot_id, name=name, start_time=start, end_time=end, description=description))

    db.commit()


def init_db():
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        seed_reference_data(db)

        admin_role = db.query(Role).filter(Role.name == RoleName.ADMIN).first()
        if db.query(User).filter(User.role_id == admin_role.id).count() == 0:
            default_password = secrets.token_urlsafe(16)
            db.add(User(
                email=ADMIN_EMAIL,
                hashed_password=get_password_hash(default_password),
                first_name="System",
                last_name="Admin",
                role_id=admin_role.id,
            ))
            db.commit()

            print("\n" + "=" * 70)
            print("DEFAULT ADMIN USER CREATED")
            print("=" * 70)
            print(f"Email:    {ADMIN_EMAIL}")
            print(f"Password: {default_password}")
            print("\nChange this password immediately after first login!")
            print("=" * 70 + "\n")
    finally:
        db.close()
