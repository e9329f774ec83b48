from sqlalchemy import Boolean, Column, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from quickpharma.db.base import Base


class City(Base):
    """A delivery city. Each city is served by exactly one branch (or none yet)."""
    __tablename__ = "cities"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(128), nullable=False)
    branch_id = Column(Integer, ForeignKey("branches.id", ondelete="SET NULL"), nullable=True)

    branch = relationship("Branch", foreign_keys=[branch_id])


class Address(Base):
    __tablename__ = "addresses"

    id = Column(Integer, primary_key=True, index=True)
    city_id = Column(Integer, ForeignKey("cities.id"), nullable=True)
    block = Column(String(64), nullable=True)
    road = Column(String(64), nullable=True)
    building_floor = Column(String(64), nullable=True)
    # Profile addresses belong to the user account and survive plan/prescription deletes
    is_profile_address = Column(Boolean, default=False, nullable=False)

    city = relationship("City")

    def label(self) -> str:
        parts = [
            self.city.name if self.city else None,
            f"Block {self.block}" if self.block else None,
            f"Road {self.road}" if self.road else None,
            f"Building/Floor {self.building_floor}" if self.building_floor else None,
        ]
        return ", ".join(p for p in parts if p) or "Address on file"


class Branch(Base):
    __tablename__ = "branches"

    id = Column(Integer, primary_key=True, index=True)
    address_id = Column(
        Integer,
        ForeignKey("addresses.id", use_alter=True, name="fk_branches_address_id"),
        nullable=True,
    )

    address = relationship("Address", foreign_keys=[address_id])

    @property
    def city_name(self) -> str:
        if self.address and self.address.city:
            return self.address.city.name
        return f"Branch {self.id}"
