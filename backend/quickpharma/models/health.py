from sqlalchemy import Column, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from quickpharma.db.base import Base


class HealthProfile(Base):
    __tablename__ = "health_profiles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)


class Allergy(Base):
    __tablename__ = "allergies"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(128), nullable=False)


class Illness(Base):
    __tablename__ = "illnesses"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(128), nullable=False)


class HealthProfileAllergy(Base):
    __tablename__ = "health_profile_allergies"
    __table_args__ = (UniqueConstraint("health_profile_id", "allergy_id", name="uq_profile_allergy"),)

    id = Column(Integer, primary_key=True, index=True)
    health_profile_id = Column(Integer, ForeignKey("health_profiles.id", ondelete="CASCADE"), nullable=False)
    allergy_id = Column(Integer, ForeignKey("allergies.id"), nullable=False)
    severity_id = Column(Integer, ForeignKey("severities.id"), nullable=True)

    allergy = relationship("Allergy")
    severity = relationship("Severity")


class HealthProfileIllness(Base):
    __tablename__ = "health_profile_illnesses"
    __table_args__ = (UniqueConstraint("health_profile_id", "illness_id", name="uq_profile_illness"),)

    id = Column(Integer, primary_key=True, index=True)
    health_profile_id = Column(Integer, ForeignKey("health_profiles.id", ondelete="CASCADE"), nullable=False)
    illness_id = Column(Integer, ForeignKey("illnesses.id"), nullable=False)
    severity_id = Column(Integer, ForeignKey("severities.id"), nullable=True)

    illness = relationship("Illness")
    severity = relationship("Severity")


class AllergyIngredientInteraction(Base):
    __tablename__ = "allergy_ingredient_interactions"

    id = Column(Integer, primary_key=True)
    allergy_id = Column(Integer, ForeignKey("allergies.id", ondelete="CASCADE"), nullable=False)
    ingredient_id = Column(Integer, ForeignKey("ingredients.id", ondelete="CASCADE"), nullable=False)


class IllnessIngredientInteraction(Base):
    __tablename__ = "illness_ingredient_interactions"

    id = Column(Integer, primary_key=True)
    illness_id = Column(Integer, ForeignKey("illnesses.id", ondelete="CASCADE"), nullable=False)
    ingredient_id = Column(Integer, ForeignKey("ingredients.id", ondelete="CASCADE"), nullable=False)
