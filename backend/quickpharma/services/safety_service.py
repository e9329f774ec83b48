"""Health profile entries and product safety checks.

Incompatibilities are computed through ingredients: a product is flagged for
an allergy or illness when one of its ingredients is linked to it.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from quickpharma.models.catalog import Ingredient, IngredientInteraction, Product, ProductIngredient
from quickpharma.models.health import (
    Allergy, AllergyIngredientInteraction, HealthProfile, HealthProfileAllergy,
    HealthProfileIllness, Illness, IllnessIngredientInteraction,
)
from quickpharma.models.lookup import Severity

logger = logging.getLogger(__name__)


def get_or_create_profile(db: Session, user_id: int) -> HealthProfile:
    profile = db.query(HealthProfile).filter(HealthProfile.user_id == user_id).first()
    if profile:
        return profile
    profile = HealthProfile(user_id=user_id)
    db.add(profile)
    db.flush()
    return profile


def incompatibility_map(db: Session, user_id: int, product_ids: Iterable[int]) -> Dict[int, dict]:
    """{product_id: {"allergies": [...], "illnesses": [...]}} for the user's profile."""
    ids = sorted({pid for pid in product_ids if pid and pid > 0})
    result = {pid: {"allergies": [], "illnesses": []} for pid in ids}
    if not ids:
        return result

    profile = db.query(HealthProfile).filter(HealthProfile.user_id == user_id).first()
    if not profile:
        return result

    allergy_rows = (
        db.query(ProductIngredient.product_id, Allergy.name)
        .join(AllergyIngredientInteraction, AllergyIngredientInteraction.ingredient_id == ProductIngredient.ingredient_id)
        .join(Allergy, Allergy.id == AllergyIngredientInteraction.allergy_id)
        .join(HealthProfileAllergy, HealthProfileAllergy.allergy_id == Allergy.id)
        .filter(HealthProfileAllergy.health_profile_id == profile.id, ProductIngredient.product_id.in_(ids))
        .distinct()
        .all()
    )
    illness_rows = (
        db.query(ProductIngredient.product_id, Illness.name)
        .join(IllnessIngredientInteraction, IllnessIngredientInteraction.ingredient_id == ProductIngredient.ingredient_id)
        .join(Illness, Illness.id == IllnessIngredientInteraction.illness_id)
        .join(HealthProfileIllness, HealthProfileIllness.illness_id == Illness.id)
        .filter(HealthProfileIllness.health_profile_id == profile.id, ProductIngredient.product_id.in_(ids))
        .distinct()
        .all()
    )

    for product_id, name in allergy_rows:
        if name:
            result[product_id]["allergies"].append(name)
    for product_id, name in illness_rows:
        if name:
            result[product_id]["illnesses"].append(name)
    for entry in result.values():
        entry["allergies"].sort()
        entry["illnesses"].sort()
    return result


def product_interactions(db: Session, product_a_id: int, product_b_id: int) -> List[dict]:
    """Known ingredient-ingredient interactions between two products."""
    a_ids = {r[0] for r in db.query(ProductIngredient.ingredient_id).filter(ProductIngredient.product_id == product_a_id)}
    b_ids = {r[0] for r in db.query(ProductIngredient.ingredient_id).filter(ProductIngredient.product_id == product_b_id)}
    if not a_ids or not b_ids:
        return []

    rows = db.query(IngredientInteraction).filter(
        ((IngredientInteraction.ingredient_a_id.in_(a_ids)) & (IngredientInteraction.ingredient_b_id.in_(b_ids)))
        | ((IngredientInteraction.ingredient_a_id.in_(b_ids)) & (IngredientInteraction.ingredient_b_id.in_(a_ids)))
    ).all()

    names = {i.id: i.name for i in db.query(Ingredient).filter(Ingredient.id.in_(a_ids | b_ids))}
    return [
        {
            "interaction_id": r.id,
            "ingredient_a": names.get(r.ingredient_a_id),
            "ingredient_b": names.get(r.ingredient_b_id),
            "interaction_type": r.interaction_type,
            "description": r.description,
        }
        for r in rows
    ]


@dataclass
class ProfileEntryResult:
    ok: bool
    reason: str = "OK"
    entry_id: Optional[int] = None


def _severity_ok(db: Session, severity_id: Optional[int]) -> bool:
    return severity_id is None or db.query(Severity.id).filter(Severity.id == severity_id).first() is not None


def list_profile_allergies(db: Session, user_id: int) -> List[dict]:
    profile = db.query(HealthProfile).filter(HealthProfile.user_id == user_id).first()
    if not profile:
        return []
    rows = db.query(HealthProfileAllergy).filter(HealthProfileAllergy.health_profile_id == profile.id).all()
    return [
        {"id": r.id, "allergy_id": r.allergy_id, "allergy_name": r.allergy.name,
         "severity_id": r.severity_id, "severity_name": r.severity.name if r.severity else None}
        for r in rows
    ]


def list_profile_illnesses(db: Session, user_id: int) -> List[dict]:
    profile = db.query(HealthProfile).filter(HealthProfile.user_id == user_id).first()
    if not profile:
        return []
    rows = db.query(HealthProfileIllness).filter(HealthProfileIllness.health_profile_id == profile.id).all()
    return [
        {"id": r.id, "illness_id": r.illness_id, "illness_name": r.illness.name,
         "severity_id": r.severity_id, "severity_name": r.severity.name if r.severity else None}
        for r in rows
    ]


def add_profile_allergy(db: Session, user_id: int, allergy_id: int, severity_id: Optional[int]) -> ProfileEntryResult:
    if not db.query(Allergy.id).filter(Allergy.id == allergy_id).first():
        return ProfileEntryResult(False, "ALLERGY_NOT_FOUND")
    if not _severity_ok(db, severity_id):
        return ProfileEntryResult(False, "INVALID_SEVERITY")
    profile = get_or_create_profile(db, user_id)
    entry = HealthProfileAllergy(health_profile_id=profile.id, allergy_id=allergy_id, severity_id=severity_id)
    db.add(entry)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return ProfileEntryResult(False, "DUPLICATE")
    return ProfileEntryResult(True, entry_id=entry.id)


def add_profile_illness(db: Session, user_id: int, illness_id: int, severity_id: Optional[int]) -> ProfileEntryResult:
    if not db.query(Illness.id).filter(Illness.id == illness_id).first():
        return ProfileEntryResult(False, "ILLNESS_NOT_FOUND")
    if not _severity_ok(db, severity_id):
        return ProfileEntryResult(False, "INVALID_SEVERITY")
    profile = get_or_create_profile(db, user_id)
    entry = HealthProfileIllness(health_profile_id=profile.id, illness_id=illness_id, severity_id=severity_id)
    db.add(entry)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return ProfileEntryResult(False, "DUPLICATE")
    return ProfileEntryResult(True, entry_id=entry.id)


def _own_entry(db: Session, model, user_id: int, entry_id: int):
    profile = db.query(HealthProfile).filter(HealthProfile.user_id == user_id).first()
    if not profile:
        return None
    return db.query(model).filter(model.id == entry_id, model.health_profile_id == profile.id).first()


def update_profile_entry_severity(db: Session, model, user_id: int, entry_id: int,
                                  severity_id: Optional[int]) -> ProfileEntryResult:
    entry = _own_entry(db, model, user_id, entry_id)
    if not entry:
        return ProfileEntryResult(False, "NOT_FOUND")
    if not _severity_ok(db, severity_id):
        return ProfileEntryResult(False, "INVALID_SEVERITY")
    entry.severity_id = severity_id
    db.commit()
    return ProfileEntryResult(True, entry_id=entry.id)


def delete_profile_entry(db: Session, model, user_id: int, entry_id: int) -> bool:
    entry = _own_entry(db, model, user_id, entry_id)
    if not entry:
        return False
    db.delete(entry)
    db.commit()
    return True


def lookup_names(db: Session, model) -> List[dict]:
    return [{"id": r.id, "name": r.name} for r in db.query(model).order_by(model.name).all()]


def product_exists(db: Session, product_id: int) -> bool:
    return db.query(Product.id).filter(Product.id == product_id).first() is not None
