"""Customer health profile (allergies, illnesses), its lookups and the staff interaction check."""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from quickpharma.api.deps import get_db, require_customer, require_staff
from quickpharma.core.exceptions import BusinessError
from quickpharma.models.health import Allergy, HealthProfileAllergy, HealthProfileIllness, Illness
from quickpharma.models.lookup import Severity
from quickpharma.models.user import User
from quickpharma.schemas.health import AllergyEntryCreate, IllnessEntryCreate, InteractionCheck, SeverityUpdate
from quickpharma.services import safety_service
from quickpharma.services.safety_service import ProfileEntryResult

router = APIRouter()


def _raise_for(result: ProfileEntryResult) -> None:
    if result.reason in ("NOT_FOUND", "ALLERGY_NOT_FOUND", "ILLNESS_NOT_FOUND"):
        raise BusinessError.not_found("Health profile entry" if result.reason == "NOT_FOUND" else "Lookup value")
    if result.reason == "DUPLICATE":
        raise BusinessError.conflict({"reason": result.reason})
    raise BusinessError.bad_request({"reason": result.reason})


@router.get("/HealthProfileAllergy")
def list_allergies(db: Session = Depends(get_db), current_user: User = Depends(require_customer)):
    return safety_service.list_profile_allergies(db, current_user.id)


@router.post("/HealthProfileAllergy", status_code=status.HTTP_201_CREATED)
def add_allergy(body: AllergyEntryCreate, db: Session = Depends(get_db), current_user: User = Depends(require_customer)):
    result = safety_service.add_profile_allergy(db, current_user.id, body.allergy_id, body.severity_id)
    if not result.ok:
        _raise_for(result)
    return {"id": result.entry_id}


@router.put("/HealthProfileAllergy/{entry_id}")
def update_allergy(
    entry_id: int,
    body: SeverityUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_customer),
):
    result = safety_service.update_profile_entry_severity(
        db, HealthProfileAllergy, current_user.id, entry_id, body.severity_id,
    )
    if not result.ok:
        _raise_for(result)
    return {"updated": True}


@router.delete("/HealthProfileAllergy/{entry_id}")
def delete_allergy(entry_id: int, db: Session = Depends(get_db), current_user: User = Depends(require_customer)):
    if not safety_service.delete_profile_entry(db, HealthProfileAllergy, current_user.id, entry_id):
        raise BusinessError.not_found("Health profile entry")
    return {"deleted": True}


@router.get("/HealthProfileIllness")
def list_illnesses(db: Session = Depends(get_db), current_user: User = Depends(require_customer)):
    return safety_service.list_profile_illnesses(db, current_user.id)


@router.post("/HealthProfileIllness", status_code=status.HTTP_201_CREATED)
def add_illness(body: IllnessEntryCreate, db: Session = Depends(get_db), current_user: User = Depends(require_customer)):
    result = safety_service.add_profile_illness(db, current_user.id, body.illness_id, body.severity_id)
    if not result.ok:
        _raise_for(result)
    return {"id": result.entry_id}


@router.put("/HealthProfileIllness/{entry_id}")
def update_illness(
    entry_id: int,
    body: SeverityUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_customer),
):
    result = safety_service.update_profile_entry_severity(
        db, HealthProfileIllness, current_user.id, entry_id, body.severity_id,
    )
    if not result.ok:
        _raise_for(result)
    return {"updated": True}


@router.delete("/HealthProfileIllness/{entry_id}")
def delete_illness(entry_id: int, db: Session = Depends(get_db), current_user: User = Depends(require_customer)):
    if not safety_service.delete_profile_entry(db, HealthProfileIllness, current_user.id, entry_id):
        raise BusinessError.not_found("Health profile entry")
    return {"deleted": True}


@router.get("/HealthProfileLookup/allergyNames")
def allergy_names(db: Session = Depends(get_db)):
    return safety_service.lookup_names(db, Allergy)


@router.get("/HealthProfileLookup/illnessNames")
def illness_names(db: Session = Depends(get_db)):
    return safety_service.lookup_names(db, Illness)


@router.get("/HealthProfileLookup/severities")
def severities(db: Session = Depends(get_db)):
    return [{"id": s.id, "name": s.name} for s in db.query(Severity).order_by(Severity.id).all()]


@router.post("/SafetyCheck/check-interaction")
def check_interaction(body: InteractionCheck, db: Session = Depends(get_db), current_user: User = Depends(require_staff)):
    for product_id in (body.product_a_id, body.product_b_id):
        if not safety_service.product_exists(db, product_id):
            raise BusinessError.not_found("Product")
    interactions = safety_service.product_interactions(db, body.product_a_id, body.product_b_id)
    return {"has_interaction": bool(interactions), "interactions": interactions}
