"""Reference data for drop-downs: cities, branches, statuses, payment methods, ingredients."""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from quickpharma.api.deps import get_db
from quickpharma.services import catalog_service

router = APIRouter()


@router.get("/Cities")
def cities(db: Session = Depends(get_db)):
    return catalog_service.list_cities(db)


@router.get("/Branch")
def branches(db: Session = Depends(get_db)):
    return catalog_service.list_branches(db)


@router.get("/OrderStatuses")
def order_statuses(db: Session = Depends(get_db)):
    return catalog_service.list_order_statuses(db)


@router.get("/OrderPaymentMethods")
def payment_methods(db: Session = Depends(get_db)):
    return catalog_service.list_payment_methods(db)


@router.get("/Ingredients")
def ingredients(db: Session = Depends(get_db)):
    return catalog_service.list_ingredients(db)
