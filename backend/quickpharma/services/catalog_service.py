"""
Catalog: customer product browsing, staff product / category / supplier
maintenance and the small location lookups the clients need.

Staff mutations write an Add / Edit / Delete Record activity log after the
business commit.
"""
import logging
import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable, List, Optional

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from quickpharma.core.clock import local_today
from quickpharma.models.cart import CartItem, WishlistItem
from quickpharma.models.catalog import Category, Ingredient, Product, ProductIngredient, ProductType, Supplier
from quickpharma.models.inventory import Inventory
from quickpharma.models.location import Address, Branch, City
from quickpharma.models.lookup import OrderStatus, PaymentMethod
from quickpharma.models.order import ProductOrder
from quickpharma.models.prescription import Approval
from quickpharma.models.supplier_order import Reorder, SupplierOrder
from quickpharma.services import log_service
from quickpharma.services.cart_service import stock_status
from quickpharma.services.inventory_service import available_clause, available_stock_map, branch_availability
from quickpharma.services.paging import apply_page, normalize_page, paged
from quickpharma.services.safety_service import incompatibility_map

logger = logging.getLogger(__name__)

_ID_PATTERN = re.compile(r"^[0-9]+$")
_SEARCH_PATTERN = re.compile(r"^[A-Za-z0-9 .\-+&/%,]*$")
_PRODUCT_NAME_PATTERN = re.compile(r"^[A-Za-z0-9 .,\-+&/%]+$")
_PERSON_NAME_PATTERN = re.compile(r"^[A-Za-z .\-]+$")
_CONTACT_PATTERN = re.compile(r"^[0-9+ \-]+$")
_ROAD_PATTERN = re.compile(r"^[A-Za-z0-9 ]+$")

PRODUCT_NAME_RULES = (
    "Product name may only contain letters, numbers, spaces, dots, commas, dashes, "
    "plus signs, ampersands (&), slashes (/), and percent signs (%)."
)


@dataclass
class CatalogResult:
    ok: bool
    reason: str = "OK"
    message: str = ""
    record: Any = None


def _fail(reason: str, message: str) -> CatalogResult:
    return CatalogResult(False, reason, message)


def _clean_ids(values: Optional[Iterable[int]]) -> List[int]:
    return sorted({v for v in (values or []) if v and v > 0})


# ------------------------------------------------------------------------------
# Lookups
# ------------------------------------------------------------------------------

def list_cities(db: Session) -> List[dict]:
    return [
        {"city_id": c.id, "city_name": c.name, "branch_id": c.branch_id}
        for c in db.query(City).order_by(City.name).all()
    ]


def list_branches(db: Session) -> List[dict]:
    return [
        {"branch_id": b.id, "branch_name": b.city_name, "address_id": b.address_id}
        for b in db.query(Branch).order_by(Branch.id).all()
    ]


def list_order_statuses(db: Session) -> List[dict]:
    return [{"id": s.id, "name": s.name} for s in db.query(OrderStatus).order_by(OrderStatus.id).all()]


def list_payment_methods(db: Session) -> List[dict]:
    return [{"id": m.id, "name": m.name} for m in db.query(PaymentMethod).order_by(PaymentMethod.id).all()]


def list_ingredients(db: Session) -> List[dict]:
    return [{"id": i.id, "name": i.name} for i in db.query(Ingredient).order_by(Ingredient.name).all()]


# ------------------------------------------------------------------------------
# Customer browsing
# ------------------------------------------------------------------------------

def _product_summary(p: Product) -> dict:
    return {
        "product_id": p.id,
        "product_name": p.name,
        "product_price": float(p.price or 0),
        "is_controlled": bool(p.is_controlled),
        "requires_prescription": bool(p.requires_prescription),
        "category_id": p.category_id,
        "category_name": p.category.name if p.category else None,
        "product_type_id": p.product_type_id,
        "product_type_name": p.product_type.name if p.product_type else None,
        "supplier_id": p.supplier_id,
        "supplier_name": p.supplier.name if p.supplier else None,
    }


def _search_clause(term: str):
    if _ID_PATTERN.match(term):
        return Product.id == int(term)
    lower = f"{term.lower()}%"
    return or_(
        func.lower(Product.name).like(lower),
        Product.category.has(func.lower(Category.name).like(lower)),
        Product.supplier.has(func.lower(Supplier.name).like(lower)),
    )


def list_external_products(
    db: Session,
    page_number: int = 1,
    page_size: int = 12,
    search: Optional[str] = None,
    category_ids: Optional[Iterable[int]] = None,
    supplier_ids: Optional[Iterable[int]] = None,
    product_type_ids: Optional[Iterable[int]] = None,
    branch_ids: Optional[Iterable[int]] = None,
    min_price: Optional[Decimal] = None,
    max_price: Optional[Decimal] = None,
    sort_by: Optional[str] = "price-asc",
    user_id: Optional[int] = None,
) -> dict:
    """
    Customer catalog page.

    Search matches a product id (digits) or a name / category / supplier
    prefix. branch_ids narrows to products with available stock in one of
    those branches; availability is otherwise summed over every branch.
    user_id adds wishlist flags and health profile conflicts.
    """
    page_number, page_size = normalize_page(page_number, page_size, default_size=12)
    term = (search or "").strip()
    if term and not _SEARCH_PATTERN.match(term):
        return paged([], 0, page_number, page_size)

    q = db.query(Product)
    if term:
        q = q.filter(_search_clause(term))

    categories = _clean_ids(category_ids)
    suppliers = _clean_ids(supplier_ids)
    types = _clean_ids(product_type_ids)
    branches = _clean_ids(branch_ids)
    if categories:
        q = q.filter(Product.category_id.in_(categories))
    if suppliers:
        q = q.filter(Product.supplier_id.in_(suppliers))
    if types:
        q = q.filter(Product.product_type_id.in_(types))
    if min_price is not None:
        q = q.filter(Product.price >= min_price)
    if max_price is not None:
        q = q.filter(Product.price <= max_price)
    if branches:
        stocked = (
            db.query(Inventory.product_id)
            .filter(Inventory.branch_id.in_(branches))
            .filter(available_clause(local_today()))
        )
        q = q.filter(Product.id.in_(stocked))

    sort_key = (sort_by or "").strip().lower()
    order = {
        "price-asc": (Product.price.asc(), Product.id),
        "price-desc": (Product.price.desc(), Product.id),
        "name-asc": (Product.name.asc(), Product.id),
        "name-desc": (Product.name.desc(), Product.id),
    }.get(sort_key, (Product.id,))

    total = q.count()
    rows = apply_page(q.order_by(*order), page_number, page_size).all()

    ids = [p.id for p in rows]
    if branches:
        per_branch = [available_stock_map(db, b, ids) for b in branches]
        stock = {pid: sum(m.get(pid, 0) for m in per_branch) for pid in ids}
    else:
        stock = available_stock_map(db, None, ids)

    wishlist = set()
    conflicts = {}
    if user_id:
        wishlist = {
            pid for (pid,) in db.query(WishlistItem.product_id)
            .filter(WishlistItem.user_id == user_id, WishlistItem.product_id.in_(ids or [0]))
            .all()
        }
        conflicts = incompatibility_map(db, user_id, ids)

    items = []
    for p in rows:
        available = stock.get(p.id, 0)
        item = _product_summary(p)
        item.update({
            "available_quantity": available,
            "stock_status": stock_status(available),
            "is_in_wishlist": p.id in wishlist,
            "incompatibilities": conflicts.get(p.id, {"allergies": [], "illnesses": []}),
        })
        items.append(item)
    return paged(items, total, page_number, page_size)


def _ingredient_names(db: Session, product_id: int) -> List[str]:
    rows = (
        db.query(Ingredient.name)
        .join(ProductIngredient, ProductIngredient.ingredient_id == Ingredient.id)
        .filter(ProductIngredient.product_id == product_id)
        .order_by(Ingredient.name)
        .all()
    )
    return [name for (name,) in rows]


def get_external_product(db: Session, product_id: int, user_id: Optional[int] = None) -> Optional[dict]:
    product = get_product(db, product_id)
    if not product:
        return None

    available = available_stock_map(db, None, [product.id]).get(product.id, 0)
    data = _product_summary(product)
    data.update({
        "product_description": product.description,
        "has_image": product.image is not None,
        "ingredients": _ingredient_names(db, product.id),
        "available_quantity": available,
        "stock_status": stock_status(available),
        "is_in_wishlist": False,
        "incompatibilities": {"allergies": [], "illnesses": []},
    })
    if user_id:
        data["is_in_wishlist"] = db.query(WishlistItem.id).filter(
            WishlistItem.user_id == user_id, WishlistItem.product_id == product.id,
        ).first() is not None
        data["incompatibilities"] = incompatibility_map(db, user_id, [product.id]).get(
            product.id, {"allergies": [], "illnesses": []},
        )
    return data


def product_availability(db: Session, product_id: int) -> Optional[dict]:
    product = get_product(db, product_id)
    if not product:
        return None
    branches = branch_availability(db, product.id)
    return {
        "product_id": product.id,
        "product_name": product.name,
        "total_available": sum(b["available_quantity"] for b in branches),
        "branches": branches,
    }


# ------------------------------------------------------------------------------
# Staff products
# ------------------------------------------------------------------------------

def get_product(db: Session, product_id: int) -> Optional[Product]:
    return db.query(Product).filter(Product.id == product_id).first()


def inventory_count(db: Session, product_id: int) -> int:
    return db.query(func.count(Inventory.id)).filter(Inventory.product_id == product_id).scalar() or 0


def product_name_exists(db: Session, name: str, exclude_id: Optional[int] = None) -> bool:
    q = db.query(Product.id).filter(func.lower(Product.name) == (name or "").strip().lower())
    if exclude_id:
        q = q.filter(Product.id != exclude_id)
    return q.first() is not None


def list_products(
    db: Session,
    page_number: int = 1,
    page_size: int = 10,
    search: Optional[str] = None,
    supplier_id: Optional[int] = None,
    category_id: Optional[int] = None,
) -> dict:
    page_number, page_size = normalize_page(page_number, page_size)
    term = (search or "").strip()
    if term and not _SEARCH_PATTERN.match(term):
        return paged([], 0, page_number, page_size)

    q = db.query(Product)
    if term:
        q = q.filter(_search_clause(term))
    if supplier_id:
        q = q.filter(Product.supplier_id == supplier_id)
    if category_id:
        q = q.filter(Product.category_id == category_id)

    total = q.count()
    rows = apply_page(q.order_by(Product.id), page_number, page_size).all()
    counts = dict(
        db.query(Inventory.product_id, func.count(Inventory.id))
        .filter(Inventory.product_id.in_([p.id for p in rows] or [0]))
        .group_by(Inventory.product_id)
        .all()
    )
    items = []
    for p in rows:
        item = _product_summary(p)
        item["inventory_count"] = counts.get(p.id, 0)
        items.append(item)
    return paged(items, total, page_number, page_size)


def product_details(db: Session, product: Product) -> dict:
    data = _product_summary(product)
    data.update({
        "product_description": product.description,
        "has_image": product.image is not None,
        "ingredient_ids": [
            iid for (iid,) in db.query(ProductIngredient.ingredient_id)
            .filter(ProductIngredient.product_id == product.id)
            .order_by(ProductIngredient.ingredient_id)
            .all()
        ],
        "ingredients": _ingredient_names(db, product.id),
        "inventory_count": inventory_count(db, product.id),
    })
    return data


@dataclass
class ProductInput:
    name: Optional[str]
    description: Optional[str]
    price: Optional[Decimal]
    supplier_id: Optional[int]
    category_id: Optional[int]
    product_type_id: Optional[int]
    is_controlled: bool = False
    requires_prescription: bool = False
    ingredient_ids: List[int] = field(default_factory=list)
    image: Optional[bytes] = None


def _validate_product(db: Session, data: ProductInput, exclude_id: Optional[int] = None) -> Optional[CatalogResult]:
    name = (data.name or "").strip()
    if not name:
        return _fail("NAME_REQUIRED", "Product name is required.")
    if len(name) < 3:
        return _fail("NAME_TOO_SHORT", "Product name must be at least 3 characters.")
    if not _PRODUCT_NAME_PATTERN.match(name):
        return _fail("INVALID_NAME", PRODUCT_NAME_RULES)
    if product_name_exists(db, name, exclude_id):
        return _fail("DUPLICATE_NAME", "A product with this name already exists in the system.")

    description = (data.description or "").strip()
    if not description:
        return _fail("DESCRIPTION_REQUIRED", "Product description is required.")
    if len(description) < 3:
        return _fail("DESCRIPTION_TOO_SHORT", "Product description must be at least 3 characters.")

    if not data.supplier_id or not db.query(Supplier.id).filter(Supplier.id == data.supplier_id).first():
        return _fail("INVALID_SUPPLIER", "Valid supplier must be selected.")
    if not data.category_id or not db.query(Category.id).filter(Category.id == data.category_id).first():
        return _fail("INVALID_CATEGORY", "Valid category must be selected.")
    if data.product_type_id:
        ptype = db.query(ProductType).filter(ProductType.id == data.product_type_id).first()
        if not ptype or ptype.category_id != data.category_id:
            return _fail("INVALID_TYPE", "Valid product type must be selected.")
    if data.price is None or data.price <= 0:
        return _fail("INVALID_PRICE", "Product price must be greater than 0.")

    if any(i is not None and i <= 0 for i in data.ingredient_ids):
        return _fail("INVALID_INGREDIENT", "Invalid ingredient ID detected.")
    ingredient_ids = _clean_ids(data.ingredient_ids)
    if ingredient_ids:
        found = db.query(func.count(Ingredient.id)).filter(Ingredient.id.in_(ingredient_ids)).scalar()
        if found != len(ingredient_ids):
            return _fail("INVALID_INGREDIENT", "Invalid ingredient ID detected.")
    return None


def _set_ingredients(db: Session, product_id: int, ingredient_ids: Iterable[int]) -> None:
    db.query(ProductIngredient).filter(ProductIngredient.product_id == product_id).delete(synchronize_session=False)
    for iid in _clean_ids(ingredient_ids):
        db.add(ProductIngredient(product_id=product_id, ingredient_id=iid))


def create_product(db: Session, user_id: int, data: ProductInput) -> CatalogResult:
    failure = _validate_product(db, data)
    if failure:
        return failure

    try:
        product = Product(
            name=data.name.strip(),
            description=data.description.strip(),
            price=data.price,
            is_controlled=bool(data.is_controlled),
            requires_prescription=bool(data.requires_prescription),
            supplier_id=data.supplier_id,
            category_id=data.category_id,
            product_type_id=data.product_type_id or None,
            image=data.image or None,
        )
        db.add(product)
        db.flush()
        _set_ingredients(db, product.id, data.ingredient_ids)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(product)
    log_service.create_add_record_log(
        db, user_id, "Product", product.id,
        f"Product: {product.name}, Price: BHD {product.price:.3f}",
    )
    logger.info(f"Product #{product.id} '{product.name}' created by user {user_id}")
    return CatalogResult(True, record=product)


def update_product(db: Session, user_id: int, product: Product, data: ProductInput,
                   remove_image: bool = False) -> CatalogResult:
    failure = _validate_product(db, data, exclude_id=product.id)
    if failure:
        return failure

    changes = []
    if product.name != data.name.strip():
        changes.append(f"Name: {product.name} -> {data.name.strip()}")
    if Decimal(str(product.price or 0)) != Decimal(str(data.price)):
        changes.append(f"Price: {float(product.price or 0):.3f} -> {float(data.price):.3f}")

    try:
        product.name = data.name.strip()
        product.description = data.description.strip()
        product.price = data.price
        product.is_controlled = bool(data.is_controlled)
        product.requires_prescription = bool(data.requires_prescription)
        product.supplier_id = data.supplier_id
        product.category_id = data.category_id
        product.product_type_id = data.product_type_id or None
        if data.image:
            product.image = data.image
        elif remove_image:
            product.image = None
        _set_ingredients(db, product.id, data.ingredient_ids)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(product)
    log_service.create_edit_record_log(db, user_id, "Product", product.id, "; ".join(changes) or None)
    return CatalogResult(True, record=product)


PRODUCT_REFERENCES = (
    (ProductOrder, "customer orders"),
    (Approval, "prescription approvals"),
    (SupplierOrder, "supplier orders"),
    (Reorder, "reorder rules"),
)


def delete_product(db: Session, user_id: int, product: Product) -> CatalogResult:
    """
    Refused while inventory batches, order lines, approvals, supplier orders
    or reorder rules reference the product. Cart and wishlist entries go with it.
    """
    if inventory_count(db, product.id) > 0:
        return _fail("HAS_INVENTORY", "Product cannot be deleted while inventory records exist.")
    for model, label in PRODUCT_REFERENCES:
        if db.query(model.id).filter(model.product_id == product.id).first():
            return _fail("IN_USE", f"Product cannot be deleted while {label} reference it.")

    details = (
        f"Product: {product.name}, Price: BHD {float(product.price or 0):.3f}, "
        f"Supplier: {product.supplier.name if product.supplier else 'Unknown'}, "
        f"Category: {product.category.name if product.category else 'Unknown'}, "
        f"Ingredients: [{', '.join(_ingredient_names(db, product.id))}]"
    )
    product_id = product.id
    try:
        db.query(CartItem).filter(CartItem.product_id == product_id).delete(synchronize_session=False)
        db.query(WishlistItem).filter(WishlistItem.product_id == product_id).delete(synchronize_session=False)
        db.query(ProductIngredient).filter(ProductIngredient.product_id == product_id).delete(
            synchronize_session=False
        )
        db.delete(product)
        db.commit()
    except Exception:
        db.rollback()
        raise
    log_service.create_delete_record_log(db, user_id, "Product", product_id, details)
    return CatalogResult(True)


# ------------------------------------------------------------------------------
# Categories and product types
# ------------------------------------------------------------------------------

def category_to_dict(c: Category, product_count: int = 0) -> dict:
    return {
        "category_id": c.id,
        "category_name": c.name,
        "has_image": c.image is not None,
        "product_count": product_count,
    }


def list_categories(db: Session, page_number: int = 1, page_size: int = 10, search: Optional[str] = None) -> dict:
    page_number, page_size = normalize_page(page_number, page_size)
    q = db.query(Category)
    term = (search or "").strip()
    if term:
        q = q.filter(func.lower(Category.name).like(f"{term.lower()}%"))

    total = q.count()
    rows = apply_page(q.order_by(Category.name, Category.id), page_number, page_size).all()
    counts = dict(
        db.query(Product.category_id, func.count(Product.id))
        .filter(Product.category_id.in_([c.id for c in rows] or [0]))
        .group_by(Product.category_id)
        .all()
    )
    return paged([category_to_dict(c, counts.get(c.id, 0)) for c in rows], total, page_number, page_size)


def get_category(db: Session, category_id: int) -> Optional[Category]:
    return db.query(Category).filter(Category.id == category_id).first()


def create_category(db: Session, user_id: int, name: Optional[str], image: Optional[bytes] = None) -> CatalogResult:
    name = (name or "").strip()
    if not name:
        return _fail("NAME_REQUIRED", "Category name is required.")
    category = Category(name=name, image=image or None)
    db.add(category)
    db.commit()
    db.refresh(category)
    log_service.create_add_record_log(db, user_id, "Category", category.id, f"Category: {name}")
    return CatalogResult(True, record=category)


def update_category(db: Session, user_id: int, category: Category, name: Optional[str],
                    image: Optional[bytes] = None) -> CatalogResult:
    name = (name or "").strip()
    if not name:
        return _fail("NAME_REQUIRED", "Category name is required.")
    old_name = category.name
    category.name = name
    if image:
        category.image = image
    db.commit()
    log_service.create_edit_record_log(db, user_id, "Category", category.id, f"Name: {old_name} -> {name}")
    return CatalogResult(True, record=category)


def delete_category(db: Session, user_id: int, category: Category) -> CatalogResult:
    if db.query(Product.id).filter(Product.category_id == category.id).first():
        return _fail("IN_USE", "Category cannot be deleted while products use it.")
    category_id, name = category.id, category.name
    db.delete(category)
    db.commit()
    log_service.create_delete_record_log(db, user_id, "Category", category_id, f"Category: {name}")
    return CatalogResult(True)


def list_product_types(db: Session, category_id: int, page_number: int = 1, page_size: int = 10) -> dict:
    page_number, page_size = normalize_page(page_number, page_size)
    q = db.query(ProductType).filter(ProductType.category_id == category_id)
    total = q.count()
    rows = apply_page(q.order_by(ProductType.name, ProductType.id), page_number, page_size).all()
    items = [{"product_type_id": t.id, "product_type_name": t.name, "category_id": t.category_id} for t in rows]
    return paged(items, total, page_number, page_size)


def add_product_type(db: Session, user_id: int, category: Category, name: Optional[str]) -> CatalogResult:
    name = (name or "").strip()
    if not name:
        return _fail("NAME_REQUIRED", "Type name is required")
    ptype = ProductType(name=name, category_id=category.id)
    db.add(ptype)
    db.commit()
    db.refresh(ptype)
    log_service.create_add_record_log(db, user_id, "ProductType", ptype.id, f"Type: {name} ({category.name})")
    return CatalogResult(True, record=ptype)


def delete_product_type(db: Session, user_id: int, type_id: int) -> CatalogResult:
    ptype = db.query(ProductType).filter(ProductType.id == type_id).first()
    if not ptype:
        return _fail("NOT_FOUND", "Type not found.")
    if db.query(Product.id).filter(Product.product_type_id == type_id).first():
        return _fail("IN_USE", "Type cannot be deleted while products use it.")
    name = ptype.name
    db.delete(ptype)
    db.commit()
    log_service.create_delete_record_log(db, user_id, "ProductType", type_id, f"Type: {name}")
    return CatalogResult(True)


# ------------------------------------------------------------------------------
# Suppliers
# ------------------------------------------------------------------------------

def supplier_to_dict(s: Supplier, address: Optional[Address] = None) -> dict:
    return {
        "supplier_id": s.id,
        "supplier_name": s.name,
        "representative": s.representative,
        "contact": s.contact,
        "email": s.email,
        "address": {
            "address_id": address.id,
            "city_id": address.city_id,
            "city_name": address.city.name if address.city else None,
            "block": address.block,
            "road": address.road,
            "building_floor": address.building_floor,
        } if address else None,
    }


def _supplier_address(db: Session, s: Supplier) -> Optional[Address]:
    if not s.address_id:
        return None
    return db.query(Address).filter(Address.id == s.address_id).first()


def list_suppliers(db: Session, page_number: int = 1, page_size: int = 10, search: Optional[str] = None) -> dict:
    page_number, page_size = normalize_page(page_number, page_size)
    q = db.query(Supplier)
    term = (search or "").strip()
    if term:
        if term.isdigit():
            q = q.filter(Supplier.id == int(term))
        elif _PERSON_NAME_PATTERN.match(term):
            q = q.filter(func.lower(Supplier.name).like(f"{term.lower()}%"))
        else:
            return paged([], 0, page_number, page_size)

    total = q.count()
    rows = apply_page(q.order_by(Supplier.id), page_number, page_size).all()
    return paged([supplier_to_dict(s, _supplier_address(db, s)) for s in rows], total, page_number, page_size)


def get_supplier(db: Session, supplier_id: int) -> Optional[Supplier]:
    return db.query(Supplier).filter(Supplier.id == supplier_id).first()


def supplier_details(db: Session, s: Supplier) -> dict:
    return supplier_to_dict(s, _supplier_address(db, s))


@dataclass
class SupplierInput:
    name: Optional[str]
    representative: Optional[str]
    contact: Optional[str]
    email: Optional[str]
    city_id: Optional[int]
    block: Optional[str]
    road: Optional[str]
    building_floor: Optional[str]


def _validate_supplier(db: Session, data: SupplierInput) -> Optional[CatalogResult]:
    name = (data.name or "").strip()
    if not name:
        return _fail("NAME_REQUIRED", "Supplier name is required.")
    if len(name) < 3:
        return _fail("NAME_TOO_SHORT", "Supplier name must be at least 3 characters.")
    if not _PERSON_NAME_PATTERN.match(name):
        return _fail("INVALID_NAME", "Supplier name can only contain letters, spaces, dots (.), and dashes (-).")

    rep = (data.representative or "").strip()
    if not rep:
        return _fail("REPRESENTATIVE_REQUIRED", "Representative name is required.")
    if len(rep) < 3:
        return _fail("REPRESENTATIVE_TOO_SHORT", "Representative name must be at least 3 characters.")
    if not _PERSON_NAME_PATTERN.match(rep):
        return _fail(
            "INVALID_REPRESENTATIVE",
            "Representative name can only contain letters, spaces, dots (.), and dashes (-).",
        )

    contact = (data.contact or "").strip()
    if not contact:
        return _fail("CONTACT_REQUIRED", "Contact number is required.")
    if len(contact) < 6:
        return _fail("CONTACT_TOO_SHORT", "Contact number must be at least 6 characters.")
    if not _CONTACT_PATTERN.match(contact):
        return _fail("INVALID_CONTACT", "Contact number can only contain numbers, +, spaces, and dash (-).")

    email = (data.email or "").strip()
    if not email:
        return _fail("EMAIL_REQUIRED", "Email is required.")
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        return _fail("INVALID_EMAIL", "Email must be valid (e.g., user@example.com).")

    if not data.city_id:
        return _fail("CITY_REQUIRED", "City is required.")
    block = (data.block or "").strip()
    if not block:
        return _fail("BLOCK_REQUIRED", "Block is required.")
    if not block.isdigit():
        return _fail("INVALID_BLOCK", "Block must contain numbers only.")
    road = (data.road or "").strip()
    if not road:
        return _fail("ROAD_REQUIRED", "Road is required.")
    if not _ROAD_PATTERN.match(road):
        return _fail("INVALID_ROAD", "Road cannot contain special characters like @, #, $, *, etc.")
    building = (data.building_floor or "").strip()
    if not building:
        return _fail("BUILDING_REQUIRED", "Building is required.")
    if not building.isdigit():
        return _fail("INVALID_BUILDING", "Building must contain numbers only.")
    if not db.query(City.id).filter(City.id == data.city_id).first():
        return _fail("INVALID_CITY", "Invalid city selected.")
    return None


def create_supplier(db: Session, user_id: int, data: SupplierInput) -> CatalogResult:
    failure = _validate_supplier(db, data)
    if failure:
        return failure

    try:
        address = Address(
            city_id=data.city_id,
            block=data.block.strip(),
            road=data.road.strip(),
            building_floor=data.building_floor.strip(),
        )
        db.add(address)
        db.flush()
        supplier = Supplier(
            name=data.name.strip(),
            representative=data.representative.strip(),
            contact=data.contact.strip(),
            email=data.email.strip(),
            address_id=address.id,
        )
        db.add(supplier)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(supplier)
    log_service.create_add_record_log(db, user_id, "Supplier", supplier.id, f"Supplier: {supplier.name}")
    return CatalogResult(True, record=supplier)


def update_supplier(db: Session, user_id: int, supplier: Supplier, data: SupplierInput) -> CatalogResult:
    failure = _validate_supplier(db, data)
    if failure:
        return failure

    try:
        address = _supplier_address(db, supplier)
        if not address:
            address = Address()
            db.add(address)
        address.city_id = data.city_id
        address.block = data.block.strip()
        address.road = data.road.strip()
        address.building_floor = data.building_floor.strip()
        db.flush()

        supplier.name = data.name.strip()
        supplier.representative = data.representative.strip()
        supplier.contact = data.contact.strip()
        supplier.email = data.email.strip()
        supplier.address_id = address.id
        db.commit()
    except Exception:
        db.rollback()
        raise

    log_service.create_edit_record_log(db, user_id, "Supplier", supplier.id, f"Supplier: {supplier.name}")
    return CatalogResult(True, record=supplier)


def delete_supplier(db: Session, user_id: int, supplier: Supplier) -> CatalogResult:
    if db.query(Product.id).filter(Product.supplier_id == supplier.id).first():
        return _fail("IN_USE", "Supplier cannot be deleted while products reference it.")
    if db.query(SupplierOrder.id).filter(SupplierOrder.supplier_id == supplier.id).first():
        return _fail("IN_USE", "Supplier cannot be deleted while supplier orders reference it.")
    if db.query(Reorder.id).filter(Reorder.supplier_id == supplier.id).first():
        return _fail("IN_USE", "Supplier cannot be deleted while reorder rules reference it.")

    supplier_id, name = supplier.id, supplier.name
    address = _supplier_address(db, supplier)
    try:
        db.delete(supplier)
        if address:
            db.flush()
            db.delete(address)
        db.commit()
    except Exception:
        db.rollback()
        raise

    log_service.create_delete_record_log(db, user_id, "Supplier", supplier_id, f"Supplier: {name}")
    return CatalogResult(True)
