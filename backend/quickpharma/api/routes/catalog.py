"""
Catalog API.

Customers browse /ExternalProducts (anonymous or signed in). Staff maintain
/Products, /Category and /Suppliers; product and category writes are
multipart forms because they carry an optional image.
"""
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile, status
from sqlalchemy.orm import Session

from quickpharma.api.deps import get_db, get_optional_user, require_admin, require_staff
from quickpharma.core.audit import AuditLog
from quickpharma.core.exceptions import BusinessError
from quickpharma.models.user import User
from quickpharma.schemas.catalog import ProductTypeCreate, SupplierBody
from quickpharma.services import catalog_service
from quickpharma.services.catalog_service import CatalogResult, ProductInput, SupplierInput

router = APIRouter()

CONFLICT_REASONS = {"DUPLICATE_NAME", "HAS_INVENTORY", "IN_USE"}


def _raise_for(result: CatalogResult, resource: str) -> None:
    if result.reason == "NOT_FOUND":
        raise BusinessError.not_found(resource)
    if result.reason in CONFLICT_REASONS:
        raise BusinessError.conflict(result.message)
    raise BusinessError.bad_request(result.message)


def _image_media_type(data: bytes) -> str:
    if data.startswith(b"\x89PNG"):
        return "image/png"
    if data.startswith(b"\xff\xd8"):
        return "image/jpeg"
    return "application/octet-stream"


async def _read_image(upload: Optional[UploadFile]) -> Optional[bytes]:
    if upload is None:
        return None
    data = await upload.read()
    return data or None


# ------------------------------------------------------------------------------
# Customer catalog
# ------------------------------------------------------------------------------

@router.get("/ExternalProducts")
def external_products(
    page_number: int = Query(1, alias="pageNumber"),
    page_size: int = Query(12, alias="pageSize"),
    search: Optional[str] = Query(None),
    category_ids: Optional[List[int]] = Query(None, alias="categoryIds"),
    supplier_ids: Optional[List[int]] = Query(None, alias="supplierIds"),
    product_type_ids: Optional[List[int]] = Query(None, alias="productTypeIds"),
    branch_ids: Optional[List[int]] = Query(None, alias="branchIds"),
    min_price: Optional[Decimal] = Query(None, alias="minPrice"),
    max_price: Optional[Decimal] = Query(None, alias="maxPrice"),
    sort_by: Optional[str] = Query("price-asc", alias="sortBy"),
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_user),
):
    return catalog_service.list_external_products(
        db, page_number, page_size, search,
        category_ids, supplier_ids, product_type_ids, branch_ids,
        min_price, max_price, sort_by,
        user_id=current_user.id if current_user else None,
    )


@router.get("/ExternalProducts/{product_id}")
def external_product(
    product_id: int,
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_user),
):
    data = catalog_service.get_external_product(db, product_id, current_user.id if current_user else None)
    if not data:
        raise BusinessError.not_found("Product")
    return data


@router.get("/ExternalProducts/{product_id}/availability")
def external_product_availability(product_id: int, db: Session = Depends(get_db)):
    data = catalog_service.product_availability(db, product_id)
    if not data:
        raise BusinessError.not_found("Product")
    return data


@router.get("/ExternalProducts/{product_id}/image")
def external_product_image(product_id: int, db: Session = Depends(get_db)):
    product = catalog_service.get_product(db, product_id)
    if not product or not product.image:
        raise BusinessError.not_found("Image")
    return Response(content=product.image, media_type=_image_media_type(product.image))


# ------------------------------------------------------------------------------
# Staff products
# ------------------------------------------------------------------------------

@router.get("/Products")
def products(
    page_number: int = Query(1, alias="pageNumber"),
    page_size: int = Query(10, alias="pageSize"),
    search: Optional[str] = Query(None),
    supplier_id: Optional[int] = Query(None, alias="supplierId"),
    category_id: Optional[int] = Query(None, alias="categoryId"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff),
):
    return catalog_service.list_products(db, page_number, page_size, search, supplier_id, category_id)


@router.get("/Products/check-name")
def check_product_name(
    name: str = Query(...),
    exclude_id: Optional[int] = Query(None, alias="excludeId"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff),
):
    return {"exists": catalog_service.product_name_exists(db, name, exclude_id)}


@router.get("/Products/{product_id}")
def product_details(product_id: int, db: Session = Depends(get_db), current_user: User = Depends(require_staff)):
    product = catalog_service.get_product(db, product_id)
    if not product:
        raise BusinessError.not_found("Product")
    return catalog_service.product_details(db, product)


@router.get("/Products/{product_id}/inventory-count")
def product_inventory_count(
    product_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff),
):
    if not catalog_service.get_product(db, product_id):
        raise BusinessError.not_found("Product")
    return {"product_id": product_id, "inventory_count": catalog_service.inventory_count(db, product_id)}


def _product_input(
    name, description, price, supplier_id, category_id, product_type_id,
    is_controlled, requires_prescription, ingredient_ids, image,
) -> ProductInput:
    return ProductInput(
        name=name,
        description=description,
        price=price,
        supplier_id=supplier_id,
        category_id=category_id,
        product_type_id=product_type_id,
        is_controlled=is_controlled,
        requires_prescription=requires_prescription,
        ingredient_ids=ingredient_ids or [],
        image=image,
    )


@router.post("/Products", status_code=status.HTTP_201_CREATED)
async def create_product(
    product_name: Optional[str] = Form(None, alias="productName"),
    product_description: Optional[str] = Form(None, alias="productDescription"),
    product_price: Optional[Decimal] = Form(None, alias="productPrice"),
    supplier_id: Optional[int] = Form(None, alias="supplierId"),
    category_id: Optional[int] = Form(None, alias="categoryId"),
    product_type_id: Optional[int] = Form(None, alias="productTypeId"),
    is_controlled: bool = Form(False, alias="isControlled"),
    requires_prescription: bool = Form(False, alias="requiresPrescription"),
    ingredient_ids: Optional[List[int]] = Form(None, alias="ingredientIds"),
    image: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    data = _product_input(
        product_name, product_description, product_price, supplier_id, category_id, product_type_id,
        is_controlled, requires_prescription, ingredient_ids, await _read_image(image),
    )
    result = catalog_service.create_product(db, current_user.id, data)
    if not result.ok:
        _raise_for(result, "Product")
    AuditLog.log_action("create", "product", result.record.id, current_user)
    return catalog_service.product_details(db, result.record)


@router.put("/Products/{product_id}")
async def update_product(
    product_id: int,
    product_name: Optional[str] = Form(None, alias="productName"),
    product_description: Optional[str] = Form(None, alias="productDescription"),
    product_price: Optional[Decimal] = Form(None, alias="productPrice"),
    supplier_id: Optional[int] = Form(None, alias="supplierId"),
    category_id: Optional[int] = Form(None, alias="categoryId"),
    product_type_id: Optional[int] = Form(None, alias="productTypeId"),
    is_controlled: bool = Form(False, alias="isControlled"),
    requires_prescription: bool = Form(False, alias="requiresPrescription"),
    ingredient_ids: Optional[List[int]] = Form(None, alias="ingredientIds"),
    remove_image: bool = Form(False, alias="removeImage"),
    image: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    product = catalog_service.get_product(db, product_id)
    if not product:
        raise BusinessError.not_found("Product")

    data = _product_input(
        product_name, product_description, product_price, supplier_id, category_id, product_type_id,
        is_controlled, requires_prescription, ingredient_ids, await _read_image(image),
    )
    result = catalog_service.update_product(db, current_user.id, product, data, remove_image=remove_image)
    if not result.ok:
        _raise_for(result, "Product")
    AuditLog.log_action("update", "product", product_id, current_user)
    return catalog_service.product_details(db, result.record)


@router.delete("/Products/{product_id}")
def delete_product(product_id: int, db: Session = Depends(get_db), current_user: User = Depends(require_admin)):
    product = catalog_service.get_product(db, product_id)
    if not product:
        raise BusinessError.not_found("Product")
    result = catalog_service.delete_product(db, current_user.id, product)
    if not result.ok:
        _raise_for(result, "Product")
    AuditLog.log_action("delete", "product", product_id, current_user)
    return {"deleted": True}


# ------------------------------------------------------------------------------
# Categories and product types
# ------------------------------------------------------------------------------

@router.get("/Category")
def categories(
    page_number: int = Query(1, alias="pageNumber"),
    page_size: int = Query(10, alias="pageSize"),
    search: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    return catalog_service.list_categories(db, page_number, page_size, search)


@router.get("/Category/{category_id}")
def category(category_id: int, db: Session = Depends(get_db)):
    found = catalog_service.get_category(db, category_id)
    if not found:
        raise BusinessError.not_found("Category")
    return catalog_service.category_to_dict(found)


@router.get("/Category/{category_id}/image")
def category_image(category_id: int, db: Session = Depends(get_db)):
    found = catalog_service.get_category(db, category_id)
    if not found or not found.image:
        raise BusinessError.not_found("Image")
    return Response(content=found.image, media_type=_image_media_type(found.image))


@router.post("/Category", status_code=status.HTTP_201_CREATED)
async def create_category(
    category_name: Optional[str] = Form(None, alias="categoryName"),
    image: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    result = catalog_service.create_category(db, current_user.id, category_name, await _read_image(image))
    if not result.ok:
        _raise_for(result, "Category")
    return catalog_service.category_to_dict(result.record)


@router.put("/Category/{category_id}")
async def update_category(
    category_id: int,
    category_name: Optional[str] = Form(None, alias="categoryName"),
    image: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    found = catalog_service.get_category(db, category_id)
    if not found:
        raise BusinessError.not_found("Category")
    result = catalog_service.update_category(db, current_user.id, found, category_name, await _read_image(image))
    if not result.ok:
        _raise_for(result, "Category")
    return catalog_service.category_to_dict(result.record)


@router.delete("/Category/{category_id}")
def delete_category(category_id: int, db: Session = Depends(get_db), current_user: User = Depends(require_admin)):
    found = catalog_service.get_category(db, category_id)
    if not found:
        raise BusinessError.not_found("Category")
    result = catalog_service.delete_category(db, current_user.id, found)
    if not result.ok:
        _raise_for(result, "Category")
    return {"deleted": True}


@router.get("/Category/{category_id}/types")
def category_types(
    category_id: int,
    page_number: int = Query(1, alias="pageNumber"),
    page_size: int = Query(10, alias="pageSize"),
    db: Session = Depends(get_db),
):
    if not catalog_service.get_category(db, category_id):
        raise BusinessError.not_found("Category")
    return catalog_service.list_product_types(db, category_id, page_number, page_size)


@router.post("/Category/{category_id}/types", status_code=status.HTTP_201_CREATED)
def add_category_type(
    category_id: int,
    body: ProductTypeCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    found = catalog_service.get_category(db, category_id)
    if not found:
        raise BusinessError.not_found("Category")
    result = catalog_service.add_product_type(db, current_user.id, found, body.product_type_name)
    if not result.ok:
        _raise_for(result, "Type")
    ptype = result.record
    return {"product_type_id": ptype.id, "product_type_name": ptype.name, "category_id": ptype.category_id}


@router.delete("/Category/types/{type_id}")
def delete_category_type(type_id: int, db: Session = Depends(get_db), current_user: User = Depends(require_admin)):
    result = catalog_service.delete_product_type(db, current_user.id, type_id)
    if not result.ok:
        _raise_for(result, "Type")
    return {"deleted": True}


# ------------------------------------------------------------------------------
# Suppliers
# ------------------------------------------------------------------------------

def _supplier_input(body: SupplierBody) -> SupplierInput:
    return SupplierInput(
        name=body.supplier_name,
        representative=body.representative,
        contact=body.contact,
        email=body.email,
        city_id=body.city_id,
        block=body.block,
        road=body.road,
        building_floor=body.building_floor,
    )


@router.get("/Suppliers")
def suppliers(
    page_number: int = Query(1, alias="pageNumber"),
    page_size: int = Query(10, alias="pageSize"),
    search: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff),
):
    return catalog_service.list_suppliers(db, page_number, page_size, search)


@router.get("/Suppliers/{supplier_id}")
def supplier(supplier_id: int, db: Session = Depends(get_db), current_user: User = Depends(require_staff)):
    found = catalog_service.get_supplier(db, supplier_id)
    if not found:
        raise BusinessError.not_found("Supplier")
    return catalog_service.supplier_details(db, found)


@router.post("/Suppliers", status_code=status.HTTP_201_CREATED)
def create_supplier(body: SupplierBody, db: Session = Depends(get_db), current_user: User = Depends(require_admin)):
    result = catalog_service.create_supplier(db, current_user.id, _supplier_input(body))
    if not result.ok:
        _raise_for(result, "Supplier")
    return catalog_service.supplier_details(db, result.record)


@router.put("/Suppliers/{supplier_id}")
def update_supplier(
    supplier_id: int,
    body: SupplierBody,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    found = catalog_service.get_supplier(db, supplier_id)
    if not found:
        raise BusinessError.not_found("Supplier")
    result = catalog_service.update_supplier(db, current_user.id, found, _supplier_input(body))
    if not result.ok:
        _raise_for(result, "Supplier")
    return catalog_service.supplier_details(db, result.record)


@router.delete("/Suppliers/{supplier_id}")
def delete_supplier(supplier_id: int, db: Session = Depends(get_db), current_user: User = Depends(require_admin)):
    found = catalog_service.get_supplier(db, supplier_id)
    if not found:
        raise BusinessError.not_found("Supplier")
    result = catalog_service.delete_supplier(db, current_user.id, found)
    if not result.ok:
        _raise_for(result, "Supplier")
    return {"deleted": True}
