from quickpharma.models.lookup import (
    Role, OrderStatus, PrescriptionStatus, PlanStatus, PaymentMethod, LogType,
    SupplierOrderStatus, ReportType, Severity,
)
from quickpharma.models.location import City, Address, Branch
from quickpharma.models.user import User
from quickpharma.models.catalog import (
    Category, ProductType, Supplier, Product, Ingredient, ProductIngredient, IngredientInteraction,
)
from quickpharma.models.inventory import Inventory
from quickpharma.models.cart import CartItem, WishlistItem
from quickpharma.models.order import Slot, Shipping, Payment, Order, ProductOrder
from quickpharma.models.prescription import Prescription, Approval, PrescriptionPlan, PlanEmailJob
from quickpharma.models.health import (
    HealthProfile, Allergy, Illness, HealthProfileAllergy, HealthProfileIllness,
    AllergyIngredientInteraction, IllnessIngredientInteraction,
)
from quickpharma.models.supplier_order import SupplierOrder, Reorder
from quickpharma.models.log import Log
from quickpharma.models.report import Report

__all__ = [
    "Role", "OrderStatus", "PrescriptionStatus", "PlanStatus", "PaymentMethod", "LogType",
    "SupplierOrderStatus", "ReportType", "Severity",
    "City", "Address", "Branch", "User",
    "Category", "ProductType", "Supplier", "Product", "Ingredient", "ProductIngredient",
    "IngredientInteraction", "Inventory", "CartItem", "WishlistItem",
    "Slot", "Shipping", "Payment", "Order", "ProductOrder",
    "Prescription", "Approval", "PrescriptionPlan", "PlanEmailJob",
    "HealthProfile", "Allergy", "Illness", "HealthProfileAllergy", "HealthProfileIllness",
    "AllergyIngredientInteraction", "IllnessIngredientInteraction",
    "SupplierOrder", "Reorder", "Log", "Report",
]
