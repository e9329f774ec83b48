from sqlalchemy import Boolean, Column, ForeignKey, Integer, LargeBinary, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from quickpharma.db.base import Base


class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(128), nullable=False)
    image = Column(LargeBinary, nullable=True)

    product_types = relationship("ProductType", back_populates="category", cascade="all, delete-orphan")


class ProductType(Base):
    __tablename__ = "product_types"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(128), nullable=False)
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="CASCADE"), nullable=False)

    category = relationship("Category", back_populates="product_types")


class Supplier(Base):
    __tablename__ = "suppliers"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    contact = Column(String(64), nullable=True)
    email = Column(String(255), nullable=True)
    representative = Column(String(255), nullable=True)
    address_id = Column(Integer, ForeignKey("addresses.id"), nullable=True)


class Product(Base):
    """
    Catalog product.

    requires_prescription gates checkout (prescribed lines need an approved or
    uploaded prescription); is_controlled adds a dispensation log on approval.
    """
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 3), nullable=False, default=0)
    is_controlled = Column(Boolean, default=False, nullable=False)
    requires_prescription = Column(Boolean, default=False, nullable=False)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=True)
    product_type_id = Column(Integer, ForeignKey("product_types.id"), nullable=True)
    supplier_id = Column(Integer, ForeignKey("suppliers.id"), nullable=True)
    image = Column(LargeBinary, nullable=True)

    category = relationship("Category")
    product_type = relationship("ProductType")
    supplier = relationship("Supplier")


class Ingredient(Base):
    __tablename__ = "ingredients"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)


class ProductIngredient(Base):
    __tablename__ = "product_ingredients"
    __table_args__ = (UniqueConstraint("product_id", "ingredient_id", name="uq_product_ingredient"),)

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    ingredient_id = Column(Integer, ForeignKey("ingredients.id", ondelete="CASCADE"), nullable=False)


class IngredientInteraction(Base):
    """Known interaction between two ingredients (order of A/B is irrelevant)."""
    __tablename__ = "ingredient_interactions"

    id = Column(Integer, primary_key=True)
    ingredient_a_id = Column(Integer, ForeignKey("ingredients.id", ondelete="CASCADE"), nullable=False)
    ingredient_b_id = Column(Integer, ForeignKey("ingredients.id", ondelete="CASCADE"), nullable=False)
    interaction_type = Column(String(64), nullable=True)
    description = Column(Text, nullable=True)
