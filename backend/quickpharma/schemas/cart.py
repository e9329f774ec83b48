from quickpharma.schemas.common import CamelModel


class CartAdd(CamelModel):
    product_id: int
    quantity: int = 1


class CartUpdate(CamelModel):
    quantity: int


class WishlistAdd(CamelModel):
    product_id: int
