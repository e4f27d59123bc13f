"""
The checkout cart.

The browser keeps the cart in local storage; this is the same model on the
server side, used to turn a submitted cart into an order snapshot. A catalog item appears at most once and is charged at its
discounted price when it has one.
"""
import os
from typing import List, Optional, Literal
from urllib.parse import urlencode, quote

from pydantic import BaseModel, Field

from schemas import OrderTestLine, OrderPackageLine

UPI_PAYEE_ADDRESS = os.getenv("UPI_PAYEE_ADDRESS", "lab@upi")
UPI_PAYEE_NAME = os.getenv("UPI_PAYEE_NAME", "PravinLab")


class CartItem(BaseModel):
    id: str
    type: Literal["test", "package"] = "test"
    name: str
    price: float = Field(..., ge=0)
    original_price: Optional[float] = Field(None, ge=0)


class Cart(BaseModel):
    items: List[CartItem] = Field(default_factory=list)

    def contains(self, item_id: str, type: str) -> bool:
        return any(i.id == item_id and i.type == type for i in self.items)

    def add(self, item: CartItem) -> bool:
        """Add an item; False when it is already in the cart."""
        if self.contains(item.id, item.type):
            return False
        self.items.append(item)
        return True

    def test_lines(self) -> List[OrderTestLine]:
        return [OrderTestLine(test_id=i.id, name=i.name, price=i.original_price or i.price, discount_price=i.price)
                for i in self.items if i.type == "test"]

    def package_lines(self) -> List[OrderPackageLine]:
        return [OrderPackageLine(package_id=i.id, name=i.name, price=i.original_price or i.price, discount_price=i.price)
                for i in self.items if i.type == "package"]


def line_price(line) -> float:
    """What a snapshot line is charged at."""
    if line.discount_price is not None:
        return line.discount_price
    return line.price


def snapshot_subtotal(tests: List[OrderTestLine], packages: List[OrderPackageLine]) -> float:
    return round(sum(line_price(l) for l in list(tests) + list(packages)), 2)


def upi_payment_uri(amount: float, note: str = "Lab Test Payment") -> str:
    """upi:// deep link the checkout page renders as a QR code."""
    query = urlencode({
        "pa": UPI_PAYEE_ADDRESS,
        "pn": UPI_PAYEE_NAME,
        "am": f"{amount:.2f}",
        "cu": "INR",
        "tn": note,
    }, quote_via=quote)
    return f"upi://pay?{query}"
