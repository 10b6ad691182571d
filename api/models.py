"""
API Request and Response Models.

Pydantic models for validating API requests and serializing responses.
Business rules (quantity range, minimum price, required fields) are checked
by the sale service so that every violated rule is reported together.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from domain.line_item import LineItem
from domain.sale import Sale
from domain.validation import Violation


# ============================================================================
# Request Models
# ============================================================================

class SaleItemRequest(BaseModel):
    """Line item requested on sale creation or added to an existing sale."""
    product_id: str
    product_name: str
    quantity: int = Field(..., description="Units of the product, 1 to 20")
    unit_price: Decimal = Field(..., description="Price per unit, at least 0.01")

    class Config:
        json_schema_extra = {
            "example": {
                "product_id": "P-100",
                "product_name": "Pilsen 350ml",
                "quantity": 5,
                "unit_price": "10.00"
            }
        }


class CreateSaleRequest(BaseModel):
    """Request to register a new sale."""
    sale_number: str
    sale_date: datetime
    customer_id: str
    customer_name: str
    branch_id: str
    branch_name: str
    items: List[SaleItemRequest] = Field(default_factory=list)

    class Config:
        json_schema_extra = {
            "example": {
                "sale_number": "S-2025-0001",
                "sale_date": "2025-01-01T12:00:00Z",
                "customer_id": "C-1",
                "customer_name": "Test Customer",
                "branch_id": "B-1",
                "branch_name": "Downtown",
                "items": [
                    {
                        "product_id": "P-100",
                        "product_name": "Pilsen 350ml",
                        "quantity": 5,
                        "unit_price": "10.00"
                    }
                ]
            }
        }


class UpdateSaleRequest(BaseModel):
    """Request to change the mutable header fields of a sale."""
    customer_name: str
    branch_name: str


# ============================================================================
# Response Models
# ============================================================================

class SaleItemResponse(BaseModel):
    """Single line item in API response."""
    item_id: UUID
    sale_id: Optional[UUID] = None
    product_id: str
    product_name: str
    quantity: int
    unit_price: Decimal
    discount: Decimal
    total_amount: Decimal
    is_cancelled: bool
    created_at: datetime
    updated_at: Optional[datetime] = None

    @staticmethod
    def from_item(item: LineItem) -> "SaleItemResponse":
        return SaleItemResponse(
            item_id=item.item_id,
            sale_id=item.sale_id,
            product_id=item.product_id,
            product_name=item.product_name,
            quantity=item.quantity,
            unit_price=item.unit_price,
            discount=item.discount,
            total_amount=item.total_amount,
            is_cancelled=item.is_cancelled,
            created_at=item.created_at,
            updated_at=item.updated_at,
        )


class SaleResponse(BaseModel):
    """Sale with its line items."""
    sale_id: UUID
    sale_number: str
    sale_date: datetime
    customer_id: str
    customer_name: str
    branch_id: str
    branch_name: str
    status: str  # "Active" or "Cancelled"
    total_amount: Decimal
    created_at: datetime
    updated_at: Optional[datetime] = None
    version: int
    items: List[SaleItemResponse]

    class Config:
        json_schema_extra = {
            "example": {
                "sale_id": "123e4567-e89b-12d3-a456-426614174000",
                "sale_number": "S-2025-0001",
                "sale_date": "2025-01-01T12:00:00Z",
                "customer_id": "C-1",
                "customer_name": "Test Customer",
                "branch_id": "B-1",
                "branch_name": "Downtown",
                "status": "Active",
                "total_amount": "45.00",
                "created_at": "2025-01-01T12:00:05Z",
                "updated_at": None,
                "version": 0,
                "items": []
            }
        }

    @staticmethod
    def from_sale(sale: Sale) -> "SaleResponse":
        return SaleResponse(
            sale_id=sale.sale_id,
            sale_number=sale.sale_number,
            sale_date=sale.sale_date,
            customer_id=sale.customer_id,
            customer_name=sale.customer_name,
            branch_id=sale.branch_id,
            branch_name=sale.branch_name,
            status=sale.status.value,
            total_amount=sale.total_amount,
            created_at=sale.created_at,
            updated_at=sale.updated_at,
            version=sale.version,
            items=[SaleItemResponse.from_item(item) for item in sale.items],
        )


class SaleListResponse(BaseModel):
    """One page of sales."""
    items: List[SaleResponse]
    total_count: int
    page_number: int
    page_size: int
    total_pages: int


class ViolationResponse(BaseModel):
    """A single violated business rule."""
    rule_id: str
    message: str

    @staticmethod
    def from_violation(violation: Violation) -> "ViolationResponse":
        return ViolationResponse(rule_id=violation.rule_id, message=violation.message)


class ErrorResponse(BaseModel):
    """Error body returned for every failed sale operation."""
    kind: str
    message: str
    errors: List[ViolationResponse] = Field(default_factory=list)

    class Config:
        json_schema_extra = {
            "example": {
                "kind": "domain_validation",
                "message": "One or more domain validation errors occurred.",
                "errors": [
                    {"rule_id": "items.required", "message": "A sale must have at least one item."}
                ]
            }
        }
