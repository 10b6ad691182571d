"""
Sales API Endpoints.

Endpoints for registering, browsing, modifying and cancelling sales.

Failed operations return an ErrorResponse body:
- 404: sale or item not found
- 400: rule violations, or an operation against a cancelled sale
- 409: the sale changed between read and write
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from api.dependencies import get_sale_service
from api.models import (
    CreateSaleRequest,
    ErrorResponse,
    SaleItemRequest,
    SaleItemResponse,
    SaleListResponse,
    SaleResponse,
    UpdateSaleRequest,
    ViolationResponse,
)
from domain.errors import ErrorKind
from domain.result import Err, Result
from services.sale_service import (
    AddItemCommand,
    CancelSaleCommand,
    CreateSaleCommand,
    ListSalesQuery,
    RemoveItemCommand,
    SaleItemInput,
    SaleService,
    UpdateSaleDetailsCommand,
)

router = APIRouter()

STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.DOMAIN_VALIDATION: 400,
    ErrorKind.INVALID_STATE_TRANSITION: 400,
    ErrorKind.CONCURRENCY_CONFLICT: 409,
}

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
}


def unwrap(result: Result):
    """Return the Ok value, or raise the HTTPException matching the Err kind."""
    if isinstance(result, Err):
        body = ErrorResponse(
            kind=result.kind.value,
            message=result.message,
            errors=[ViolationResponse.from_violation(v) for v in result.violations],
        )
        raise HTTPException(
            status_code=STATUS_BY_KIND.get(result.kind, 400),
            detail=body.model_dump(),
        )
    return result.value


@router.post(
    "/sales",
    response_model=SaleResponse,
    status_code=201,
    responses=ERROR_RESPONSES,
    summary="Create Sale",
    description="Register a new sale with its line items. Quantity discounts are applied per item."
)
def create_sale(request: CreateSaleRequest, service: SaleService = Depends(get_sale_service)):
    """
    Create a sale.

    **Discount tiers (per item):**
    - 1 to 3 units: no discount
    - 4 to 9 units: 10%
    - 10 to 20 units: 20%

    More than 20 identical units, or a sale without items, is rejected with 400.
    """
    command = CreateSaleCommand(
        sale_number=request.sale_number,
        sale_date=request.sale_date,
        customer_id=request.customer_id,
        customer_name=request.customer_name,
        branch_id=request.branch_id,
        branch_name=request.branch_name,
        items=[
            SaleItemInput(
                product_id=item.product_id,
                product_name=item.product_name,
                quantity=item.quantity,
                unit_price=item.unit_price,
            )
            for item in request.items
        ],
    )
    return SaleResponse.from_sale(unwrap(service.create_sale(command)))


@router.get(
    "/sales",
    response_model=SaleListResponse,
    responses=ERROR_RESPONSES,
    summary="List Sales",
    description="Page through sales with optional ordering and filtering."
)
def list_sales(
    page_number: int = Query(1, description="Page number, starting at 1"),
    page_size: Optional[int] = Query(None, description="Sales per page, 1 to 100"),
    order_by: Optional[str] = Query(None, description="e.g. 'SaleDate desc, TotalAmount asc'"),
    filter_expr: Optional[str] = Query(None, alias="filter", description="e.g. 'CustomerName=Test*&_minTotalAmount=50'"),
    service: SaleService = Depends(get_sale_service),
):
    """
    List sales.

    **Filter syntax** (segments joined by `&`):
    - `Field=value` exact match, `Field=val*` prefix, `Field=*lue` suffix, `Field=*alu*` contains
    - `_minField=value` / `_maxField=value` inclusive range

    Unrecognized ordering falls back to newest first.
    """
    query = ListSalesQuery(
        page_number=page_number,
        page_size=page_size,
        order_by=order_by,
        filter_expr=filter_expr,
    )
    page = unwrap(service.list_sales(query))
    return SaleListResponse(
        items=[SaleResponse.from_sale(sale) for sale in page.items],
        total_count=page.total_count,
        page_number=page.page_number,
        page_size=page.page_size,
        total_pages=page.total_pages,
    )


@router.get(
    "/sales/{sale_id}",
    response_model=SaleResponse,
    responses=ERROR_RESPONSES,
    summary="Get Sale"
)
def get_sale(sale_id: UUID, service: SaleService = Depends(get_sale_service)):
    return SaleResponse.from_sale(unwrap(service.get_sale(sale_id)))


@router.put(
    "/sales/{sale_id}",
    response_model=SaleResponse,
    responses=ERROR_RESPONSES,
    summary="Update Sale Details",
    description="Change the customer and branch names of an active sale."
)
def update_sale(
    sale_id: UUID,
    request: UpdateSaleRequest,
    service: SaleService = Depends(get_sale_service),
):
    command = UpdateSaleDetailsCommand(
        sale_id=sale_id,
        customer_name=request.customer_name,
        branch_name=request.branch_name,
    )
    return SaleResponse.from_sale(unwrap(service.update_sale_details(command)))


@router.post(
    "/sales/{sale_id}/cancel",
    response_model=SaleResponse,
    responses=ERROR_RESPONSES,
    summary="Cancel Sale",
    description="Cancel a sale and every item still active on it. A sale can be cancelled once."
)
def cancel_sale(sale_id: UUID, service: SaleService = Depends(get_sale_service)):
    return SaleResponse.from_sale(unwrap(service.cancel_sale(CancelSaleCommand(sale_id=sale_id))))


@router.post(
    "/sales/{sale_id}/items",
    response_model=SaleItemResponse,
    status_code=201,
    responses=ERROR_RESPONSES,
    summary="Add Item"
)
def add_item(
    sale_id: UUID,
    request: SaleItemRequest,
    service: SaleService = Depends(get_sale_service),
):
    command = AddItemCommand(
        sale_id=sale_id,
        product_id=request.product_id,
        product_name=request.product_name,
        quantity=request.quantity,
        unit_price=request.unit_price,
    )
    return SaleItemResponse.from_item(unwrap(service.add_item(command)))


@router.get(
    "/sales/{sale_id}/items/{item_id}",
    response_model=SaleItemResponse,
    responses=ERROR_RESPONSES,
    summary="Get Item"
)
def get_item(sale_id: UUID, item_id: UUID, service: SaleService = Depends(get_sale_service)):
    return SaleItemResponse.from_item(unwrap(service.get_item(sale_id, item_id)))


@router.delete(
    "/sales/{sale_id}/items/{item_id}",
    status_code=204,
    responses=ERROR_RESPONSES,
    summary="Remove Item",
    description="Remove an item from an active sale. A sale must keep at least one item."
)
def remove_item(sale_id: UUID, item_id: UUID, service: SaleService = Depends(get_sale_service)):
    unwrap(service.remove_item(RemoveItemCommand(sale_id=sale_id, item_id=item_id)))
    return Response(status_code=204)
