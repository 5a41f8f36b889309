import logging
from fastapi import APIRouter, Query, status
from app.schemas.response import SuccessResponse
from app.schemas.customer import (
    CustomerEnquiryRequest,
    CustomerRequest,
    CustomerStatusUpdate,
)
from app.models.customer import CustomerStatus
from app.services import customer_service

router = APIRouter()
log = logging.getLogger("uvicorn")

# Domain errors (not found, duplicates, rule violations) are mapped to HTTP
# responses by the handlers registered in app.core.exception_handlers.


@router.post("/enquiry", status_code=status.HTTP_201_CREATED, response_model=SuccessResponse)
async def create_enquiry_endpoint(request_data: CustomerEnquiryRequest):
    """Step 1: registers a customer enquiry (pre-KYC)."""
    customer = await customer_service.create_customer_enquiry(request_data)
    log.info(f"Customer enquiry {customer.customer_uuid} registered.")
    return SuccessResponse(data=customer.model_dump(mode="json"))


@router.post("/", status_code=status.HTTP_201_CREATED, response_model=SuccessResponse)
async def create_customer_endpoint(request_data: CustomerRequest):
    """Full registration including address and employment details."""
    customer = await customer_service.create_customer(request_data)
    log.info(f"Customer {customer.customer_uuid} created.")
    return SuccessResponse(data=customer.model_dump(mode="json"))


@router.get("/", response_model=SuccessResponse)
async def list_customers_endpoint(page: int = Query(0, ge=0), size: int = Query(20, ge=1, le=100)):
    """All customers, newest first."""
    result = await customer_service.list_customers(page, size)
    return SuccessResponse(data=result.model_dump(mode="json"))


@router.get("/search", response_model=SuccessResponse)
async def search_customers_endpoint(
    q: str = Query(..., min_length=1, description="Matches name, PAN or email."),
    page: int = Query(0, ge=0),
    size: int = Query(20, ge=1, le=100),
):
    result = await customer_service.search_customers(q, page, size)
    return SuccessResponse(data=result.model_dump(mode="json"))


@router.get("/status/{customer_status}", response_model=SuccessResponse)
async def list_by_status_endpoint(
    customer_status: CustomerStatus,
    page: int = Query(0, ge=0),
    size: int = Query(20, ge=1, le=100),
):
    result = await customer_service.list_customers_by_status(customer_status, page, size)
    return SuccessResponse(data=result.model_dump(mode="json"))


@router.get("/uuid/{customer_uuid}", response_model=SuccessResponse)
async def get_by_uuid_endpoint(customer_uuid: str):
    customer = await customer_service.get_customer_by_uuid(customer_uuid)
    return SuccessResponse(data=customer.model_dump(mode="json"))


@router.get("/pan/{pan_number}", response_model=SuccessResponse)
async def get_by_pan_endpoint(pan_number: str):
    customer = await customer_service.get_customer_by_pan(pan_number)
    return SuccessResponse(data=customer.model_dump(mode="json"))


@router.get("/email/{email}", response_model=SuccessResponse)
async def get_by_email_endpoint(email: str):
    customer = await customer_service.get_customer_by_email(email)
    return SuccessResponse(data=customer.model_dump(mode="json"))


@router.get("/{customer_id}", response_model=SuccessResponse)
async def get_customer_endpoint(customer_id: int):
    """Fetches details for a specific customer."""
    customer = await customer_service.get_customer_by_id(customer_id)
    return SuccessResponse(data=customer.model_dump(mode="json"))


@router.put("/{customer_id}/kyc", response_model=SuccessResponse)
async def complete_kyc_endpoint(customer_id: int, request_data: CustomerRequest):
    """Step 2: completes KYC and activates the customer."""
    customer = await customer_service.complete_kyc(customer_id, request_data)
    log.info(f"KYC completed for customer {customer_id}.")
    return SuccessResponse(data=customer.model_dump(mode="json"))


@router.put("/{customer_id}", response_model=SuccessResponse)
async def update_customer_endpoint(customer_id: int, request_data: CustomerEnquiryRequest):
    customer = await customer_service.update_customer(customer_id, request_data)
    return SuccessResponse(data=customer.model_dump(mode="json"))


@router.patch("/{customer_id}/status", response_model=SuccessResponse)
async def update_status_endpoint(customer_id: int, payload: CustomerStatusUpdate):
    """Moves the customer to another lifecycle status (PENDING_KYC, ACTIVE, INACTIVE)."""
    customer = await customer_service.update_customer_status(customer_id, payload.status)
    log.info(f"Customer {customer_id} status updated to {customer.status.value}.")
    return SuccessResponse(data=customer.model_dump(mode="json"))
