import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.models.customer import AddressType, CustomerStatus, EmploymentType

PAN_PATTERN = r"^[A-Z]{5}[0-9]{4}[A-Z]$"
AADHAAR_PATTERN = r"^\d{12}$"
MOBILE_PATTERN = r"^[6-9]\d{9}$"  # Indian mobile number
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class AddressRequest(BaseModel):
    type: AddressType = AddressType.CURRENT
    house_no: str = Field(..., min_length=1, description="House / flat number.")
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    pincode: str = Field(..., pattern=r"^\d{6}$", description="6 digit postal code.")


class EmploymentDetailsRequest(BaseModel):
    employment_type: EmploymentType
    company_name: Optional[str] = None
    monthly_income: Optional[Decimal] = Field(None, ge=0)
    total_experience: Optional[int] = Field(None, ge=0, description="Total experience in years.")


class CustomerEnquiryRequest(BaseModel):
    """Step 1: minimal registration (pre-KYC)."""
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    gender: str = Field(..., min_length=1)
    date_of_birth: Optional[date] = None
    email: str = Field(..., pattern=EMAIL_PATTERN)
    mobile_number: str = Field(..., pattern=MOBILE_PATTERN)
    pan_number: str = Field(..., pattern=PAN_PATTERN)
    aadhaar_number: str = Field(..., pattern=AADHAAR_PATTERN)


class CustomerRequest(CustomerEnquiryRequest):
    """Full registration / KYC payload."""
    date_of_birth: date
    address: Optional[AddressRequest] = None
    employment_details: Optional[EmploymentDetailsRequest] = None


class CustomerStatusUpdate(BaseModel):
    status: CustomerStatus


class AddressResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    type: AddressType
    house_no: str
    city: str
    state: str
    pincode: str


class EmploymentDetailsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    employment_type: EmploymentType
    company_name: Optional[str] = None
    monthly_income: Optional[Decimal] = None
    total_experience: Optional[int] = None


class CustomerResponse(BaseModel):
    """Customer as shown to API clients. PAN and Aadhaar are masked."""
    customer_id: int
    customer_uuid: uuid.UUID
    first_name: str
    last_name: str
    gender: str
    date_of_birth: Optional[date] = None
    email: str
    mobile_number: str
    pan_number: str
    aadhaar_number: str
    status: CustomerStatus
    active: bool
    addresses: List[AddressResponse] = []
    employment_details: Optional[EmploymentDetailsResponse] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CustomerSnapshot(BaseModel):
    """Full, unmasked state of a customer carried in outbox event payloads."""
    customer_id: int
    customer_uuid: str
    first_name: str
    last_name: str
    gender: str
    date_of_birth: Optional[date] = None
    email: str
    mobile_number: str
    pan_number: str
    aadhaar_number: str
    status: CustomerStatus
    addresses: List[AddressResponse] = []
    employment_details: Optional[EmploymentDetailsResponse] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
