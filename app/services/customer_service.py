import logging
import uuid
from collections import defaultdict
from datetime import date
from typing import Any, Dict, List, Optional

from tortoise.exceptions import IntegrityError
from tortoise.expressions import Q
from tortoise.transactions import in_transaction

from app.core.config import MAX_CUSTOMER_AGE, MIN_CUSTOMER_AGE
from app.core.exceptions import BusinessRuleError, CustomerAlreadyExistsError, CustomerNotFoundError
from app.core.masking import mask_aadhaar, mask_pan
from app.events.outbox_utility import EventType, record_outbox_event
from app.models.customer import Address, Customer, CustomerStatus, EmploymentDetails
from app.schemas.customer import (
    AddressResponse,
    CustomerEnquiryRequest,
    CustomerRequest,
    CustomerResponse,
    CustomerSnapshot,
    EmploymentDetailsResponse,
)
from app.schemas.response import PageResponse

log = logging.getLogger("customer_service")


# ---------- Business rules ----------

def age_on(dob: date, today: Optional[date] = None) -> int:
    today = today or date.today()
    return today.year - dob.year - ((today.month, today.day) < (dob.month, dob.day))


def validate_age_for_home_loan(dob: Optional[date], today: Optional[date] = None):
    if dob is None:
        raise BusinessRuleError("DATE_OF_BIRTH_REQUIRED", "Date of birth is required")
    age = age_on(dob, today)
    if age < MIN_CUSTOMER_AGE or age > MAX_CUSTOMER_AGE:
        log.warning(f"Age validation failed | age={age}")
        raise BusinessRuleError(
            "AGE_NOT_ELIGIBLE",
            f"Age must be between {MIN_CUSTOMER_AGE} and {MAX_CUSTOMER_AGE} for home loan eligibility",
        )


async def _ensure_unique(data: CustomerEnquiryRequest, conn: Any, exclude_id: Optional[int] = None):
    """Rejects PAN / Aadhaar / email / mobile already used by another customer."""
    checks = [
        ("pan_number", data.pan_number, f"PAN: {mask_pan(data.pan_number)}"),
        ("aadhaar_number", data.aadhaar_number, f"Aadhaar no: {mask_aadhaar(data.aadhaar_number)}"),
        ("email", data.email, f"email: {data.email}"),
        ("mobile", data.mobile_number, f"mobile: {data.mobile_number}"),
    ]
    for field, value, label in checks:
        query = Customer.filter(**{field: value})
        if exclude_id is not None:
            query = query.exclude(id=exclude_id)
        if await query.using_db(conn).exists():
            log.warning(f"Uniqueness check failed | field={field} | pan={mask_pan(data.pan_number)}")
            raise CustomerAlreadyExistsError(label)


def _apply_basic_fields(customer: Customer, data: CustomerEnquiryRequest):
    customer.first_name = data.first_name
    customer.last_name = data.last_name
    customer.gender = data.gender
    if data.date_of_birth is not None:
        # A partial update never clears a date of birth already on record
        customer.date_of_birth = data.date_of_birth
    customer.email = data.email
    customer.mobile = data.mobile_number
    customer.pan_number = data.pan_number
    customer.aadhaar_number = data.aadhaar_number


async def _replace_address_and_employment(customer: Customer, data: CustomerRequest, conn: Any):
    await Address.filter(customer_id=customer.id).using_db(conn).delete()
    if data.address is not None:
        await Address.create(customer=customer, **data.address.model_dump(), using_db=conn)

    await EmploymentDetails.filter(customer_id=customer.id).using_db(conn).delete()
    if data.employment_details is not None:
        await EmploymentDetails.create(customer=customer, **data.employment_details.model_dump(), using_db=conn)


# ---------- Mapping ----------

async def _snapshots(customers: List[Customer], conn: Any = None) -> List[CustomerSnapshot]:
    """Loads nested details for a list of customers in two queries."""
    ids = [c.id for c in customers]
    addresses: Dict[int, list] = defaultdict(list)
    employment: Dict[int, EmploymentDetails] = {}
    if ids:
        for address in await Address.filter(customer_id__in=ids).using_db(conn).order_by("id"):
            addresses[address.customer_id].append(address)
        for details in await EmploymentDetails.filter(customer_id__in=ids).using_db(conn):
            employment[details.customer_id] = details

    return [
        CustomerSnapshot(
            customer_id=c.id,
            customer_uuid=c.customer_uuid,
            first_name=c.first_name,
            last_name=c.last_name,
            gender=c.gender,
            date_of_birth=c.date_of_birth,
            email=c.email,
            mobile_number=c.mobile,
            pan_number=c.pan_number,
            aadhaar_number=c.aadhaar_number,
            status=c.status,
            addresses=[AddressResponse.model_validate(a) for a in addresses[c.id]],
            employment_details=(
                EmploymentDetailsResponse.model_validate(employment[c.id]) if c.id in employment else None
            ),
            created_at=c.created_at,
            updated_at=c.updated_at,
        )
        for c in customers
    ]


async def build_snapshot(customer: Customer, conn: Any = None) -> CustomerSnapshot:
    return (await _snapshots([customer], conn))[0]


def to_response(snapshot: CustomerSnapshot) -> CustomerResponse:
    data = snapshot.model_dump()
    data["pan_number"] = mask_pan(snapshot.pan_number)
    data["aadhaar_number"] = mask_aadhaar(snapshot.aadhaar_number)
    data["active"] = snapshot.status == CustomerStatus.ACTIVE
    return CustomerResponse(**data)


async def _get_for_update(customer_id: int, conn: Any) -> Customer:
    customer = await Customer.filter(id=customer_id).using_db(conn).select_for_update().first()
    if not customer:
        raise CustomerNotFoundError(f"ID: {customer_id}")
    return customer


# ---------- Mutations (each records its outbox event in the same transaction) ----------

async def create_customer_enquiry(data: CustomerEnquiryRequest) -> CustomerResponse:
    """Step 1: basic registration. The customer starts in PENDING_KYC."""
    log.info(f"ENTER :: create_customer_enquiry | pan={mask_pan(data.pan_number)} | email={data.email}")
    try:
        async with in_transaction() as conn:
            await _ensure_unique(data, conn)

            customer = Customer(customer_uuid=str(uuid.uuid4()), status=CustomerStatus.PENDING_KYC)
            _apply_basic_fields(customer, data)
            await customer.save(using_db=conn)

            snapshot = await build_snapshot(customer, conn)
            await record_outbox_event(customer.customer_uuid, EventType.CUSTOMER_REGISTERED, snapshot, conn=conn)
    except IntegrityError as exc:
        # A concurrent registration won the race past the uniqueness checks
        raise CustomerAlreadyExistsError(f"PAN: {mask_pan(data.pan_number)}") from exc

    log.info(f"Customer enquiry saved successfully | uuid={customer.customer_uuid}")
    return to_response(snapshot)


async def create_customer(data: CustomerRequest) -> CustomerResponse:
    """Full registration in one step, including address and employment details."""
    log.info(f"ENTER :: create_customer | pan={mask_pan(data.pan_number)}")
    validate_age_for_home_loan(data.date_of_birth)
    try:
        async with in_transaction() as conn:
            await _ensure_unique(data, conn)

            customer = Customer(customer_uuid=str(uuid.uuid4()), status=CustomerStatus.PENDING_KYC)
            _apply_basic_fields(customer, data)
            await customer.save(using_db=conn)
            await _replace_address_and_employment(customer, data, conn)

            snapshot = await build_snapshot(customer, conn)
            await record_outbox_event(customer.customer_uuid, EventType.CUSTOMER_CREATED, snapshot, conn=conn)
    except IntegrityError as exc:
        raise CustomerAlreadyExistsError(f"PAN: {mask_pan(data.pan_number)}") from exc

    log.info(f"create_customer success | id={customer.id} | uuid={customer.customer_uuid}")
    return to_response(snapshot)


async def complete_kyc(customer_id: int, data: CustomerRequest) -> CustomerResponse:
    """Step 2: enrich with address/employment and mark the customer ACTIVE."""
    log.info(f"ENTER :: complete_kyc | id={customer_id} | pan={mask_pan(data.pan_number)}")
    validate_age_for_home_loan(data.date_of_birth)
    try:
        async with in_transaction() as conn:
            customer = await _get_for_update(customer_id, conn)
            await _ensure_unique(data, conn, exclude_id=customer.id)

            _apply_basic_fields(customer, data)
            customer.status = CustomerStatus.ACTIVE
            await customer.save(using_db=conn)
            await _replace_address_and_employment(customer, data, conn)

            snapshot = await build_snapshot(customer, conn)
            await record_outbox_event(customer.customer_uuid, EventType.CUSTOMER_KYC_COMPLETED, snapshot, conn=conn)
    except IntegrityError as exc:
        raise CustomerAlreadyExistsError(f"PAN: {mask_pan(data.pan_number)}") from exc

    log.info(f"EXIT :: complete_kyc | id={customer_id} | status={snapshot.status.value}")
    return to_response(snapshot)


async def update_customer(customer_id: int, data: CustomerEnquiryRequest) -> CustomerResponse:
    """Updates the basic personal fields; status and nested details stay as they are."""
    log.info(f"ENTER :: update_customer | id={customer_id} | pan={mask_pan(data.pan_number)}")
    if data.date_of_birth is not None:
        validate_age_for_home_loan(data.date_of_birth)
    try:
        async with in_transaction() as conn:
            customer = await _get_for_update(customer_id, conn)
            await _ensure_unique(data, conn, exclude_id=customer.id)

            _apply_basic_fields(customer, data)
            await customer.save(using_db=conn)

            snapshot = await build_snapshot(customer, conn)
            await record_outbox_event(customer.customer_uuid, EventType.CUSTOMER_UPDATED, snapshot, conn=conn)
    except IntegrityError as exc:
        raise CustomerAlreadyExistsError(f"PAN: {mask_pan(data.pan_number)}") from exc

    return to_response(snapshot)


async def update_customer_status(customer_id: int, new_status: CustomerStatus) -> CustomerResponse:
    log.info(f"ENTER :: update_customer_status | id={customer_id} | status={new_status.value}")
    async with in_transaction() as conn:
        customer = await _get_for_update(customer_id, conn)
        if customer.status == new_status:
            raise BusinessRuleError("STATUS_UNCHANGED", f"Customer is already {new_status.value}")

        customer.status = new_status
        await customer.save(using_db=conn)

        snapshot = await build_snapshot(customer, conn)
        await record_outbox_event(customer.customer_uuid, EventType.CUSTOMER_STATUS_CHANGED, snapshot, conn=conn)

    return to_response(snapshot)


# ---------- Reads ----------

async def _get_one(identifier: str, **filters) -> CustomerResponse:
    customer = await Customer.get_or_none(**filters)
    if not customer:
        raise CustomerNotFoundError(identifier)
    return to_response(await build_snapshot(customer))


async def get_customer_by_id(customer_id: int) -> CustomerResponse:
    return await _get_one(f"ID: {customer_id}", id=customer_id)


async def get_customer_by_uuid(customer_uuid: str) -> CustomerResponse:
    return await _get_one(f"UUID: {customer_uuid}", customer_uuid=customer_uuid)


async def get_customer_by_pan(pan_number: str) -> CustomerResponse:
    return await _get_one(f"PAN: {mask_pan(pan_number)}", pan_number=pan_number)


async def get_customer_by_email(email: str) -> CustomerResponse:
    return await _get_one(f"email: {email}", email=email)


async def _page(query, page: int, size: int, *ordering: str) -> PageResponse[CustomerResponse]:
    total = await query.count()
    customers = await query.order_by(*ordering).offset(page * size).limit(size)
    content = [to_response(s) for s in await _snapshots(customers)]
    return PageResponse[CustomerResponse].build(content, page, size, total)


async def list_customers(page: int = 0, size: int = 20) -> PageResponse[CustomerResponse]:
    return await _page(Customer.all(), page, size, "-created_at", "-id")


async def list_customers_by_status(status: CustomerStatus, page: int = 0, size: int = 20) -> PageResponse[CustomerResponse]:
    return await _page(Customer.filter(status=status), page, size, "-created_at", "-id")


async def search_customers(term: str, page: int = 0, size: int = 20) -> PageResponse[CustomerResponse]:
    """Matches first/last name (case-insensitive), PAN or email."""
    term = term.strip()
    query = Customer.filter(
        Q(first_name__icontains=term)
        | Q(last_name__icontains=term)
        | Q(pan_number__contains=term)
        | Q(email__contains=term)
    )
    return await _page(query, page, size, "first_name", "last_name", "id")
