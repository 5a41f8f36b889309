from enum import Enum

from tortoise import fields, models


class CustomerStatus(str, Enum):
    PENDING_KYC = "PENDING_KYC"  # Registered, documents under verification
    ACTIVE = "ACTIVE"            # KYC approved, eligible for loan application
    INACTIVE = "INACTIVE"        # Deactivated/suspended


class AddressType(str, Enum):
    CURRENT = "CURRENT"
    PERMANENT = "PERMANENT"


class EmploymentType(str, Enum):
    SALARIED = "SALARIED"
    SELF_EMPLOYED = "SELF_EMPLOYED"


class Customer(models.Model):
    id = fields.IntField(primary_key=True)
    customer_uuid = fields.CharField(max_length=36, unique=True)  # Externally visible id, never changes
    first_name = fields.CharField(max_length=100)
    last_name = fields.CharField(max_length=100)
    gender = fields.CharField(max_length=16)
    date_of_birth = fields.DateField(null=True)
    email = fields.CharField(max_length=255, unique=True)
    mobile = fields.CharField(max_length=10, unique=True)
    pan_number = fields.CharField(max_length=10, unique=True)
    aadhaar_number = fields.CharField(max_length=12, unique=True)
    status = fields.CharEnumField(CustomerStatus, max_length=16, default=CustomerStatus.PENDING_KYC)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "customer"
        indexes = [
            ("status", "created_at"),  # Status listing, newest first
            ("first_name", "last_name"),  # Search ordering
        ]


class Address(models.Model):
    id = fields.IntField(primary_key=True)
    customer = fields.ForeignKeyField("models.Customer", related_name="addresses", on_delete=fields.CASCADE)
    type = fields.CharEnumField(AddressType, max_length=16, default=AddressType.CURRENT)
    house_no = fields.CharField(max_length=64)
    city = fields.CharField(max_length=100)
    state = fields.CharField(max_length=100)
    pincode = fields.CharField(max_length=6)

    class Meta:
        table = "address"


class EmploymentDetails(models.Model):
    id = fields.IntField(primary_key=True)
    customer = fields.OneToOneField("models.Customer", related_name="employment_details", on_delete=fields.CASCADE)
    employment_type = fields.CharEnumField(EmploymentType, max_length=16)
    company_name = fields.CharField(max_length=255, null=True)
    monthly_income = fields.DecimalField(max_digits=14, decimal_places=2, null=True)
    total_experience = fields.IntField(null=True)

    class Meta:
        table = "employment_details"
