import datetime as dt
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .errors import InvalidEntityKind, RecordValidationError
from .services.schedule import next_payment_date


class EntityKind(str, Enum):
    income = "income"
    outgoing = "outgoing"
    payment_providers = "payment_providers"


class BillingCycle(str, Enum):
    weekly = "weekly"
    monthly = "monthly"
    quarterly = "quarterly"
    yearly = "yearly"


class ProviderType(str, Enum):
    bank = "bank"
    credit_card = "credit_card"
    paypal = "paypal"
    crypto = "crypto"
    cash = "cash"
    other = "other"


def _validate_currency(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    up = value.strip().upper()
    if len(up) != 3 or not up.isalpha():
        raise ValueError("must be 3-letter ISO code")
    return up


def _strip_required(value: str) -> str:
    stripped = value.strip()
    if not stripped:
        raise ValueError("must not be empty")
    return stripped


class IncomeCreate(BaseModel):
    description: str = Field(min_length=1, max_length=500)
    amount: float = Field(ge=0, allow_inf_nan=False)
    date: dt.date
    category: Optional[str] = None
    provider: Optional[str] = None
    icon: Optional[str] = None

    @field_validator("description")
    @classmethod
    def validate_description(cls, value: str) -> str:
        return _strip_required(value)


class IncomeUpdate(BaseModel):
    description: Optional[str] = Field(default=None, min_length=1, max_length=500)
    amount: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)
    date: Optional[dt.date] = None
    category: Optional[str] = None
    provider: Optional[str] = None
    icon: Optional[str] = None


class OutgoingCreate(IncomeCreate):
    recurring: bool = False
    billingCycle: Optional[BillingCycle] = None
    nextPaymentDate: Optional[dt.date] = None

    @model_validator(mode="after")
    def normalize_recurring(self) -> "OutgoingCreate":
        if not self.recurring:
            self.billingCycle = None
            self.nextPaymentDate = None
            return self
        if self.billingCycle is None:
            self.billingCycle = BillingCycle.monthly
        if self.nextPaymentDate is None:
            self.nextPaymentDate = next_payment_date(self.billingCycle.value, self.date)
        return self


class OutgoingUpdate(IncomeUpdate):
    recurring: Optional[bool] = None
    billingCycle: Optional[BillingCycle] = None
    nextPaymentDate: Optional[dt.date] = None


class PaymentProviderCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    type: ProviderType
    accountNumber: Optional[str] = None
    notes: Optional[str] = None
    icon: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        return _strip_required(value)


class PaymentProviderUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    type: Optional[ProviderType] = None
    accountNumber: Optional[str] = None
    notes: Optional[str] = None
    icon: Optional[str] = None


CREATE_SCHEMAS: dict[EntityKind, type[BaseModel]] = {
    EntityKind.income: IncomeCreate,
    EntityKind.outgoing: OutgoingCreate,
    EntityKind.payment_providers: PaymentProviderCreate,
}

UPDATE_SCHEMAS: dict[EntityKind, type[BaseModel]] = {
    EntityKind.income: IncomeUpdate,
    EntityKind.outgoing: OutgoingUpdate,
    EntityKind.payment_providers: PaymentProviderUpdate,
}


def parse_kind(kind: Any) -> EntityKind:
    try:
        return EntityKind(kind)
    except ValueError:
        raise InvalidEntityKind(kind) from None


def format_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(item) for item in err.get("loc", []))
        parts.append(f"{loc}: {err.get('msg', 'validation error')}" if loc else err.get("msg", "validation error"))
    return "; ".join(parts)


def validate_model(schema: type[BaseModel], payload: Any) -> BaseModel:
    if not isinstance(payload, dict):
        raise RecordValidationError("fields must be an object")
    try:
        return schema.model_validate(payload)
    except ValidationError as exc:
        raise RecordValidationError(format_validation_error(exc)) from None


class SettingsUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    currency: Optional[str] = None
    profileImage: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: Optional[str]) -> Optional[str]:
        return None if value is None else _strip_required(value)

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, value: Optional[str]) -> Optional[str]:
        return _validate_currency(value)


class SetupRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    currency: str = "EUR"
    password: str = Field(min_length=1)
    profileImage: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        return _strip_required(value)

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, value: str) -> str:
        return _validate_currency(value)


class VerifyPasswordRequest(BaseModel):
    password: str


class CsvExportRequest(BaseModel):
    content: str
    fileName: str = Field(min_length=1, max_length=255)

    @field_validator("fileName")
    @classmethod
    def validate_file_name(cls, value: str) -> str:
        name = value.strip()
        if not name or "/" in name or "\\" in name or name in {".", ".."}:
            raise ValueError("must be a plain file name")
        return name


class Profile(BaseModel):
    name: str
    profileImage: Optional[str] = None
    currency: str


class SuccessEnvelope(BaseModel):
    success: Literal[True] = True
    data: Any = None


class FailureEnvelope(BaseModel):
    success: Literal[False] = False
    error: str
