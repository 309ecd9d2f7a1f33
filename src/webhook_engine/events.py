from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from webhook_engine.envelope import BaseEvent


class StripeEventType(StrEnum):
    INVOICE_PAID = "invoice.paid"
    CUSTOMER_CREATED = "customer.created"
    CHARGE_REFUNDED = "charge.refunded"


class _ProviderObject(BaseModel):
    model_config = ConfigDict(extra="ignore")


class InvoiceObject(_ProviderObject):
    id: str = Field(min_length=1)
    customer: str = Field(min_length=1)
    amount: int = Field(ge=0, strict=True)
    currency: str = Field(pattern=r"^[A-Za-z]{3}$")


class InvoicePaidData(BaseModel):
    object: InvoiceObject


class InvoicePaidEvent(BaseEvent):
    data: InvoicePaidData


class CustomerObject(_ProviderObject):
    id: str = Field(min_length=1)
    email: str = Field(min_length=3, pattern=r"^[^@\s]+@[^@\s]+$")
    name: str | None = None


class CustomerCreatedData(BaseModel):
    object: CustomerObject


class CustomerCreatedEvent(BaseEvent):
    data: CustomerCreatedData


class ChargeObject(_ProviderObject):
    id: str = Field(min_length=1)
    payment_intent: str | None = None
    amount_refunded: int = Field(ge=0, strict=True)
    currency: str = Field(pattern=r"^[A-Za-z]{3}$")


class ChargeRefundedData(BaseModel):
    object: ChargeObject


class ChargeRefundedEvent(BaseEvent):
    # amount_refunded is cumulative; created orders redeliveries for the same charge
    created: int = Field(ge=0, strict=True)
    data: ChargeRefundedData
