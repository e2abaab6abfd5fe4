"""Checkout request models and canonical body serialization."""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from dokupay.gateway.errors import ValidationError

INVOICE_NUMBER_MAX_LENGTH = 64

PositiveAmount = Annotated[int, Field(strict=True, gt=0)]
InvoiceNumber = Annotated[str, Field(min_length=1, max_length=INVOICE_NUMBER_MAX_LENGTH)]


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class LineItem(_Payload):
    name: str
    price: int
    quantity: int
    type: str | None = None
    image_url: str | None = None
    url: str | None = None
    sku: str | None = None
    category: str | None = None


class Customer(_Payload):
    id: str | None = None
    name: str | None = None
    last_name: str | None = None
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    postcode: str | None = None
    country: str | None = None


class Address(_Payload):
    first_name: str | None = None
    last_name: str | None = None
    address: str | None = None
    city: str | None = None
    postal_code: str | None = None
    phone: str | None = None
    country_code: str | None = None


class PaymentDetails(_Payload):
    payment_due_date: int | None = None
    payment_method_types: list[str] | None = None


class PaymentRequest(_Payload):
    """A checkout payment to create.

    ``amount`` is in the smallest currency unit. ``currency`` falls back to the
    gateway configuration's default when omitted.
    """

    amount: PositiveAmount
    invoice_number: InvoiceNumber
    currency: str | None = None
    auto_redirect: bool = True
    line_items: list[LineItem] | None = None
    session_id: str | None = None
    callback_url: str | None = None
    callback_url_result: str | None = None
    customer: Customer | None = None
    payment: PaymentDetails | None = None
    shipping_address: Address | None = None
    billing_address: Address | None = None

    def build_body(self, default_currency: str) -> dict[str, Any]:
        """Assemble the checkout body in the gateway's field order."""
        order: dict[str, Any] = {
            "amount": self.amount,
            "invoice_number": self.invoice_number,
            "currency": self.currency or default_currency,
            "auto_redirect": self.auto_redirect,
        }
        if self.line_items:
            order["line_items"] = [item.model_dump(exclude_none=True) for item in self.line_items]
        if self.session_id:
            order["session_id"] = self.session_id
        if self.callback_url:
            order["callback_url"] = self.callback_url
        if self.callback_url_result:
            order["callback_url_result"] = self.callback_url_result

        body: dict[str, Any] = {
            "order": order,
            "payment": self.payment.model_dump(exclude_none=True) if self.payment else {},
            "customer": self.customer.model_dump(exclude_none=True) if self.customer else {},
            "additional_info": {},
        }
        if self.shipping_address:
            body["shipping_address"] = self.shipping_address.model_dump(exclude_none=True)
        if self.billing_address:
            body["billing_address"] = self.billing_address.model_dump(exclude_none=True)
        return body


class _ComprehensiveOrder(_Payload):
    amount: PositiveAmount
    invoice_number: InvoiceNumber
    currency: str | None = None
    callback_url: str | None = None
    line_items: list[LineItem]
    session_id: str | None = None


class ComprehensivePayload(_Payload):
    """Full checkout payload as accepted by the comprehensive create route.

    Top-level ``amount`` and ``invoiceNumber`` are authoritative; the nested
    order contributes currency, line items, session id and callback URL.
    """

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    customer: Customer
    order: _ComprehensiveOrder
    payment: PaymentDetails
    shipping_address: Address
    billing_address: Address
    amount: PositiveAmount
    invoice_number: InvoiceNumber = Field(alias="invoiceNumber")

    def to_payment_request(self) -> PaymentRequest:
        return PaymentRequest(
            amount=self.amount,
            invoice_number=self.invoice_number,
            currency=self.order.currency,
            line_items=self.order.line_items,
            session_id=self.order.session_id,
            callback_url=self.order.callback_url,
            customer=self.customer,
            payment=PaymentDetails(payment_due_date=self.payment.payment_due_date),
            shipping_address=self.shipping_address,
            billing_address=self.billing_address,
        )


def _validate(model: type[_Payload], data: Mapping[str, Any]) -> Any:
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError(
            f"Invalid {model.__name__}",
            errors=exc.errors(include_url=False, include_context=False),
        ) from exc


def parse_payment_request(data: Mapping[str, Any]) -> PaymentRequest:
    """Validate a mapping into a ``PaymentRequest``."""
    return _validate(PaymentRequest, data)


def parse_comprehensive_payload(data: Mapping[str, Any]) -> PaymentRequest:
    """Validate a comprehensive payload and convert it to a ``PaymentRequest``."""
    payload: ComprehensivePayload = _validate(ComprehensivePayload, data)
    return payload.to_payment_request()


def validate_invoice_number(invoice_number: str) -> str:
    if not isinstance(invoice_number, str) or not invoice_number:
        raise ValidationError("Invoice number is required")
    if len(invoice_number) > INVOICE_NUMBER_MAX_LENGTH:
        raise ValidationError(
            f"Invoice number exceeds {INVOICE_NUMBER_MAX_LENGTH} characters"
        )
    return invoice_number


def serialize_body(body: Mapping[str, Any]) -> bytes:
    """Serialize a body to compact UTF-8 JSON.

    The returned buffer is both digested and transmitted as-is.
    """
    return json.dumps(body, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
