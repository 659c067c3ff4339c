"""
Turns a provider webhook body into a NormalizedPayment.

Each provider payload shape is a PayloadVariant: the event types that mean
"paid", and an explicit table of key paths per concept, tried in order.
Providers renamed fields across API versions, so every concept may have
several paths.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, FrozenSet, Optional, Sequence, Tuple, Union

from app.config import AmountUnit
from app.errors import MissingField, ValidationFailure
from app.schemas.webhook_schemas import NormalizedPayment

logger = logging.getLogger(__name__)

KeyPath = Tuple[Union[str, int], ...]

REQUIRED_FIELDS = ("email", "order_id", "checkout_id", "product_external_id")
REFERRAL_KEYS = ("referral_code", "referral_id", "ref", "affiliate")

CENTS = Decimal("0.01")


@dataclass(frozen=True)
class PayloadVariant:
    provider: str
    success_events: FrozenSet[str]
    field_paths: Dict[str, Sequence[KeyPath]]
    # when set, data.status (if present) must equal it
    success_status: Optional[str] = None


PAYLOAD_VARIANTS: Dict[str, PayloadVariant] = {
    "dodo": PayloadVariant(
        provider="dodo",
        success_events=frozenset({"payment.succeeded", "checkout.completed"}),
        success_status="succeeded",
        field_paths={
            "email": (("customer", "email"), ("email",)),
            "order_id": (("payment_id",), ("id",)),
            "checkout_id": (("checkout_session_id",), ("session_id",)),
            "product_external_id": (
                ("product_cart", 0, "product_id"),
                ("product_id",),
            ),
            "amount": (("settlement_amount",),),
            "currency": (("settlement_currency",), ("currency",)),
            "metadata": (("metadata",),),
        },
    ),
    "paddle": PayloadVariant(
        provider="paddle",
        success_events=frozenset({"transaction.completed", "transaction.paid"}),
        field_paths={
            "email": (("customer", "email"), ("user_email",), ("customer_email",)),
            "order_id": (
                ("payments", 0, "payment_attempt_id"),
                ("invoice_id",),
                ("id",),
            ),
            # the transaction id (txn_...) doubles as the checkout id
            "checkout_id": (("id",), ("transaction_id",)),
            "product_external_id": (
                ("items", 0, "price", "product_id"),
                ("items", 0, "product_id"),
                ("product_id",),
            ),
            "amount": (
                ("details", "totals", "grand_total"),
                ("details", "totals", "total"),
            ),
            "currency": (("currency_code",), ("details", "totals", "currency_code")),
            "metadata": (("custom_data",), ("metadata",)),
        },
    ),
}


def get_variant(provider: str) -> PayloadVariant:
    try:
        return PAYLOAD_VARIANTS[provider]
    except KeyError:
        raise ValidationFailure(f"Unsupported provider: {provider}")


def _dig(data: Any, path: KeyPath) -> Any:
    current = data
    for key in path:
        if isinstance(key, int):
            if not isinstance(current, list) or len(current) <= key:
                return None
        elif not isinstance(current, dict) or key not in current:
            return None
        current = current[key]
    return current


def _first(data: Dict[str, Any], paths: Sequence[KeyPath]) -> Any:
    for path in paths:
        value = _dig(data, path)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def _as_text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    return text or None


def read_envelope(body: Any) -> Tuple[str, Dict[str, Any]]:
    """Return (event_type, data) from any known envelope shape."""
    if not isinstance(body, dict):
        raise ValidationFailure("Webhook body must be a JSON object")

    event_type = body.get("type") or body.get("event_type") or body.get("eventType") or ""
    data = body.get("data") or body.get("payload") or {}
    if not isinstance(data, dict):
        raise ValidationFailure("Webhook data must be a JSON object")
    return str(event_type), data


def is_success_event(variant: PayloadVariant, event_type: str, data: Dict[str, Any]) -> bool:
    if event_type not in variant.success_events:
        return False
    status = data.get("status")
    if variant.success_status and status and status != variant.success_status:
        return False
    return True


def to_major_amount(raw: Any, unit: AmountUnit = "infer") -> Optional[Decimal]:
    """
    Convert a provider amount to major currency units, rounded to cents.

    ``minor`` always divides by 100, ``major`` never does. ``infer`` treats
    integer-valued amounts (1199, "1199", 10.0) as minor units and anything
    with a fractional part (11.99) as already major.
    """
    if raw is None or isinstance(raw, bool):
        return None
    try:
        value = Decimal(str(raw).strip())
        if not value.is_finite():
            return None

        if unit == "minor" or (unit == "infer" and value == value.to_integral_value()):
            value = value / 100

        # raises InvalidOperation past the context precision
        return value.quantize(CENTS, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        logger.warning(f"Unusable amount ignored: {str(raw)[:40]}")
        return None


def extract_referral_code(metadata: Any) -> Optional[str]:
    if not isinstance(metadata, dict):
        return None
    for key in REFERRAL_KEYS:
        value = metadata.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def normalize_payment(
    provider: str,
    body: Any,
    amount_unit: AmountUnit = "infer",
) -> NormalizedPayment:
    variant = get_variant(provider)
    event_type, data = read_envelope(body)
    paths = variant.field_paths

    fields = {
        name: _as_text(_first(data, paths[name])) for name in REQUIRED_FIELDS
    }
    missing = [name for name in REQUIRED_FIELDS if not fields[name]]
    if missing:
        logger.error(f"[{provider}] webhook missing required fields: {missing}")
        raise MissingField(missing)

    currency = _as_text(_first(data, paths["currency"]))

    return NormalizedPayment(
        provider=provider,
        event_type=event_type,
        email=fields["email"],
        order_id=fields["order_id"],
        checkout_id=fields["checkout_id"],
        product_external_id=fields["product_external_id"],
        amount=to_major_amount(_first(data, paths["amount"]), amount_unit),
        currency=currency.upper() if currency else None,
        referral_code=extract_referral_code(_first(data, paths["metadata"])),
    )
