"""Payment method normalization and the method-specific detail variants."""
from dataclasses import asdict, dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum

from .exceptions import InvalidInput

UNKNOWN = "unknown"


class PaymentMethod(str, Enum):
    CARD = "card"
    UPI = "upi"
    NETBANKING = "netbanking"
    WALLET = "wallet"
    EMI = "emi"

    @classmethod
    def choices(cls):
        return [(m.value, m.name.title()) for m in cls]

    @classmethod
    def parse(cls, value) -> "PaymentMethod | None":
        try:
            return cls(str(value).strip().lower()) if value else None
        except ValueError:
            return None


# gateway-reported method -> stored method
GATEWAY_METHODS = {
    "upi": PaymentMethod.UPI,
    "upi_intent": PaymentMethod.UPI,
    "netbanking": PaymentMethod.NETBANKING,
    "wallet": PaymentMethod.WALLET,
    "emi": PaymentMethod.EMI,
    "card": PaymentMethod.CARD,
}


def resolve_method(gateway_method, hint=None) -> PaymentMethod:
    """The gateway's report wins; otherwise the client hint, otherwise card."""
    resolved = GATEWAY_METHODS.get(str(gateway_method or "").strip().lower())
    if resolved is not None:
        return resolved
    return PaymentMethod.parse(hint) or PaymentMethod.CARD


@dataclass(frozen=True)
class UpiDetail:
    vpa: str
    kind = "upi"


@dataclass(frozen=True)
class NetbankingDetail:
    bank: str
    ifsc: str
    kind = "netbanking"


@dataclass(frozen=True)
class WalletDetail:
    name: str
    kind = "wallet"


@dataclass(frozen=True)
class CardDetail:
    last4: str
    network: str
    issuer: str
    kind = "card"


PaymentDetail = UpiDetail | NetbankingDetail | WalletDetail | CardDetail


def detail_as_dict(detail: PaymentDetail) -> dict:
    return {"type": detail.kind, **asdict(detail)}


def _first(*values) -> str:
    for v in values:
        if v not in (None, ""):
            return str(v)
    return UNKNOWN


def _sub(entity: dict, key: str) -> dict:
    value = entity.get(key)
    return value if isinstance(value, dict) else {}


def build_detail(method: PaymentMethod, entity: dict) -> PaymentDetail:
    entity = entity or {}
    if method is PaymentMethod.UPI:
        return UpiDetail(
            vpa=_first(entity.get("vpa"), _sub(entity, "upi").get("vpa"), _sub(entity, "upi_intent").get("vpa")),
        )
    if method is PaymentMethod.NETBANKING:
        nb = _sub(entity, "netbanking")
        return NetbankingDetail(
            bank=_first(entity.get("bank"), nb.get("bank_name")),
            ifsc=_first(entity.get("ifsc"), nb.get("ifsc")),
        )
    if method is PaymentMethod.WALLET:
        wallet = entity.get("wallet")
        return WalletDetail(name=_first(wallet.get("name") if isinstance(wallet, dict) else wallet))
    if method in (PaymentMethod.CARD, PaymentMethod.EMI):
        # EMI payments are card-backed
        card = _sub(entity, "card")
        return CardDetail(
            last4=_first(card.get("last4"), card.get("last4_digits")),
            network=_first(card.get("network"), card.get("card_network")),
            issuer=_first(card.get("issuer"), card.get("issuer_name")),
        )
    raise ValueError(f"Unhandled payment method: {method!r}")


def parse_amount(amount) -> Decimal:
    """Parse a major-unit amount; must be a finite, positive number."""
    if amount is None or amount == "" or isinstance(amount, bool):
        raise InvalidInput("Invalid amount: must be a positive number")
    try:
        value = Decimal(str(amount).strip())
    except (InvalidOperation, ValueError):
        raise InvalidInput("Invalid amount: must be a positive number")
    if not value.is_finite() or value <= 0:
        raise InvalidInput("Invalid amount: must be a positive number")
    return value


def to_minor_units(amount) -> int:
    """Major units -> gateway minor units (paise): round(amount * 100)."""
    return round(float(parse_amount(amount)) * 100)
