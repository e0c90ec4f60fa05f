"""
Invoice Calculator -- pure invoice math from raw item measurements.

Responsibility:
    Turns an ordered list of item measurements plus a silver rate and an
    optional tax configuration into per-item derived values and invoice
    totals.  This is the only place where the silver weight, labor and
    amount formulas live.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Called by SaleLifecycleManager before any row is written.

Formulas (per item):
    silver_weight = (touch + wastage) * net_weight / 100
    labor_charges = (gross_weight / 1000) * labor_rate_per_kg
    item_amount   = silver_weight * silver_rate + labor_charges

Invariants enforced:
    - Decimal arithmetic only.  Weights are quantized to 3 places and money
      to 2 places with ROUND_HALF_UP, per item, before totals are summed.
    - Totals are the sums of the rounded per-item values, so a printed
      invoice always adds up.
    - Same inputs produce the same Invoice, byte for byte.

Failure modes:
    - CalculationError on an empty item list, a missing or non-numeric
      measurement, a non-finite value, a boolean where a number is expected,
      a non-positive net weight, a negative measurement, a non-positive
      silver rate, or a negative tax percentage.  No partial invoices.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from silver_kernel.db.types import ZERO, round_money, round_rate, round_weight
from silver_kernel.exceptions import CalculationError

HUNDRED = Decimal("100")
THOUSAND = Decimal("1000")

# Incoming payloads from the billing screens use camelCase keys.
_FIELD_ALIASES = {
    "grossWeight": "gross_weight",
    "netWeight": "net_weight",
    "stoneWeight": "stone_weight",
    "laborRatePerKg": "labor_rate_per_kg",
    "productName": "description",
    "productId": "product_ref",
}

_OPTIONAL_ZERO_FIELDS = ("stone_weight", "wastage", "touch", "labor_rate_per_kg")


def to_decimal(value, field: str, item_index: int | None = None) -> Decimal:
    """
    Coerce a caller-supplied number to Decimal.

    Accepts Decimal, int, numeric strings, and floats (converted through
    their shortest repr so 0.1 becomes Decimal("0.1")).  Rejects booleans,
    non-numeric strings, NaN and infinities.
    """
    if isinstance(value, bool):
        raise CalculationError("boolean is not a measurement", item_index, field)
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation:
            raise CalculationError(f"not a number: {value!r}", item_index, field) from None
    else:
        raise CalculationError(
            f"unsupported type {type(value).__name__}", item_index, field
        )
    if not result.is_finite():
        raise CalculationError(f"not a finite number: {value!r}", item_index, field)
    return result


@dataclass(frozen=True)
class TaxConfig:
    """GST split applied to the subtotal when ``applicable`` is set."""

    applicable: bool = False
    cgst_percent: Decimal = Decimal("1.5")
    sgst_percent: Decimal = Decimal("1.5")


@dataclass(frozen=True)
class ItemMeasurement:
    """Raw measurements for one sale line, as weighed at the counter."""

    gross_weight: Decimal
    net_weight: Decimal
    stone_weight: Decimal = ZERO
    wastage: Decimal = ZERO
    touch: Decimal = ZERO
    labor_rate_per_kg: Decimal = ZERO
    pieces: int = 1
    description: str | None = None
    product_ref: str | None = None

    @classmethod
    def from_mapping(cls, data: Mapping, item_index: int = 0) -> "ItemMeasurement":
        """
        Build a measurement from a request payload.

        Missing optional measurements default to zero and pieces to 1.
        Both snake_case and camelCase keys are understood.
        """
        normalized = {_FIELD_ALIASES.get(k, k): v for k, v in data.items()}

        values: dict = {}
        for name in ("gross_weight", "net_weight"):
            raw = normalized.get(name)
            if raw is None or raw == "":
                raise CalculationError("measurement is required", item_index, name)
            values[name] = to_decimal(raw, name, item_index)
        for name in _OPTIONAL_ZERO_FIELDS:
            raw = normalized.get(name)
            values[name] = ZERO if raw is None or raw == "" else to_decimal(raw, name, item_index)

        pieces_raw = normalized.get("pieces")
        if pieces_raw is None or pieces_raw == "":
            pieces = 1
        else:
            pieces_dec = to_decimal(pieces_raw, "pieces", item_index)
            if pieces_dec != pieces_dec.to_integral_value():
                raise CalculationError("pieces must be a whole number", item_index, "pieces")
            pieces = int(pieces_dec)

        description = normalized.get("description")
        product_ref = normalized.get("product_ref")
        return cls(
            pieces=pieces,
            description=str(description) if description is not None else None,
            product_ref=str(product_ref) if product_ref is not None else None,
            **values,
        )


@dataclass(frozen=True)
class InvoiceLine:
    """One priced line: the measurements plus the derived values."""

    line_no: int
    measurement: ItemMeasurement
    silver_weight: Decimal
    labor_charges: Decimal
    item_amount: Decimal


@dataclass(frozen=True)
class Invoice:
    """Result of calculate_invoice()."""

    lines: tuple[InvoiceLine, ...]
    silver_rate: Decimal
    total_net_weight: Decimal
    total_wastage: Decimal
    total_silver_weight: Decimal
    total_labor_charges: Decimal
    subtotal: Decimal
    tax_applicable: bool
    cgst_percent: Decimal
    sgst_percent: Decimal
    cgst: Decimal
    sgst: Decimal
    total_amount: Decimal


def _validate(measurement: ItemMeasurement, index: int) -> None:
    for name in ("gross_weight", "net_weight", *_OPTIONAL_ZERO_FIELDS):
        value = to_decimal(getattr(measurement, name), name, index)
        if value < ZERO:
            raise CalculationError("must not be negative", index, name)
    if to_decimal(measurement.net_weight, "net_weight", index) <= ZERO:
        raise CalculationError("must be greater than zero", index, "net_weight")
    if measurement.pieces < 1:
        raise CalculationError("must be at least 1", index, "pieces")


def _price_line(
    measurement: ItemMeasurement, line_no: int, silver_rate: Decimal
) -> InvoiceLine:
    net_weight = to_decimal(measurement.net_weight, "net_weight", line_no)
    gross_weight = to_decimal(measurement.gross_weight, "gross_weight", line_no)
    touch = to_decimal(measurement.touch, "touch", line_no)
    wastage = to_decimal(measurement.wastage, "wastage", line_no)
    labor_rate = to_decimal(measurement.labor_rate_per_kg, "labor_rate_per_kg", line_no)

    silver_weight = round_weight((touch + wastage) * net_weight / HUNDRED)
    labor_charges = round_money(gross_weight / THOUSAND * labor_rate)
    item_amount = round_money(silver_weight * silver_rate + labor_charges)

    return InvoiceLine(
        line_no=line_no,
        measurement=measurement,
        silver_weight=silver_weight,
        labor_charges=labor_charges,
        item_amount=item_amount,
    )


def calculate_invoice(
    items: Sequence[ItemMeasurement | Mapping],
    silver_rate,
    tax: TaxConfig | None = None,
) -> Invoice:
    """
    Price a list of items at a silver rate.

    Args:
        items: Ordered item measurements, as ItemMeasurement or mappings.
        silver_rate: Rate per gram of fine silver.
        tax: Optional GST configuration.  None means no tax.

    Returns:
        Invoice with one InvoiceLine per item, in input order.

    Raises:
        CalculationError: On any invalid input; nothing is partially priced.
    """
    if not items:
        raise CalculationError("a sale needs at least one item")

    rate = to_decimal(silver_rate, "silver_rate")
    if rate <= ZERO:
        raise CalculationError(f"silver rate must be positive, got {rate}", field="silver_rate")

    tax = tax or TaxConfig()
    cgst_percent = to_decimal(tax.cgst_percent, "cgst_percent")
    sgst_percent = to_decimal(tax.sgst_percent, "sgst_percent")
    if cgst_percent < ZERO or sgst_percent < ZERO:
        raise CalculationError("tax percentages must not be negative", field="tax")

    measurements = []
    for index, item in enumerate(items):
        if isinstance(item, ItemMeasurement):
            measurement = item
        elif isinstance(item, Mapping):
            measurement = ItemMeasurement.from_mapping(item, index)
        else:
            raise CalculationError(
                f"unsupported item type {type(item).__name__}", item_index=index
            )
        _validate(measurement, index)
        measurements.append(measurement)

    lines = tuple(
        _price_line(measurement, line_no, rate)
        for line_no, measurement in enumerate(measurements, start=1)
    )

    total_net_weight = round_weight(
        sum((to_decimal(line.measurement.net_weight, "net_weight") for line in lines), ZERO)
    )
    total_wastage = round_rate(
        sum((to_decimal(line.measurement.wastage, "wastage") for line in lines), ZERO)
    )
    total_silver_weight = sum((line.silver_weight for line in lines), ZERO)
    total_labor_charges = sum((line.labor_charges for line in lines), ZERO)
    subtotal = sum((line.item_amount for line in lines), ZERO)

    if tax.applicable:
        cgst = round_money(subtotal * cgst_percent / HUNDRED)
        sgst = round_money(subtotal * sgst_percent / HUNDRED)
    else:
        cgst = round_money(ZERO)
        sgst = round_money(ZERO)
    total_amount = subtotal + cgst + sgst

    return Invoice(
        lines=lines,
        silver_rate=round_rate(rate),
        total_net_weight=total_net_weight,
        total_wastage=total_wastage,
        total_silver_weight=round_weight(total_silver_weight),
        total_labor_charges=round_money(total_labor_charges),
        subtotal=round_money(subtotal),
        tax_applicable=bool(tax.applicable),
        cgst_percent=round_rate(cgst_percent),
        sgst_percent=round_rate(sgst_percent),
        cgst=cgst,
        sgst=sgst,
        total_amount=round_money(total_amount),
    )
