from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, replace
from typing import Any

from lease_calc.errors import InvalidInputError
from lease_calc.fees.table import FeeLookup, MakeFees, fees_for
from lease_calc.lease.taxation import TaxBasis, TaxPolicy
from lease_calc.money import round_half_up, round_percent
from lease_calc.validation import require_fields

logger = logging.getLogger(__name__)

DEFAULT_LEASE_TERM_MONTHS = 36
MF_TO_APR = 2400.0


@dataclass(frozen=True)
class LeaseInputs:
    msrp: float | None
    selling_price: float | None
    residual_value: float | None
    money_factor: float | None
    make: str = ""
    is_residual_percent: bool = True
    lease_term_months: int = DEFAULT_LEASE_TERM_MONTHS
    sales_tax_percent: float = 0.0
    total_fees: float = 0.0
    rebates: float = 0.0
    down_payment: float = 0.0
    tax_policy: TaxPolicy = TaxPolicy.ON_MONTHLY_PAYMENT
    zero_driveoff: bool = False


@dataclass(frozen=True)
class Residual:
    value: float
    percent: float


@dataclass(frozen=True)
class PaymentPass:
    net_cap_cost: float
    depreciation: float
    base_payment: float
    rent_charge: float

    @property
    def pre_tax_payment(self) -> float:
        return self.base_payment + self.rent_charge


@dataclass(frozen=True)
class DriveOffItem:
    type: str
    label: str
    amount: float


def resolve_residual(*, msrp: float, residual_value: float, is_percent: bool) -> Residual:
    if is_percent:
        return Residual(value=msrp * (residual_value / 100.0), percent=float(residual_value))
    return Residual(value=float(residual_value), percent=residual_value / msrp * 100.0)


def net_cap_cost(inputs: LeaseInputs, fees: MakeFees) -> float:
    # Zero drive-off rolls fees into the cap cost and leaves the down payment out of it.
    gross = inputs.selling_price + (
        inputs.total_fees + fees.acquisition_fee if inputs.zero_driveoff else 0.0
    )
    reduction = inputs.rebates + (0.0 if inputs.zero_driveoff else inputs.down_payment)
    return float(gross - reduction)


def compute_base(inputs: LeaseInputs, *, residual: Residual, net_cap_cost: float) -> PaymentPass:
    """
    Split the payment into depreciation and rent charge for a given cap cost.

    Under zero drive-off the first payment is capitalized rather than paid at
    signing, so depreciation is spread over one month fewer.
    """
    depreciation = net_cap_cost - residual.value
    months = inputs.lease_term_months - 1 if inputs.zero_driveoff else inputs.lease_term_months
    return PaymentPass(
        net_cap_cost=float(net_cap_cost),
        depreciation=float(depreciation),
        base_payment=float(depreciation / months),
        rent_charge=float((net_cap_cost + residual.value) * inputs.money_factor),
    )


def compute_final(
    inputs: LeaseInputs,
    base: PaymentPass,
    *,
    residual: Residual,
    tax: float,
) -> tuple[PaymentPass, float]:
    """
    Returns (final_pass, monthly_payment).

    Zero drive-off capitalizes the tax once and re-runs the base pass; the
    capitalized tax itself is not taxed again.
    """
    final = base
    if inputs.zero_driveoff:
        final = compute_base(inputs, residual=residual, net_cap_cost=base.net_cap_cost + tax)

    if not inputs.tax_policy.rule.adds_to_monthly_payment:
        return final, final.pre_tax_payment
    if inputs.zero_driveoff:
        return final, final.pre_tax_payment * (1.0 + inputs.sales_tax_percent / 100.0)
    return final, final.pre_tax_payment + tax


def _tax_basis(inputs: LeaseInputs, fees: MakeFees, pre_tax_payment: float) -> TaxBasis:
    return TaxBasis(
        selling_price=inputs.selling_price,
        pre_tax_payment=pre_tax_payment,
        lease_term_months=inputs.lease_term_months,
        down_payment=inputs.down_payment,
        total_fees=inputs.total_fees,
        rebates=inputs.rebates,
        acquisition_fee=fees.acquisition_fee,
        disposition_fee=fees.disposition_fee,
        zero_driveoff=inputs.zero_driveoff,
    )


@dataclass(frozen=True)
class LeaseResult:
    inputs: LeaseInputs
    fees: MakeFees
    residual: Residual
    base_pass: PaymentPass
    final_pass: PaymentPass
    tax: float
    drive_off_tax: float
    monthly_payment: float
    implied_apr: float

    @property
    def residual_value(self) -> float:
        return self.residual.value

    @property
    def residual_percent(self) -> float:
        return self.residual.percent

    @property
    def net_cap_cost(self) -> float:
        return self.final_pass.net_cap_cost

    @property
    def depreciation(self) -> float:
        return self.final_pass.depreciation

    @property
    def base_payment(self) -> float:
        return self.final_pass.base_payment

    @property
    def rent_charge(self) -> float:
        return self.final_pass.rent_charge

    @property
    def pre_tax_payment(self) -> float:
        return self.final_pass.pre_tax_payment

    def residual_value_rounded(self) -> float:
        return round_half_up(self.residual_value)

    def residual_percent_rounded(self) -> int:
        return round_percent(self.residual_percent)

    def base_payment_rounded(self) -> float:
        return round_half_up(self.base_payment)

    def rent_charge_rounded(self) -> float:
        return round_half_up(self.rent_charge)

    def pre_tax_payment_rounded(self) -> float:
        return round_half_up(self.pre_tax_payment)

    def monthly_payment_rounded(self) -> float:
        return round_half_up(self.monthly_payment)

    def apr(self) -> float:
        return round_half_up(self.implied_apr)

    def monthly_tax(self) -> float:
        """Tax charged with each payment; 0 when the policy taxes elsewhere."""
        if not self.inputs.tax_policy.rule.adds_to_monthly_payment:
            return 0.0
        return round_half_up(self.tax)

    def total_tax(self) -> float:
        if self.inputs.tax_policy.rule.adds_to_monthly_payment:
            return round_half_up(self.tax * self.inputs.lease_term_months + self.drive_off_tax)
        return round_half_up(self.drive_off_tax)

    def total_rent_charge(self) -> float:
        return round_half_up(self.rent_charge * self.inputs.lease_term_months)

    def drive_off_payment(self) -> float:
        if self.inputs.zero_driveoff:
            return 0.0
        driveoff = (
            self.drive_off_tax
            + self.inputs.down_payment
            + self.inputs.total_fees
            + self.monthly_payment  # first month
            + self.fees.acquisition_fee
        )
        return round_half_up(driveoff)

    def drive_off_breakdown(self) -> list[DriveOffItem] | None:
        if self.inputs.zero_driveoff:
            return None
        items = [
            DriveOffItem("taxes", "Taxes", round_half_up(self.drive_off_tax)),
            DriveOffItem("firstMonth", "First month", self.monthly_payment_rounded()),
            DriveOffItem("acquisitionFee", "Acquisition Fee", self.fees.acquisition_fee),
        ]
        if self.inputs.down_payment:
            items.append(DriveOffItem("downPayment", "Down Payment", float(self.inputs.down_payment)))
        if self.inputs.total_fees:
            items.append(DriveOffItem("totalFees", "Dealer & Government Fees", float(self.inputs.total_fees)))
        return items

    def total_lease_cost(self) -> float:
        # The first payment is already part of the drive-off amount.
        total = (
            self.monthly_payment * (self.inputs.lease_term_months - 1)
            + self.drive_off_payment()
            + self.fees.disposition_fee
        )
        return round_half_up(total)

    def discount_off_msrp_percent(self) -> float | None:
        """Percent below MSRP, or None when the car sold at or above MSRP."""
        msrp = self.inputs.msrp
        pct = round_half_up((msrp - self.inputs.selling_price) / msrp * 100.0)
        return None if pct <= 0 else pct

    def monthly_payment_to_msrp_percent(self) -> float:
        return round_half_up(self.monthly_payment / self.inputs.msrp * 100.0)

    def summary(self) -> dict[str, Any]:
        breakdown = self.drive_off_breakdown()
        return {
            "make": self.inputs.make,
            "tax_policy": self.inputs.tax_policy.value,
            "zero_driveoff": bool(self.inputs.zero_driveoff),
            "lease_term_months": int(self.inputs.lease_term_months),
            "residual_value": self.residual_value_rounded(),
            "residual_percent": self.residual_percent_rounded(),
            "net_cap_cost": round_half_up(self.net_cap_cost),
            "depreciation": round_half_up(self.depreciation),
            "base_payment": self.base_payment_rounded(),
            "rent_charge": self.rent_charge_rounded(),
            "monthly_payment_pre_tax": self.pre_tax_payment_rounded(),
            "monthly_tax": self.monthly_tax(),
            "monthly_payment": self.monthly_payment_rounded(),
            "apr": self.apr(),
            "acquisition_fee": self.fees.acquisition_fee,
            "disposition_fee": self.fees.disposition_fee,
            "drive_off_payment": self.drive_off_payment(),
            "drive_off_breakdown": None if breakdown is None else [asdict(item) for item in breakdown],
            "total_tax": self.total_tax(),
            "total_rent_charge": self.total_rent_charge(),
            "total_lease_cost": self.total_lease_cost(),
            "discount_off_msrp_percent": self.discount_off_msrp_percent(),
            "monthly_payment_to_msrp_percent": self.monthly_payment_to_msrp_percent(),
        }


def calculate_lease(inputs: LeaseInputs, *, fee_lookup: FeeLookup = fees_for) -> LeaseResult:
    require_fields(
        [
            ("MSRP", inputs.msrp),
            ("Selling Price", inputs.selling_price),
            ("Residual Value", inputs.residual_value),
            ("Money Factor", inputs.money_factor),
        ]
    )
    # Zero drive-off spreads depreciation over term - 1 months.
    if inputs.lease_term_months is None or inputs.lease_term_months < (2 if inputs.zero_driveoff else 1):
        raise InvalidInputError("Lease Term")

    inputs = replace(inputs, tax_policy=TaxPolicy.parse(inputs.tax_policy))
    policy = inputs.tax_policy
    fees = fee_lookup(inputs.make)

    residual = resolve_residual(
        msrp=inputs.msrp,
        residual_value=inputs.residual_value,
        is_percent=inputs.is_residual_percent,
    )
    base = compute_base(inputs, residual=residual, net_cap_cost=net_cap_cost(inputs, fees))
    tax = policy.recurring_tax(_tax_basis(inputs, fees, base.pre_tax_payment), inputs.sales_tax_percent)
    final, monthly = compute_final(inputs, base, residual=residual, tax=tax)
    drive_off_tax = policy.drive_off_tax(_tax_basis(inputs, fees, final.pre_tax_payment), inputs.sales_tax_percent)

    logger.debug(
        "lease make=%r policy=%s zero_driveoff=%s pre_tax=%.4f tax=%.4f monthly=%.4f",
        inputs.make,
        policy.value,
        inputs.zero_driveoff,
        final.pre_tax_payment,
        tax,
        monthly,
    )
    return LeaseResult(
        inputs=inputs,
        fees=fees,
        residual=residual,
        base_pass=base,
        final_pass=final,
        tax=float(tax),
        drive_off_tax=float(drive_off_tax),
        monthly_payment=float(monthly),
        implied_apr=float(inputs.money_factor * MF_TO_APR),
    )
