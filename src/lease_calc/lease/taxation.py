from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True)
class TaxBasis:
    """Deal amounts a tax rule may draw its taxable base from."""

    selling_price: float
    pre_tax_payment: float
    lease_term_months: int
    down_payment: float
    total_fees: float
    rebates: float
    acquisition_fee: float
    disposition_fee: float
    zero_driveoff: bool


class TaxRule:
    # Whether the recurring tax is charged on top of each monthly payment.
    adds_to_monthly_payment: bool = False

    def recurring_base(self, b: TaxBasis) -> float:
        raise NotImplementedError

    def drive_off_base(self, b: TaxBasis) -> float:
        raise NotImplementedError


class MonthlyPaymentRule(TaxRule):
    adds_to_monthly_payment = True

    def recurring_base(self, b: TaxBasis) -> float:
        return b.pre_tax_payment + (b.rebates if b.zero_driveoff else 0.0)

    def drive_off_base(self, b: TaxBasis) -> float:
        return b.down_payment + b.total_fees + b.rebates + b.acquisition_fee


class SalesPriceRule(TaxRule):
    def recurring_base(self, b: TaxBasis) -> float:
        return b.selling_price

    def drive_off_base(self, b: TaxBasis) -> float:
        return b.selling_price


class TotalLeasePaymentRule(TaxRule):
    def recurring_base(self, b: TaxBasis) -> float:
        return (
            b.pre_tax_payment * b.lease_term_months
            + b.down_payment
            + b.total_fees
            + b.acquisition_fee
            + b.disposition_fee
        )

    def drive_off_base(self, b: TaxBasis) -> float:
        return self.recurring_base(b) + b.rebates


class TaxPolicy(str, Enum):
    ON_MONTHLY_PAYMENT = "monthly"
    ON_SALES_PRICE = "sales-price"
    ON_TOTAL_LEASE_PAYMENT = "total-lease"

    @classmethod
    def parse(cls, value: "TaxPolicy | str") -> "TaxPolicy":
        """Accept a member, its value ("sales-price") or its name ("ON_SALES_PRICE")."""
        if isinstance(value, cls):
            return value
        text = str(value).strip()
        for member in cls:
            if text == member.value or text.upper() == member.name:
                return member
        raise ValueError(f"unknown tax policy: {value!r}")

    @property
    def rule(self) -> TaxRule:
        return _RULES[self]

    def recurring_tax(self, basis: TaxBasis, sales_tax_percent: float) -> float:
        return self.rule.recurring_base(basis) * (sales_tax_percent / 100.0)

    def drive_off_tax(self, basis: TaxBasis, sales_tax_percent: float) -> float:
        # Due at signing; a separate tax event from the recurring tax.
        return self.rule.drive_off_base(basis) * (sales_tax_percent / 100.0)


_RULES: dict[TaxPolicy, TaxRule] = {
    TaxPolicy.ON_MONTHLY_PAYMENT: MonthlyPaymentRule(),
    TaxPolicy.ON_SALES_PRICE: SalesPriceRule(),
    TaxPolicy.ON_TOTAL_LEASE_PAYMENT: TotalLeasePaymentRule(),
}
