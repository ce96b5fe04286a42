from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from lease_calc.errors import InvalidInputError
from lease_calc.money import round_half_up
from lease_calc.validation import require_fields

logger = logging.getLogger(__name__)


def _monthly_rate_from_apr(apr: float) -> float:
    # APR is a nominal annual percentage (e.g. 3.5 for 3.5%), compounded monthly.
    return apr / 100.0 / 12.0


def monthly_payment(*, principal: float, apr: float, term_months: int) -> float:
    """
    Standard fixed-rate, fully amortizing loan payment.

    principal: amount financed today
    apr: nominal annual interest rate in percent (e.g. 3.5 for 3.5%)
    term_months: number of monthly payments
    """
    if term_months <= 0:
        raise ValueError("term_months must be > 0")

    r = _monthly_rate_from_apr(apr)
    n = term_months
    if abs(r) < 1e-12:
        return float(principal) / n

    # M = P * r(1+r)^n / ((1+r)^n - 1)
    growth = (1.0 + r) ** n
    return float(principal * r * growth / (growth - 1.0))


@dataclass(frozen=True)
class FinanceInputs:
    selling_price: float | None
    apr: float | None
    finance_term_months: int | None
    make: str = ""
    sales_tax_percent: float = 0.0
    rebates: float = 0.0
    down_payment: float = 0.0
    taxable_fees: float = 0.0
    untaxable_fees: float = 0.0
    trade_in: float = 0.0


@dataclass(frozen=True)
class FinanceResult:
    inputs: FinanceInputs
    amount_financed: float
    monthly_payment: float
    total_cost: float
    total_interest: float

    def summary(self) -> dict[str, Any]:
        return {
            "make": self.inputs.make,
            "finance_term_months": int(self.inputs.finance_term_months),
            "apr": float(self.inputs.apr),
            "amount_financed": round_half_up(self.amount_financed),
            "monthly_payment": round_half_up(self.monthly_payment),
            "total_cost": round_half_up(self.total_cost),
            "total_interest": round_half_up(self.total_interest),
        }


def amount_financed(inputs: FinanceInputs) -> float:
    """
    Selling price plus fees and sales tax, less down payment, trade-in and rebates.
    Sales tax applies to the selling price and the taxable fees only.
    """
    rate = inputs.sales_tax_percent / 100.0
    return float(
        inputs.selling_price
        - inputs.down_payment
        - inputs.trade_in
        - inputs.rebates
        + inputs.untaxable_fees
        + inputs.taxable_fees
        + inputs.taxable_fees * rate
        + inputs.selling_price * rate
    )


def calculate_finance(inputs: FinanceInputs) -> FinanceResult:
    require_fields(
        [
            ("Selling Price", inputs.selling_price),
            ("APR", inputs.apr),
            ("Finance Term", inputs.finance_term_months),
        ]
    )

    term = int(inputs.finance_term_months)
    if term <= 0:
        raise InvalidInputError("Finance Term")

    principal = amount_financed(inputs)
    pmt = monthly_payment(principal=principal, apr=inputs.apr, term_months=term)

    paid_upfront = inputs.down_payment + inputs.trade_in
    total_cost = pmt * term + paid_upfront
    total_interest = total_cost - principal - paid_upfront

    logger.debug(
        "finance make=%r principal=%.2f apr=%s term=%d payment=%.4f",
        inputs.make,
        principal,
        inputs.apr,
        term,
        pmt,
    )
    return FinanceResult(
        inputs=inputs,
        amount_financed=principal,
        monthly_payment=float(pmt),
        total_cost=float(total_cost),
        total_interest=float(total_interest),
    )
