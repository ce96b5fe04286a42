from __future__ import annotations

from lease_calc.errors import UncalculatedStateError
from lease_calc.fees.table import FeeLookup, fees_for
from lease_calc.financing.loan import FinanceInputs, FinanceResult, calculate_finance
from lease_calc.lease.engine import LeaseInputs, LeaseResult, calculate_lease


class DealCalculator:
    """
    Remembers the last lease and finance results for callers that query a deal
    after calculating it. Results are immutable, so a failed calculation never
    disturbs the previous one. Use one instance per deal.
    """

    def __init__(self, *, fee_lookup: FeeLookup = fees_for) -> None:
        self._fee_lookup = fee_lookup
        self._lease: LeaseResult | None = None
        self._finance: FinanceResult | None = None

    def calculate(self, inputs: LeaseInputs) -> LeaseResult:
        result = calculate_lease(inputs, fee_lookup=self._fee_lookup)
        self._lease = result
        return result

    def calculate_finance(self, inputs: FinanceInputs) -> FinanceResult:
        result = calculate_finance(inputs)
        self._finance = result
        return result

    @property
    def lease(self) -> LeaseResult:
        if self._lease is None:
            raise UncalculatedStateError("lease: run calculate() first")
        return self._lease

    @property
    def finance(self) -> FinanceResult:
        if self._finance is None:
            raise UncalculatedStateError("finance: run calculate_finance() first")
        return self._finance
