from __future__ import annotations

from dataclasses import replace

import pytest

from lease_calc.errors import InvalidInputError
from lease_calc.fees.table import MakeFees
from lease_calc.lease.engine import (
    DriveOffItem,
    LeaseInputs,
    calculate_lease,
    compute_base,
    compute_final,
    net_cap_cost,
    resolve_residual,
)
from lease_calc.lease.taxation import TaxPolicy
from lease_calc.money import round_half_up

# Toyota: 650 acquisition, 350 disposition.
DEAL = LeaseInputs(
    make="Toyota",
    msrp=40_000.0,
    selling_price=38_000.0,
    residual_value=60.0,
    money_factor=0.0015,
    lease_term_months=36,
    sales_tax_percent=8.0,
    total_fees=1_000.0,
    tax_policy=TaxPolicy.ON_MONTHLY_PAYMENT,
)
ON_SALES_PRICE = replace(DEAL, tax_policy=TaxPolicy.ON_SALES_PRICE)
ON_TOTAL_LEASE = replace(DEAL, tax_policy=TaxPolicy.ON_TOTAL_LEASE_PAYMENT)
ALL_POLICIES = [DEAL, ON_SALES_PRICE, ON_TOTAL_LEASE]


@pytest.mark.parametrize(
    "field, overrides",
    [
        ("MSRP", {"msrp": None}),
        ("Selling Price", {"selling_price": None}),
        ("Residual Value", {"residual_value": None}),
        ("Money Factor", {"money_factor": None}),
        ("MSRP", {"msrp": 0}),
        ("Money Factor", {"money_factor": float("inf")}),
        ("MSRP", {"msrp": "40000"}),
        ("Residual Value", {"residual_value": True}),
    ],
)
def test_missing_required_field_is_named(field, overrides):
    with pytest.raises(InvalidInputError, match=f"Invalid Input: {field}"):
        calculate_lease(replace(DEAL, **overrides))


def test_validation_reports_fields_in_fixed_order():
    with pytest.raises(InvalidInputError) as exc:
        calculate_lease(replace(DEAL, money_factor=None, selling_price=None))
    assert exc.value.field == "Selling Price"


def test_zero_driveoff_needs_more_than_one_month():
    with pytest.raises(InvalidInputError, match="Lease Term"):
        calculate_lease(replace(DEAL, lease_term_months=1, zero_driveoff=True))


def test_fees_come_from_make():
    res = calculate_lease(DEAL)
    assert res.fees == MakeFees(650.0, 350.0)

    unknown = calculate_lease(replace(DEAL, make=""))
    assert unknown.fees.acquisition_fee == 0
    assert unknown.fees.disposition_fee == 0


def test_custom_fee_lookup_is_used():
    res = calculate_lease(DEAL, fee_lookup=lambda make: MakeFees(1_000.0, 500.0))
    assert res.summary()["acquisition_fee"] == 1_000.0
    assert res.summary()["disposition_fee"] == 500.0


def test_residual_from_percent():
    residual = resolve_residual(msrp=40_000.0, residual_value=60.0, is_percent=True)
    assert residual.value == 24_000.0
    assert residual.percent == 60.0


def test_residual_from_absolute_value():
    res = calculate_lease(replace(DEAL, residual_value=24_000.0, is_residual_percent=False))
    assert res.summary()["residual_percent"] == 60
    assert res.summary()["residual_value"] == 24_000.0
    # Same deal either way.
    assert res.monthly_payment == pytest.approx(calculate_lease(DEAL).monthly_payment)


def test_residual_percent_rounds_half_up_to_integer():
    res = calculate_lease(replace(DEAL, residual_value=25_000.0, is_residual_percent=False))
    assert res.residual_percent == 62.5
    assert res.residual_percent_rounded() == 63
    assert res.summary()["residual_percent"] == 63


def test_residual_percent_just_below_half_rounds_down():
    # 23000 / 40000 * 100 is 57.49999999999999 in binary floating point
    res = calculate_lease(replace(DEAL, residual_value=23_000.0, is_residual_percent=False))
    assert res.residual_percent_rounded() == 57


def test_residual_value_rounded_to_cents():
    res = calculate_lease(replace(DEAL, residual_value=57.333))
    assert res.residual_value == pytest.approx(22_933.2)
    assert res.residual_value_rounded() == 22_933.2
    assert res.summary()["residual_value"] == res.residual_value_rounded()


def test_rounded_accessors_match_summary():
    res = calculate_lease(replace(DEAL, zero_driveoff=True))
    summary = res.summary()
    assert summary["base_payment"] == res.base_payment_rounded()
    assert summary["rent_charge"] == res.rent_charge_rounded()
    assert summary["monthly_payment_pre_tax"] == res.pre_tax_payment_rounded()
    assert summary["monthly_payment"] == res.monthly_payment_rounded()
    assert isinstance(res.residual_percent_rounded(), int)


class TestTaxOnMonthlyPayment:
    def test_payment_zero_down(self):
        res = calculate_lease(DEAL)
        assert res.base_payment_rounded() == 388.89
        assert res.rent_charge_rounded() == 93.0
        assert res.pre_tax_payment_rounded() == 481.89
        assert res.monthly_tax() == 38.55
        assert res.monthly_payment_rounded() == 520.44

    def test_payment_with_down(self):
        res = calculate_lease(replace(DEAL, down_payment=3_000.0))
        assert res.monthly_payment_rounded() == 425.58
        assert res.drive_off_payment() == 5_447.58
        assert res.total_lease_cost() == 20_692.88

    def test_reports(self):
        res = calculate_lease(DEAL)
        assert res.apr() == 3.6
        assert res.discount_off_msrp_percent() == 5.0
        assert res.monthly_payment_to_msrp_percent() == 1.3
        assert res.drive_off_payment() == 2_302.44
        assert res.total_lease_cost() == 20_867.84
        assert res.total_tax() == 1_519.84
        assert res.total_rent_charge() == 3_348.0

    def test_zero_driveoff(self):
        res = calculate_lease(replace(DEAL, zero_driveoff=True))
        assert res.pre_tax_payment_rounded() == 543.92
        assert res.monthly_payment_rounded() == 587.44
        assert res.total_lease_cost() == 20_910.30
        assert res.drive_off_payment() == 0.0

    def test_zero_driveoff_taxes_rebates_with_payment(self):
        res = calculate_lease(replace(DEAL, rebates=500.0, zero_driveoff=True))
        assert res.tax == pytest.approx((res.base_pass.pre_tax_payment + 500.0) * 0.08)
        assert res.monthly_payment_rounded() == 572.46

    def test_base_rent_and_tax_add_up(self):
        res = calculate_lease(DEAL)
        total = res.base_payment_rounded() + res.rent_charge_rounded() + res.monthly_tax()
        assert round_half_up(total) == res.monthly_payment_rounded()

    def test_total_tax_is_monthly_tax_over_term_plus_drive_off(self):
        res = calculate_lease(DEAL)
        value = res.monthly_tax() * 36 + res.drive_off_tax
        assert round(value) == round(res.total_tax())


class TestTaxOnSalesPrice:
    def test_payment_has_no_tax(self):
        res = calculate_lease(ON_SALES_PRICE)
        assert res.monthly_payment_rounded() == 481.89
        assert res.monthly_payment == res.pre_tax_payment
        assert res.monthly_tax() == 0.0

    def test_payment_with_down(self):
        res = calculate_lease(replace(ON_SALES_PRICE, down_payment=3_000.0))
        assert res.monthly_payment_rounded() == 394.06
        assert res.drive_off_payment() == 8_084.06

    def test_tax_is_due_at_signing(self):
        res = calculate_lease(ON_SALES_PRICE)
        assert res.total_tax() == 3_040.0
        assert res.drive_off_payment() == 5_171.89
        assert res.total_lease_cost() == 22_388.0
        assert res.monthly_payment_to_msrp_percent() == 1.2

    def test_zero_driveoff_capitalizes_the_tax(self):
        res = calculate_lease(replace(ON_SALES_PRICE, zero_driveoff=True))
        assert res.net_cap_cost == pytest.approx(38_000.0 + 1_000.0 + 650.0 + 3_040.0)
        assert res.base_payment == pytest.approx(534.0)
        assert res.monthly_payment == pytest.approx(634.035)
        assert res.total_lease_cost() == pytest.approx(634.035 * 35 + 350.0, abs=0.01)


class TestTaxOnTotalLeasePayment:
    def test_payment_has_no_tax(self):
        res = calculate_lease(ON_TOTAL_LEASE)
        assert res.monthly_payment_rounded() == 481.89
        assert res.monthly_tax() == 0.0

    def test_tax_covers_every_payment_and_fee(self):
        res = calculate_lease(ON_TOTAL_LEASE)
        assert res.tax == pytest.approx(1_547.84)
        assert res.total_tax() == 1_547.84
        assert res.drive_off_payment() == 3_679.73
        assert res.total_lease_cost() == 20_895.84

    def test_payment_with_down(self):
        res = calculate_lease(replace(ON_TOTAL_LEASE, down_payment=3_000.0))
        assert res.total_tax() == 1_534.88
        assert res.drive_off_payment() == 6_578.94

    def test_zero_driveoff(self):
        res = calculate_lease(replace(ON_TOTAL_LEASE, zero_driveoff=True))
        assert res.pre_tax_payment_rounded() == 594.42
        assert res.monthly_payment_rounded() == 594.42
        assert res.total_lease_cost() == 21_154.81


@pytest.mark.parametrize("deal", ALL_POLICIES)
def test_base_payments_add_up_to_depreciation(deal):
    res = calculate_lease(deal)
    assert round(res.base_payment_rounded() * 36) == round(res.depreciation)


@pytest.mark.parametrize("deal", ALL_POLICIES)
def test_base_plus_rent_is_pre_tax_payment(deal):
    for zero_driveoff in (False, True):
        res = calculate_lease(replace(deal, zero_driveoff=zero_driveoff))
        assert round_half_up(res.base_payment + res.rent_charge) == res.pre_tax_payment_rounded()


@pytest.mark.parametrize("deal", [ON_SALES_PRICE, ON_TOTAL_LEASE])
def test_total_tax_is_drive_off_tax_for_upfront_policies(deal):
    res = calculate_lease(deal)
    assert res.total_tax() == round_half_up(res.drive_off_tax)


@pytest.mark.parametrize("selling_price", [40_000.0, 40_001.0])
def test_no_discount_when_selling_at_or_above_msrp(selling_price):
    res = calculate_lease(replace(DEAL, selling_price=selling_price))
    assert res.discount_off_msrp_percent() is None


def test_recapitalization_is_a_single_pass():
    inputs = replace(DEAL, zero_driveoff=True)
    fees = MakeFees(650.0, 350.0)
    residual = resolve_residual(msrp=40_000.0, residual_value=60.0, is_percent=True)

    base = compute_base(inputs, residual=residual, net_cap_cost=net_cap_cost(inputs, fees))
    assert base.net_cap_cost == 39_650.0
    assert base.base_payment == pytest.approx(15_650.0 / 35)

    final, monthly = compute_final(inputs, base, residual=residual, tax=100.0)
    assert final.net_cap_cost == pytest.approx(39_750.0)
    assert final.base_payment == pytest.approx(15_750.0 / 35)
    # tax applied as a rate after recapitalization, not added
    assert monthly == pytest.approx(final.pre_tax_payment * 1.08)


def test_without_zero_driveoff_final_pass_is_base_pass():
    inputs = DEAL
    residual = resolve_residual(msrp=40_000.0, residual_value=60.0, is_percent=True)
    base = compute_base(inputs, residual=residual, net_cap_cost=38_000.0)
    final, monthly = compute_final(inputs, base, residual=residual, tax=38.0)
    assert final is base
    assert monthly == pytest.approx(base.pre_tax_payment + 38.0)


class TestDriveOff:
    def test_includes_all_payments_and_taxes(self):
        res = calculate_lease(DEAL)
        tax = (650.0 + 0.0 + 1_000.0 + 0.0) * 0.08
        expected = 650.0 + 1_000.0 + res.monthly_payment_rounded() + tax
        assert res.drive_off_payment() == round_half_up(expected)

    def test_zero_when_zero_driveoff(self):
        res = calculate_lease(replace(DEAL, zero_driveoff=True))
        assert res.drive_off_payment() == 0.0
        assert res.drive_off_breakdown() is None

    def test_breakdown_defaults(self):
        res = calculate_lease(replace(DEAL, total_fees=0.0))
        assert res.drive_off_breakdown() == [
            DriveOffItem("taxes", "Taxes", 52.0),
            DriveOffItem("firstMonth", "First month", 520.44),
            DriveOffItem("acquisitionFee", "Acquisition Fee", 650.0),
        ]
        assert res.drive_off_payment() == 1_222.44

    def test_breakdown_includes_fees(self):
        items = calculate_lease(DEAL).drive_off_breakdown()
        assert [item.type for item in items] == ["taxes", "firstMonth", "acquisitionFee", "totalFees"]
        assert items[-1] == DriveOffItem("totalFees", "Dealer & Government Fees", 1_000.0)

    def test_breakdown_includes_down_payment(self):
        items = calculate_lease(replace(DEAL, down_payment=3_000.0, total_fees=0.0)).drive_off_breakdown()
        assert [item.type for item in items] == ["taxes", "firstMonth", "acquisitionFee", "downPayment"]
        assert items[-1].amount == 3_000.0


def test_tax_policy_given_as_text():
    res = calculate_lease(replace(DEAL, tax_policy="sales-price"))
    assert res.inputs.tax_policy is TaxPolicy.ON_SALES_PRICE


def test_summary_is_flat_and_rounded():
    summary = calculate_lease(DEAL).summary()
    assert summary["monthly_payment"] == 520.44
    assert summary["monthly_payment_pre_tax"] == 481.89
    assert summary["tax_policy"] == "monthly"
    assert summary["drive_off_breakdown"][0] == {"type": "taxes", "label": "Taxes", "amount": 132.0}


def test_results_are_independent():
    first = calculate_lease(DEAL)
    second = calculate_lease(replace(DEAL, down_payment=3_000.0))
    assert first.monthly_payment_rounded() == 520.44
    assert second.monthly_payment_rounded() == 425.58
