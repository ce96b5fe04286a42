from __future__ import annotations

import argparse
import json
import logging
import os
from typing import Any

import pandas as pd

from lease_calc.fees.table import FeeLookup, FeeTable, fees_for
from lease_calc.financing.loan import FinanceInputs, calculate_finance
from lease_calc.lease.engine import DEFAULT_LEASE_TERM_MONTHS, LeaseInputs, calculate_lease
from lease_calc.lease.taxation import TaxPolicy

logger = logging.getLogger(__name__)

# Summary keys that echo batch input columns or don't fit in a flat CSV row.
_BATCH_SKIPPED_KEYS = {"make", "tax_policy", "zero_driveoff", "lease_term_months", "drive_off_breakdown"}
# residual_value is an input column (percent or amount); the result is always an amount.
_BATCH_RENAMED_KEYS = {"residual_value": "residual_amount"}


def _mkdirp(path: str) -> None:
    d = os.path.dirname(path)
    if d:
        os.makedirs(d, exist_ok=True)


def _fee_lookup(args: argparse.Namespace) -> FeeLookup:
    if args.fee_table:
        return FeeTable.from_csv(args.fee_table).fees_for
    return fees_for


def cmd_lease(args: argparse.Namespace) -> int:
    inputs = LeaseInputs(
        make=args.make,
        msrp=args.msrp,
        selling_price=args.selling_price,
        residual_value=args.residual,
        is_residual_percent=not args.residual_absolute,
        money_factor=args.money_factor,
        lease_term_months=args.term_months,
        sales_tax_percent=args.sales_tax,
        total_fees=args.fees,
        rebates=args.rebates,
        down_payment=args.down_payment,
        tax_policy=TaxPolicy.parse(args.tax_policy),
        zero_driveoff=args.zero_driveoff,
    )
    try:
        result = calculate_lease(inputs, fee_lookup=_fee_lookup(args))
    except ValueError as e:
        raise SystemExit(str(e)) from e
    print(json.dumps(result.summary(), indent=2, sort_keys=True))
    return 0


def cmd_finance(args: argparse.Namespace) -> int:
    inputs = FinanceInputs(
        make=args.make,
        selling_price=args.selling_price,
        apr=args.apr,
        finance_term_months=args.term_months,
        sales_tax_percent=args.sales_tax,
        rebates=args.rebates,
        down_payment=args.down_payment,
        taxable_fees=args.taxable_fees,
        untaxable_fees=args.untaxable_fees,
        trade_in=args.trade_in,
    )
    try:
        result = calculate_finance(inputs)
    except ValueError as e:
        raise SystemExit(str(e)) from e
    print(json.dumps(result.summary(), indent=2, sort_keys=True))
    return 0


def _cell(row: dict[str, Any], col: str, default: Any = None) -> Any:
    v = row.get(col, default)
    if v is None or (not isinstance(v, str) and pd.isna(v)):
        return default
    return v


def _as_bool(v: Any) -> bool:
    if isinstance(v, str):
        return v.strip().lower() in {"1", "true", "yes", "y"}
    return bool(v)


def lease_inputs_from_row(row: dict[str, Any]) -> LeaseInputs:
    """
    Build lease inputs from one CSV record. Missing optional cells fall back to
    the usual defaults; missing required cells are left for validation to reject.
    """

    def required(col: str) -> float | None:
        v = _cell(row, col)
        return None if v is None else float(v)

    return LeaseInputs(
        make=str(_cell(row, "make", "")),
        msrp=required("msrp"),
        selling_price=required("selling_price"),
        residual_value=required("residual_value"),
        is_residual_percent=_as_bool(_cell(row, "is_residual_percent", True)),
        money_factor=required("money_factor"),
        lease_term_months=int(_cell(row, "lease_term_months", DEFAULT_LEASE_TERM_MONTHS)),
        sales_tax_percent=float(_cell(row, "sales_tax_percent", 0.0)),
        total_fees=float(_cell(row, "total_fees", 0.0)),
        rebates=float(_cell(row, "rebates", 0.0)),
        down_payment=float(_cell(row, "down_payment", 0.0)),
        tax_policy=TaxPolicy.parse(_cell(row, "tax_policy", TaxPolicy.ON_MONTHLY_PAYMENT)),
        zero_driveoff=_as_bool(_cell(row, "zero_driveoff", False)),
    )


def price_lease_batch(df: pd.DataFrame, *, fee_lookup: FeeLookup = fees_for) -> pd.DataFrame:
    rows: list[dict[str, Any]] = []
    for i, record in enumerate(df.to_dict(orient="records")):
        try:
            result = calculate_lease(lease_inputs_from_row(record), fee_lookup=fee_lookup)
        except ValueError as e:
            logger.warning("row %d rejected: %s", i, e)
            rows.append({"error": str(e)})
            continue
        out = {
            _BATCH_RENAMED_KEYS.get(k, k): v for k, v in result.summary().items() if k not in _BATCH_SKIPPED_KEYS
        }
        out["error"] = None
        rows.append(out)

    results = pd.DataFrame(rows, index=df.index)
    if "error" not in results.columns:
        results["error"] = None
    # Re-pricing an already priced file replaces its result columns.
    stale = [c for c in results.columns if c in df.columns]
    return pd.concat([df.drop(columns=stale), results], axis=1)


def cmd_lease_batch(args: argparse.Namespace) -> int:
    df = pd.read_csv(args.csv)
    try:
        fee_lookup = _fee_lookup(args)
    except ValueError as e:
        raise SystemExit(str(e)) from e
    out_df = price_lease_batch(df, fee_lookup=fee_lookup)
    _mkdirp(args.out_csv)
    out_df.to_csv(args.out_csv, index=False)

    n_failed = int(out_df["error"].notna().sum())
    logger.info("priced %d leases (%d rejected)", len(out_df) - n_failed, n_failed)
    print(json.dumps({"out_csv": args.out_csv, "n_rows": int(len(out_df)), "n_rejected": n_failed}, indent=2, sort_keys=True))
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="lease-calc")
    p.add_argument("--fee-table", default=None, help="CSV with make,acquisition_fee,disposition_fee columns.")
    p.add_argument("--log-level", default="WARNING")
    sub = p.add_subparsers(dest="cmd", required=True)

    le = sub.add_parser("lease", help="Calculate a lease payment, drive-off and total cost.")
    le.add_argument("--make", default="")
    le.add_argument("--msrp", type=float, required=True)
    le.add_argument("--selling-price", type=float, required=True)
    le.add_argument("--residual", type=float, required=True, help="Percent of MSRP unless --residual-absolute.")
    le.add_argument("--residual-absolute", action="store_true", default=False)
    le.add_argument("--money-factor", type=float, required=True)
    le.add_argument("--term-months", type=int, default=DEFAULT_LEASE_TERM_MONTHS)
    le.add_argument("--sales-tax", type=float, default=0.0, help="Sales tax in percent (e.g. 9.5).")
    le.add_argument("--fees", type=float, default=0.0, help="Dealer and government fees.")
    le.add_argument("--rebates", type=float, default=0.0)
    le.add_argument("--down-payment", type=float, default=0.0)
    le.add_argument(
        "--tax-policy",
        choices=[policy.value for policy in TaxPolicy],
        default=TaxPolicy.ON_MONTHLY_PAYMENT.value,
    )
    le.add_argument("--zero-driveoff", action="store_true", default=False, help="Capitalize fees and taxes.")
    le.set_defaults(func=cmd_lease)

    fi = sub.add_parser("finance", help="Calculate a loan payment, total cost and interest.")
    fi.add_argument("--make", default="")
    fi.add_argument("--selling-price", type=float, required=True)
    fi.add_argument("--apr", type=float, required=True, help="Annual rate in percent (e.g. 3.5).")
    fi.add_argument("--term-months", type=int, required=True)
    fi.add_argument("--sales-tax", type=float, default=0.0)
    fi.add_argument("--rebates", type=float, default=0.0)
    fi.add_argument("--down-payment", type=float, default=0.0)
    fi.add_argument("--taxable-fees", type=float, default=0.0)
    fi.add_argument("--untaxable-fees", type=float, default=0.0, help="Government fees not subject to sales tax.")
    fi.add_argument("--trade-in", type=float, default=0.0)
    fi.set_defaults(func=cmd_finance)

    lb = sub.add_parser("lease-batch", help="Price every lease deal in a CSV.")
    lb.add_argument("--csv", required=True)
    lb.add_argument("--out-csv", required=True)
    lb.set_defaults(func=cmd_lease_batch)

    return p


def main(argv: list[str] | None = None) -> int:
    p = build_parser()
    args = p.parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format="%(levelname)s %(name)s: %(message)s")
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
