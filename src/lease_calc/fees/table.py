from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Mapping

import pandas as pd


@dataclass(frozen=True)
class MakeFees:
    acquisition_fee: float = 0.0
    disposition_fee: float = 0.0


NO_FEES = MakeFees()

FeeLookup = Callable[[str], MakeFees]

# Captive-lender lease fees by make (acquisition, disposition).
_DEFAULT_FEES: dict[str, tuple[float, float]] = {
    "Acura": (595.0, 350.0),
    "Audi": (895.0, 495.0),
    "BMW": (925.0, 350.0),
    "Chevrolet": (695.0, 395.0),
    "Ford": (645.0, 395.0),
    "Genesis": (795.0, 400.0),
    "Honda": (595.0, 350.0),
    "Hyundai": (650.0, 400.0),
    "Infiniti": (795.0, 395.0),
    "Kia": (650.0, 400.0),
    "Lexus": (825.0, 395.0),
    "Mazda": (650.0, 350.0),
    "Mercedes-Benz": (1095.0, 595.0),
    "Nissan": (700.0, 395.0),
    "Subaru": (595.0, 350.0),
    "Tesla": (695.0, 0.0),
    "Toyota": (650.0, 350.0),
    "Volkswagen": (675.0, 395.0),
    "Volvo": (795.0, 395.0),
}


def _key(make: str) -> str:
    return (make or "").strip().casefold()


@dataclass(frozen=True)
class FeeTable:
    fees: Mapping[str, MakeFees] = field(default_factory=dict)

    @classmethod
    def from_pairs(cls, pairs: Mapping[str, tuple[float, float]]) -> "FeeTable":
        return cls({_key(make): MakeFees(float(acq), float(disp)) for make, (acq, disp) in pairs.items()})

    @classmethod
    def from_csv(cls, path: str) -> "FeeTable":
        """
        Load a fee table from a CSV with columns make, acquisition_fee, disposition_fee.
        Blank fee cells are treated as 0.
        """
        df = pd.read_csv(path)
        required = {"make", "acquisition_fee", "disposition_fee"}
        missing = required - set(df.columns)
        if missing:
            raise ValueError(f"fee table missing columns: {sorted(missing)}")

        df[["acquisition_fee", "disposition_fee"]] = df[["acquisition_fee", "disposition_fee"]].fillna(0.0)
        pairs = {
            str(row.make): (float(row.acquisition_fee), float(row.disposition_fee))
            for row in df.itertuples(index=False)
        }
        return cls.from_pairs(pairs)

    def fees_for(self, make: str) -> MakeFees:
        return self.fees.get(_key(make), NO_FEES)


DEFAULT_FEE_TABLE = FeeTable.from_pairs(_DEFAULT_FEES)


def fees_for(make: str) -> MakeFees:
    """Acquisition and disposition fee for a make; unknown or empty makes carry no fees."""
    return DEFAULT_FEE_TABLE.fees_for(make)
