"""
Sales Record Validation
========================
Input verification for sales history handed over by the host application.

Invalid rows are never fatal: they are dropped, counted and logged so a
forecast can still run on the remaining history.
"""

import math
import numbers
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from .models import SaleRecord, to_date
from .utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class ValidationResult:
    """
    Structured result of a validation operation.

    Attributes
    ----------
    is_valid : bool
        False when at least one record was rejected
    errors : List[str]
        One message per rejected record
    warnings : List[str]
        Non-critical issues to be aware of
    info : Dict[str, Any]
        Counts of checked/accepted/rejected records
    """
    is_valid: bool = True
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    info: Dict[str, Any] = field(default_factory=dict)

    def add_error(self, message: str) -> None:
        """Add an error and mark as invalid."""
        self.errors.append(message)
        self.is_valid = False

    def add_warning(self, message: str) -> None:
        """Add a warning (doesn't affect validity)."""
        self.warnings.append(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "is_valid": self.is_valid,
            "errors": self.errors,
            "warnings": self.warnings,
            "info": self.info
        }


def _is_bad_number(value) -> bool:
    return value is None or not isinstance(value, numbers.Real) or math.isnan(value) or math.isinf(value)


def _is_date(value) -> bool:
    try:
        to_date(value)
    except (TypeError, ValueError):
        return False
    return True


def check_sale_record(record: SaleRecord) -> List[str]:
    """Return the list of problems found in one record (empty when valid)."""
    problems = []
    if not _is_date(record.sale_date):
        problems.append(f"invalid sale_date={record.sale_date}")
    if not record.product_id:
        problems.append("missing product_id")
    if not record.market_id:
        problems.append("missing market_id")
    if _is_bad_number(record.quantity_sold) or record.quantity_sold < 0:
        problems.append(f"invalid quantity_sold={record.quantity_sold}")
    if _is_bad_number(record.unit_price) or record.unit_price < 0:
        problems.append(f"invalid unit_price={record.unit_price}")
    if _is_bad_number(record.unit_cost) or record.unit_cost < 0:
        problems.append(f"invalid unit_cost={record.unit_cost}")
    if record.waste_qty is not None and (_is_bad_number(record.waste_qty) or record.waste_qty < 0):
        problems.append(f"invalid waste_qty={record.waste_qty}")
    return problems


def validate_sales(records: List[SaleRecord]) -> Tuple[List[SaleRecord], ValidationResult]:
    """
    Split sales history into usable records and a validation report.

    Parameters
    ----------
    records : list of SaleRecord
        Raw sales ledger lines

    Returns
    -------
    tuple
        (valid records, ValidationResult)
    """
    result = ValidationResult()
    valid = []

    for index, record in enumerate(records):
        problems = check_sale_record(record)
        if problems:
            result.add_error(f"record {index} ({record.sale_date}): {', '.join(problems)}")
        else:
            valid.append(record)

    result.info["checked"] = len(records)
    result.info["accepted"] = len(valid)
    result.info["rejected"] = len(records) - len(valid)

    if not result.is_valid:
        logger.warning(
            f"Dropped {result.info['rejected']} of {len(records)} sale records "
            f"failing validation (first: {result.errors[0]})"
        )

    return valid, result
