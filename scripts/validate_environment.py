#!/usr/bin/env python3
"""Validate local group booking engine readiness."""

from __future__ import annotations

import importlib
import shutil
import sys
import tempfile
from dataclasses import replace
from decimal import Decimal
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from groupbooking.repository.data_repository import DataRepository
from groupbooking.services.capacity_service import SlotCapacityFilter
from groupbooking.services.pricing_service import GroupPricingService
from groupbooking.utils.config import get_settings

SEPARATOR_LINE = "=" * 44


def _print_result(name: str, success: bool, detail: str = "") -> tuple[bool, str]:
    if success:
        return True, f"[PASS] {name}{detail}"
    return False, f"[FAIL] {name}: {detail}"


def main() -> int:
    results: list[str] = []
    all_passed = True
    temp_dir = tempfile.mkdtemp(prefix="groupbooking-env-")

    # CHECK 1: Python version >= 3.10
    if sys.version_info >= (3, 10):
        ok, line = _print_result("Python " + sys.version.split()[0], True)
    else:
        ok, line = _print_result(
            "Python version >= 3.10",
            False,
            f"found {sys.version.split()[0]}",
        )
    results.append(line)
    all_passed = all_passed and ok

    # CHECK 2: Required packages importable
    import_errors: list[str] = []
    for module_name in ("fastapi", "uvicorn", "pydantic", "httpx", "pytest"):
        try:
            importlib.import_module(module_name)
        except ImportError as exc:
            import_errors.append(f"{module_name} ({exc})")
    if import_errors:
        ok, line = _print_result(
            "Required packages",
            False,
            "missing/unimportable -> " + "; ".join(import_errors),
        )
    else:
        ok, line = _print_result("Required packages: all importable", True)
    results.append(line)
    all_passed = all_passed and ok

    try:
        validation_settings = replace(
            get_settings(),
            database_path=Path(temp_dir) / "groupbooking_validation.db",
        )
        repository = DataRepository(validation_settings)

        # CHECK 3: Database initialization and demo catalogue
        try:
            repository.initialize_database()
            repository.seed_demo_data()
            tiers = repository.get_tiers(3)
            if len(tiers) != 2:
                raise RuntimeError(f"expected 2 demo tiers, got {len(tiers)}")
            ok, line = _print_result("Database initialization + demo seed", True)
        except Exception as exc:
            ok, line = _print_result("Database initialization", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 4: Capacity check against the demo escape room (capacity 8)
        try:
            capacity_filter = SlotCapacityFilter(repository=repository, settings=validation_settings)
            remaining = capacity_filter.get_max_available(1, "2026-03-02", "10:00")
            if remaining != 8:
                raise RuntimeError(f"expected 8 places, got {remaining}")
            ok, line = _print_result("Capacity lookup", True, f": {remaining} places")
        except Exception as exc:
            ok, line = _print_result("Capacity lookup", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 5: Pricing breakdown consistency
        try:
            pricing = GroupPricingService(repository=repository, settings=validation_settings)
            quote = pricing.quote_for_resource(3, 12)
            line_sum = sum((item.value for item in quote.breakdown), Decimal("0"))
            if line_sum != quote.total:
                raise RuntimeError(f"breakdown {line_sum} != total {quote.total}")
            ok, line = _print_result("Tiered pricing", True, f": {quote.total_formatted}")
        except Exception as exc:
            ok, line = _print_result("Tiered pricing", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)

    print(SEPARATOR_LINE)
    print(" Group Booking Environment Validation")
    print(SEPARATOR_LINE)
    for line in results:
        print(f" {line}")
    print(SEPARATOR_LINE)
    if all_passed:
        print(" All checks passed. Environment is ready.")
        print(SEPARATOR_LINE)
        return 0
    print(" One or more checks failed.")
    print(SEPARATOR_LINE)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
