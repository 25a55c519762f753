"""
System sizing from an electricity bill and panel technology recommendation.

None of these functions raise: missing or malformed wizard input degrades to
zero capacity or the documented default choice.
"""

import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Union

from .assumptions import (
    DAYS_PER_MONTH,
    FALLBACK_WATT_PEAK_OPTIONS,
    PANEL_DESCRIPTIONS,
    WATT_PEAK_OPTIONS,
)

# Plates assumed when no capacity is known yet
FALLBACK_PLATE_COUNT = 12

INDUSTRIAL_LARGE_SYSTEM_KW = 50

_NON_NUMERIC = re.compile(r'[^0-9.]')


class PanelKind(str, Enum):
    POLY = 'Poly'
    MONO = 'Mono'
    TOPCON = 'TOPCon'
    BIFACIAL = 'Bifacial'


class Category(str, Enum):
    RESIDENTIAL = 'Residential'
    COMMERCIAL = 'Commercial'
    INDUSTRIAL = 'Industrial'
    GROUND = 'Ground'


class BudgetTier(str, Enum):
    LOW = 'low'
    MEDIUM = 'medium'
    HIGH = 'high'


class SunCondition(str, Enum):
    SUNNY = 'sunny'
    CLOUDY = 'cloudy'


_CATEGORY_ALIASES = {
    'residential': Category.RESIDENTIAL,
    'commercial': Category.COMMERCIAL,
    'industrial': Category.INDUSTRIAL,
    'ground': Category.GROUND,
    'ground mounted': Category.GROUND,
}


@dataclass(frozen=True)
class PlateCount:
    """Module count needed to cover a target capacity."""
    plate_count: int
    total_kw: float


def _finite_or_zero(value) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def _coerce(enum_cls, value, default):
    if value is None:
        return default
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        return None


def parse_bill_amount(raw: Union[str, float, int, None]) -> float:
    """
    Parse a free-text bill entry such as "Rs 4,000" into a number.

    Args:
        raw: User entry or number; only digits and '.' are kept from strings

    Returns:
        Non-negative bill amount, 0.0 for anything unparseable
    """
    if raw is None or isinstance(raw, bool):
        return 0.0
    if isinstance(raw, (int, float)):
        return max(0.0, _finite_or_zero(raw))

    cleaned = _NON_NUMERIC.sub('', str(raw))
    return max(0.0, _finite_or_zero(cleaned))


def normalize_billing_cycle(billing_cycle: Union[str, int, None]) -> int:
    """Return 2 for a two-month bill ('2m' or 2), otherwise 1."""
    if billing_cycle in (2, '2', '2m'):
        return 2
    return 1


def normalize_category(category: Optional[str]) -> Optional[Category]:
    """Map wizard ids and display labels to a Category; unrecognized -> None."""
    if isinstance(category, Category):
        return category
    if category is None:
        return None
    return _CATEGORY_ALIASES.get(str(category).strip().lower())


def compute_required_capacity_kw(
    bill_amount: Union[str, float, int, None],
    billing_cycle: Union[str, int, None] = '1m',
    tariff: float = 8.0,
    sun_hours: float = 5.0,
    performance_ratio: float = 0.85
) -> float:
    """
    Estimate the system size (kW) needed to cover a monthly electricity bill.

    Required kW = (monthly bill / tariff) / (sun hours * PR * 30)

    Args:
        bill_amount: Bill amount (INR), number or free text
        billing_cycle: '1m' or '2m'; a two-month bill is halved
        tariff: Price per kWh (INR)
        sun_hours: Average peak sun hours per day
        performance_ratio: System losses factor

    Returns:
        Required capacity in kW, unrounded; 0.0 for an empty bill
    """
    bill = parse_bill_amount(bill_amount)
    tariff = _finite_or_zero(tariff)
    monthly_gen_per_kw = _finite_or_zero(sun_hours) * _finite_or_zero(performance_ratio) * DAYS_PER_MONTH

    if bill <= 0 or tariff <= 0 or monthly_gen_per_kw <= 0:
        return 0.0

    monthly_bill = bill / normalize_billing_cycle(billing_cycle)
    monthly_units = monthly_bill / tariff
    return max(0.0, monthly_units / monthly_gen_per_kw)


def suggest_panel_kind(
    category: Union[Category, str, None],
    budget_tier: Union[BudgetTier, str, None] = BudgetTier.MEDIUM,
    required_capacity_kw: Optional[float] = 0.0,
    sun_condition: Union[SunCondition, str, None] = SunCondition.SUNNY
) -> PanelKind:
    """
    Recommend a panel technology for a project.

    A missing category is treated as Residential; a category that is given
    but unrecognized gets Poly.
    """
    budget = _coerce(BudgetTier, budget_tier, BudgetTier.MEDIUM)
    cloudy = _coerce(SunCondition, sun_condition, SunCondition.SUNNY) is SunCondition.CLOUDY
    demand_kw = _finite_or_zero(required_capacity_kw)
    kind = Category.RESIDENTIAL if category is None else normalize_category(category)

    if kind is Category.RESIDENTIAL:
        if budget is BudgetTier.LOW:
            return PanelKind.POLY
        if budget is BudgetTier.MEDIUM:
            return PanelKind.MONO
        if budget is BudgetTier.HIGH:
            return PanelKind.TOPCON if cloudy else PanelKind.MONO
    if kind is Category.COMMERCIAL:
        return PanelKind.MONO if budget is BudgetTier.HIGH else PanelKind.POLY
    if kind is Category.INDUSTRIAL:
        if demand_kw > INDUSTRIAL_LARGE_SYSTEM_KW:
            return PanelKind.BIFACIAL if budget is BudgetTier.HIGH else PanelKind.POLY
        if budget is BudgetTier.HIGH:
            return PanelKind.TOPCON if cloudy else PanelKind.MONO
        if budget is BudgetTier.MEDIUM:
            return PanelKind.MONO
        return PanelKind.POLY
    if kind is Category.GROUND:
        return PanelKind.BIFACIAL if budget is BudgetTier.HIGH else PanelKind.POLY
    return PanelKind.POLY


def watt_peak_options_for(panel_kind: Union[PanelKind, str, None]) -> List[int]:
    """Get the three module wattages offered for a panel technology."""
    key = panel_kind.value if isinstance(panel_kind, PanelKind) else panel_kind
    return list(WATT_PEAK_OPTIONS.get(key, FALLBACK_WATT_PEAK_OPTIONS))


def default_watt_peak(panel_kind: Union[PanelKind, str, None]) -> int:
    """Middle wattage of the options, preselected in the wizard."""
    options = watt_peak_options_for(panel_kind)
    return options[len(options) // 2]


def panel_description(panel_kind: Union[PanelKind, str, None]) -> str:
    key = panel_kind.value if isinstance(panel_kind, PanelKind) else panel_kind
    return PANEL_DESCRIPTIONS.get(key, '')


def compute_plate_count(target_capacity_kw: Optional[float], watt_peak: Optional[float]) -> PlateCount:
    """
    Calculate how many modules cover a target capacity.

    Args:
        target_capacity_kw: Desired capacity (kW); when unknown a 12-plate
            system is assumed
        watt_peak: Rated output of one module (Wp)

    Returns:
        PlateCount whose total_kw is never below the target
    """
    wp = _finite_or_zero(watt_peak)
    if wp <= 0:
        wp = default_watt_peak(None)

    target_kw = _finite_or_zero(target_capacity_kw)
    if target_kw <= 0:
        target_kw = wp * FALLBACK_PLATE_COUNT / 1000

    plates = max(1, math.ceil(target_kw * 1000 / wp))
    return PlateCount(plate_count=plates, total_kw=plates * wp / 1000)
