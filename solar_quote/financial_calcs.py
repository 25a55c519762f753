"""
Financial calculations for rooftop solar quotes.
Covers installed cost (price table or per-kW rate), ROI, break-even and
lifetime savings.
"""

import math
from dataclasses import dataclass
from typing import Dict, List, Optional

import numpy as np

from .assumptions import DEFAULT_ASSUMPTIONS, SUBSIDY_TABLE, FinanceAssumptions
from .sizing import compute_required_capacity_kw


@dataclass(frozen=True)
class FinancePayload:
    """Cost/benefit summary forwarded unchanged to the lead submission."""
    capacity_kw: int
    in_table: bool
    with_subsidy: bool
    effective_rate_per_kw: int
    base_cost: float
    gst_pct: float
    gst_amount: int
    total_without_subsidy: int
    total_with_subsidy: int
    subsidy_savings: int
    investment_used: int
    annual_gen_all_kw: float
    annual_om_total: int
    annual_network_charges: int
    annual_savings_gross: int
    net_annual_benefit: int
    roi_pct: float
    break_even_years: float
    monthly_savings: int
    # Pass-through assumptions
    network_charge_per_unit: float
    annual_gen_per_kw: float
    module_degradation_pct: float
    om_per_kw_year: float
    om_escalation_pct: float
    tariff_inr: float
    tariff_escalation_pct: float
    life_years: int

    @property
    def total_investment(self) -> int:
        return self.investment_used

    def to_dict(self) -> Dict[str, object]:
        """Field names expected by the leads API."""
        return {
            'withSubsidy': self.with_subsidy,
            'ratePerKW': self.effective_rate_per_kw,
            'networkChargePerUnit': self.network_charge_per_unit,
            'annualGenPerKW': self.annual_gen_per_kw,
            'moduleDegradationPct': self.module_degradation_pct,
            'omPerKWYear': self.om_per_kw_year,
            'omEscalationPct': self.om_escalation_pct,
            'tariffINR': self.tariff_inr,
            'tariffEscalationPct': self.tariff_escalation_pct,
            'lifeYears': self.life_years,
            'gstPct': self.gst_pct,
            'gstAmount': self.gst_amount,
            'totalInvestment': self.investment_used,
            'capacityKW': self.capacity_kw,
        }


@dataclass(frozen=True)
class LifetimeProjection:
    """Year-by-year savings over the system life."""
    years: List[int]
    savings_by_year: List[float]
    cumulative_savings: List[float]  # Starts from -investment
    payback_year: Optional[int]  # First year cumulative savings are >= 0
    lifetime_savings: float


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from negative infinity."""
    return int(math.floor(value + 0.5))


def _finite_or_zero(value) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def capacity_for_calc(capacity_kw: Optional[float]) -> int:
    """
    Whole-kW capacity used for pricing.

    Args:
        capacity_kw: Sized or user-edited capacity (kW)

    Returns:
        Nearest whole kW with a minimum of 1, or 0 when capacity is missing
    """
    kw = _finite_or_zero(capacity_kw)
    if kw <= 0:
        return 0
    return max(1, round_half_up(kw))


def lookup_subsidy_row(kw: int) -> Optional[Dict[str, int]]:
    """Get a copy of the price table row for a whole-kW capacity, None outside 1-10 kW."""
    row = SUBSIDY_TABLE.get(kw)
    return dict(row) if row is not None else None


def resolve_capacity_kw(
    capacity_override: Optional[float],
    bill_amount,
    billing_cycle='1m',
    assumptions: FinanceAssumptions = DEFAULT_ASSUMPTIONS
) -> float:
    """Prefer a positive capacity chosen earlier in the wizard, else size from the bill."""
    override = _finite_or_zero(capacity_override)
    if override > 0:
        return override
    return compute_required_capacity_kw(
        bill_amount,
        billing_cycle,
        tariff=assumptions.tariff_inr,
        sun_hours=assumptions.sun_hours,
        performance_ratio=assumptions.performance_ratio
    )


def compute_finance_projection(
    capacity_kw: Optional[float],
    assumptions: Optional[FinanceAssumptions] = None,
    with_subsidy: bool = True
) -> FinancePayload:
    """
    Calculate investment, ROI and break-even for a system size.

    Capacities that round to 1-10 kW are priced from the subsidy table
    (GST included); anything else uses rate_per_kw plus GST.

    Args:
        capacity_kw: System size in kW
        assumptions: Techno-economic assumptions, defaults when omitted
        with_subsidy: Whether the subsidised total is the investment

    Returns:
        FinancePayload with cost and benefit figures
    """
    a = assumptions or DEFAULT_ASSUMPTIONS
    kw = capacity_for_calc(capacity_kw)
    row = lookup_subsidy_row(kw)

    if row is not None:
        base_cost = float(row['without_subsidy'])
        effective_rate = round_half_up(row['without_subsidy'] / kw)
        gst_amount = 0  # Included in table prices
        total_without = row['without_subsidy']
        total_with = row['with_subsidy']
    else:
        rate = _finite_or_zero(a.rate_per_kw)
        base_cost = kw * rate
        effective_rate = round_half_up(rate)
        gst_amount = round_half_up(base_cost * _finite_or_zero(a.gst_pct) / 100)
        total_without = round_half_up(base_cost)
        # Flat subsidy is added to the base cost outside the table
        total_with = round_half_up(max(0.0, base_cost + _finite_or_zero(a.subsidy_amount)))

    subsidy_savings = max(0, total_without - total_with)
    investment = total_with if with_subsidy else total_without

    annual_gen_all_kw = kw * _finite_or_zero(a.annual_gen_per_kw)
    annual_om_total = round_half_up(kw * _finite_or_zero(a.om_per_kw_year))
    annual_network = round_half_up(annual_gen_all_kw * _finite_or_zero(a.network_charge_per_unit))
    annual_savings_gross = round_half_up(annual_gen_all_kw * _finite_or_zero(a.tariff_inr))
    net_annual_benefit = max(0, annual_savings_gross - annual_om_total - annual_network)

    roi_pct = (net_annual_benefit / investment) * 100 if investment > 0 else 0.0
    break_even = investment / net_annual_benefit if net_annual_benefit > 0 else 0.0

    return FinancePayload(
        capacity_kw=kw,
        in_table=row is not None,
        with_subsidy=bool(with_subsidy),
        effective_rate_per_kw=effective_rate,
        base_cost=base_cost,
        gst_pct=a.gst_pct,
        gst_amount=gst_amount,
        total_without_subsidy=total_without,
        total_with_subsidy=total_with,
        subsidy_savings=subsidy_savings,
        investment_used=investment,
        annual_gen_all_kw=annual_gen_all_kw,
        annual_om_total=annual_om_total,
        annual_network_charges=annual_network,
        annual_savings_gross=annual_savings_gross,
        net_annual_benefit=net_annual_benefit,
        roi_pct=roi_pct,
        break_even_years=break_even,
        monthly_savings=round_half_up(net_annual_benefit / 12),
        network_charge_per_unit=a.network_charge_per_unit,
        annual_gen_per_kw=a.annual_gen_per_kw,
        module_degradation_pct=a.module_degradation_pct,
        om_per_kw_year=a.om_per_kw_year,
        om_escalation_pct=a.om_escalation_pct,
        tariff_inr=a.tariff_inr,
        tariff_escalation_pct=a.tariff_escalation_pct,
        life_years=a.life_years,
    )


def project_lifetime_savings(payload: FinancePayload) -> LifetimeProjection:
    """
    Project savings over the system life with degradation and escalation.

    Args:
        payload: Result of compute_finance_projection

    Returns:
        LifetimeProjection; empty when life_years is not positive
    """
    life = max(0, int(_finite_or_zero(payload.life_years)))
    if life == 0:
        return LifetimeProjection(
            years=[], savings_by_year=[], cumulative_savings=[],
            payback_year=None, lifetime_savings=0.0
        )

    elapsed = np.arange(life)
    generation = payload.annual_gen_all_kw * (1 - payload.module_degradation_pct / 100) ** elapsed
    tariff = payload.tariff_inr * (1 + payload.tariff_escalation_pct / 100) ** elapsed
    om_cost = payload.annual_om_total * (1 + payload.om_escalation_pct / 100) ** elapsed
    network = generation * payload.network_charge_per_unit

    savings = generation * tariff - om_cost - network
    cumulative = np.cumsum(savings) - payload.investment_used

    paid_back = np.flatnonzero(cumulative >= 0)
    payback_year = int(paid_back[0]) + 1 if paid_back.size else None

    return LifetimeProjection(
        years=list(range(1, life + 1)),
        savings_by_year=savings.tolist(),
        cumulative_savings=cumulative.tolist(),
        payback_year=payback_year,
        lifetime_savings=float(savings.sum()),
    )


def format_currency(value: Optional[float]) -> str:
    """Format an INR amount for display, '—' for missing or zero amounts."""
    amount = _finite_or_zero(value)
    if amount <= 0:
        return '—'
    return f"₹{amount:,.0f}"
