"""
Techno-economic assumptions and reference tables for rooftop solar quotes.
"""

import logging
import math
from dataclasses import dataclass, fields, replace
from typing import Any, Mapping, Optional

logger = logging.getLogger(__name__)

# Installed cost by capacity (INR), GST included.
# Source: installer price list for subsidised residential rooftop systems
SUBSIDY_TABLE = {
    1: {'with_subsidy': 40000, 'without_subsidy': 85000},
    2: {'with_subsidy': 65000, 'without_subsidy': 155000},
    3: {'with_subsidy': 91000, 'without_subsidy': 199000},
    4: {'with_subsidy': 147000, 'without_subsidy': 255000},
    5: {'with_subsidy': 214000, 'without_subsidy': 322000},
    6: {'with_subsidy': 291000, 'without_subsidy': 399000},
    7: {'with_subsidy': 347000, 'without_subsidy': 455000},
    8: {'with_subsidy': 407000, 'without_subsidy': 515000},
    9: {'with_subsidy': 432000, 'without_subsidy': 540000},
    10: {'with_subsidy': 490000, 'without_subsidy': 598000},
}

# Module wattages offered per panel technology (Wp)
WATT_PEAK_OPTIONS = {
    'Poly': [330, 350, 375],
    'Mono': [400, 430, 450],
    'TOPCon': [450, 500, 550],
    'Bifacial': [540, 600, 650],
}
FALLBACK_WATT_PEAK_OPTIONS = [370, 400, 430]

PANEL_DESCRIPTIONS = {
    'Poly': 'Cost-effective panels suitable for budget-friendly installations. '
            'Typically 15-18% efficiency.',
    'Mono': 'High-efficiency monocrystalline panels with sleek look. '
            'Typically 18-22% efficiency.',
    'TOPCon': 'Next-gen high-efficiency mono architecture that performs better '
              'in low light and high temp.',
    'Bifacial': 'Generates from both sides using reflected light; great for '
                'ground-mounted and industrial use.',
}

# Wizard category ids -> project type sent to the backend
CATEGORY_LABELS = {
    'residential': 'Residential',
    'commercial': 'Commercial',
    'industrial': 'Industrial',
    'ground': 'Ground Mounted',
}

# Free-text electricity provider names -> backend PanelProvider enum
PROVIDER_ALIASES = {
    'purvanchal vv': 'purvanchal_vv',
    'purvanchal_vv': 'purvanchal_vv',
    'torrent power': 'torrent_power',
    'torrnet power': 'torrent_power',  # common misspelling in the field
    'torrent_power': 'torrent_power',
    'paschimanchal': 'paschimanchal',
    'mvvnl': 'mvvnl',
    'dvvnl': 'dvvnl',
    'npcl': 'npcl',
}
PROVIDERS = frozenset(PROVIDER_ALIASES.values())

DAYS_PER_MONTH = 30
DEFAULT_TTL_MS = 60_000
DASHBOARD_TTL_MS = 120_000


@dataclass(frozen=True)
class FinanceAssumptions:
    """Deployment-level defaults for sizing and finance projections."""
    tariff_inr: float = 8.0               # INR per kWh
    sun_hours: float = 5.0                # peak sun hours per day
    performance_ratio: float = 0.85
    annual_gen_per_kw: float = 1440.0     # kWh/year per installed kW
    om_per_kw_year: float = 400.0         # INR
    om_escalation_pct: float = 0.0
    gst_pct: float = 8.9
    rate_per_kw: float = 60000.0          # INR, outside the price table
    subsidy_amount: float = 180000.0      # INR, flat, outside the price table
    network_charge_per_unit: float = 0.0  # INR per kWh charged by the DISCOM
    module_degradation_pct: float = 0.55
    tariff_escalation_pct: float = 2.0
    life_years: int = 25

    @property
    def monthly_generation_per_kw(self) -> float:
        """kWh generated per installed kW in a 30-day month."""
        return self.sun_hours * self.performance_ratio * DAYS_PER_MONTH

    def with_overrides(self, **overrides) -> 'FinanceAssumptions':
        return replace(self, **overrides)

    @classmethod
    def from_mapping(cls, mapping: Optional[Mapping[str, Any]]) -> 'FinanceAssumptions':
        """
        Build assumptions from a config mapping (e.g. a secrets.toml section).

        Args:
            mapping: Keys named like the dataclass fields; unknown keys are ignored

        Returns:
            FinanceAssumptions with parsed overrides applied to the defaults
        """
        if not mapping:
            return cls()

        overrides = {}
        for field in fields(cls):
            if field.name not in mapping:
                continue
            raw = mapping[field.name]
            try:
                value = float(raw)
            except (TypeError, ValueError):
                logger.warning("Ignoring assumption %s=%r: not a number", field.name, raw)
                continue
            if not math.isfinite(value):
                logger.warning("Ignoring assumption %s=%r: not finite", field.name, raw)
                continue
            overrides[field.name] = int(value) if field.name == 'life_years' else value

        return cls(**overrides)


DEFAULT_ASSUMPTIONS = FinanceAssumptions()


def get_category_label(category: Optional[str]) -> str:
    """Get backend project type for a wizard category, defaulting to Residential."""
    if not category:
        return 'Residential'
    return CATEGORY_LABELS.get(str(category).strip().lower(), 'Residential')
