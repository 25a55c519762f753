"""
Tests for bill-based sizing, panel recommendation and plate counts.
"""

import math

import pytest

from solar_quote.sizing import (
    BudgetTier,
    Category,
    PanelKind,
    SunCondition,
    compute_plate_count,
    compute_required_capacity_kw,
    default_watt_peak,
    panel_description,
    parse_bill_amount,
    suggest_panel_kind,
    watt_peak_options_for,
)


class TestParseBillAmount:

    def test_keeps_digits_only(self):
        assert parse_bill_amount("₹ 4000") == 4000.0
        assert parse_bill_amount("4000.50") == 4000.5

    @pytest.mark.parametrize("raw", [None, "", "abc", "1.2.3", float('nan'), -50, True])
    def test_unparseable_is_zero(self, raw):
        assert parse_bill_amount(raw) == 0.0


class TestRequiredCapacity:

    @pytest.mark.parametrize("cycle", ['1m', '2m'])
    def test_zero_bill_is_zero(self, cycle):
        assert compute_required_capacity_kw(0, cycle) == 0
        assert compute_required_capacity_kw(None, cycle) == 0
        assert compute_required_capacity_kw("", cycle) == 0

    @pytest.mark.parametrize("bill", [0, 1, 999, 4000, 12345.6])
    def test_two_month_bill_is_halved(self, bill):
        assert compute_required_capacity_kw(bill, '2m') == pytest.approx(
            compute_required_capacity_kw(bill / 2, '1m')
        )

    def test_reference_household(self):
        # 4000 INR / 8 INR per unit = 500 kWh; 5 h * 0.85 * 30 = 127.5 kWh/kW
        kw = compute_required_capacity_kw(4000, '1m')
        assert kw == pytest.approx(500 / 127.5)
        assert round(kw, 2) == 3.92

    def test_free_text_bill(self):
        assert compute_required_capacity_kw("₹4,000", '1m') == pytest.approx(500 / 127.5)

    def test_numeric_cycle(self):
        assert compute_required_capacity_kw(4000, 2) == pytest.approx(250 / 127.5)

    def test_not_rounded(self):
        kw = compute_required_capacity_kw(1000, '1m')
        assert kw == pytest.approx(125 / 127.5)
        assert kw != round(kw, 2)

    def test_degenerate_assumptions(self):
        assert compute_required_capacity_kw(4000, '1m', tariff=0) == 0
        assert compute_required_capacity_kw(4000, '1m', sun_hours=0) == 0
        assert compute_required_capacity_kw(4000, '1m', performance_ratio=float('nan')) == 0


class TestSuggestPanelKind:

    @pytest.mark.parametrize("category, budget, kw, sun, expected", [
        ('Residential', 'low', 3, 'sunny', 'Poly'),
        ('Residential', 'medium', 3, 'cloudy', 'Mono'),
        ('Residential', 'high', 3, 'cloudy', 'TOPCon'),
        ('Residential', 'high', 3, 'sunny', 'Mono'),
        ('Commercial', 'high', 20, 'cloudy', 'Mono'),
        ('Commercial', 'medium', 20, 'sunny', 'Poly'),
        ('Commercial', 'low', 20, 'sunny', 'Poly'),
        ('Industrial', 'high', 60, 'sunny', 'Bifacial'),
        ('Industrial', 'high', 60, 'cloudy', 'Bifacial'),
        ('Industrial', 'medium', 60, 'sunny', 'Poly'),
        ('Industrial', 'low', 51, 'sunny', 'Poly'),
        ('Industrial', 'high', 50, 'cloudy', 'TOPCon'),
        ('Industrial', 'high', 50, 'sunny', 'Mono'),
        ('Industrial', 'medium', 10, 'sunny', 'Mono'),
        ('Industrial', 'low', 10, 'cloudy', 'Poly'),
        ('Ground', 'high', 5, 'sunny', 'Bifacial'),
        ('Ground', 'medium', 5, 'sunny', 'Poly'),
        ('Ground', 'low', 5, 'sunny', 'Poly'),
        ('Floating', 'high', 5, 'sunny', 'Poly'),
    ])
    def test_decision_table(self, category, budget, kw, sun, expected):
        assert suggest_panel_kind(category, budget, kw, sun) == expected

    def test_wizard_ids_and_labels(self):
        assert suggest_panel_kind('ground', 'high', 5, 'sunny') is PanelKind.BIFACIAL
        assert suggest_panel_kind('Ground Mounted', 'high', 5, 'sunny') is PanelKind.BIFACIAL
        assert suggest_panel_kind(Category.INDUSTRIAL, BudgetTier.HIGH, 60, SunCondition.SUNNY) is PanelKind.BIFACIAL

    def test_defaults(self):
        # budget defaults to medium, sun to sunny, capacity to 0
        assert suggest_panel_kind('Residential', None, None, None) is PanelKind.MONO
        assert suggest_panel_kind('Industrial', 'high', None, None) is PanelKind.MONO

    def test_missing_category_is_residential(self):
        assert suggest_panel_kind(None, 'low', 3, 'sunny') is PanelKind.POLY
        assert suggest_panel_kind(None, 'high', 3, 'cloudy') is PanelKind.TOPCON

    def test_unknown_budget_falls_back_to_poly(self):
        assert suggest_panel_kind('Residential', 'luxury', 3, 'sunny') is PanelKind.POLY


class TestWattPeak:

    @pytest.mark.parametrize("kind, options", [
        ('Poly', [330, 350, 375]),
        ('Mono', [400, 430, 450]),
        ('TOPCon', [450, 500, 550]),
        ('Bifacial', [540, 600, 650]),
        (PanelKind.MONO, [400, 430, 450]),
        ('HJT', [370, 400, 430]),
        (None, [370, 400, 430]),
    ])
    def test_options(self, kind, options):
        assert watt_peak_options_for(kind) == options

    def test_options_are_copies(self):
        watt_peak_options_for('Poly').append(999)
        assert watt_peak_options_for('Poly') == [330, 350, 375]

    def test_default_is_middle_option(self):
        assert default_watt_peak('Poly') == 350
        assert default_watt_peak('Bifacial') == 600
        assert default_watt_peak('unknown') == 400

    def test_descriptions(self):
        assert 'monocrystalline' in panel_description(PanelKind.MONO)
        assert panel_description('unknown') == ''


class TestPlateCount:

    @pytest.mark.parametrize("target_kw, wp", [
        (3.92, 400), (0.1, 650), (5.0, 500), (12.345, 330), (100, 540),
    ])
    def test_covers_target(self, target_kw, wp):
        result = compute_plate_count(target_kw, wp)
        assert result.plate_count == math.ceil(target_kw * 1000 / wp)
        assert result.total_kw >= target_kw
        assert result.total_kw == pytest.approx(result.plate_count * wp / 1000)

    def test_exact_fit(self):
        result = compute_plate_count(5.0, 500)
        assert result.plate_count == 10
        assert result.total_kw == 5.0

    def test_minimum_one_plate(self):
        assert compute_plate_count(0.001, 650).plate_count == 1

    def test_unknown_capacity_assumes_twelve_plates(self):
        result = compute_plate_count(0, 400)
        assert result.plate_count == 12
        assert result.total_kw == pytest.approx(4.8)

    def test_invalid_wattage_uses_default(self):
        result = compute_plate_count(4.0, 0)
        assert result.plate_count == 10
