"""Tests for period strategies."""

from datetime import date

import pytest

from nomina_engine.periods.strategy import (
    BiweeklyStrategy,
    MonthlyStrategy,
    Periodicity,
    WeeklyStrategy,
    describe_range,
    get_strategy,
    validate_period_coherence,
)


class TestBiweeklyStrategy:
    """Quincena boundaries and numbering."""

    strategy = BiweeklyStrategy()

    def test_sequence_number_by_half_month(self):
        assert self.strategy.sequence_number(date(2025, 1, 1)) == 1
        assert self.strategy.sequence_number(date(2025, 1, 15)) == 1
        assert self.strategy.sequence_number(date(2025, 1, 16)) == 2
        assert self.strategy.sequence_number(date(2025, 6, 20)) == 12
        assert self.strategy.sequence_number(date(2025, 12, 31)) == 24

    def test_second_half_of_february_ends_on_last_day(self):
        bounds = self.strategy.bounds_for_number(2025, 4)
        assert bounds.start == date(2025, 2, 16)
        assert bounds.end == date(2025, 2, 28)

        leap = self.strategy.bounds_for_number(2024, 4)
        assert leap.end == date(2024, 2, 29)

    def test_label(self):
        bounds = self.strategy.bounds_for_number(2025, 1)
        assert bounds.label == "Quincena 1 - 1 al 15 de Enero 2025"

    def test_year_has_24_periods(self):
        periods = self.strategy.periods_in_year(2025)
        assert len(periods) == 24
        assert [p.sequence_number for p in periods] == list(range(1, 25))
        # Contiguous and non-overlapping
        for previous, current in zip(periods, periods[1:]):
            assert (current.start - previous.end).days == 1

    def test_number_out_of_range(self):
        with pytest.raises(ValueError):
            self.strategy.bounds_for_number(2025, 25)
        with pytest.raises(ValueError):
            self.strategy.bounds_for_number(2025, 0)

    def test_coherence(self):
        assert self.strategy.is_coherent(date(2025, 3, 16), date(2025, 3, 31))
        assert self.strategy.is_coherent(date(2025, 3, 16), date(2025, 3, 31), 6)
        assert not self.strategy.is_coherent(date(2025, 3, 16), date(2025, 3, 31), 5)
        assert not self.strategy.is_coherent(date(2025, 3, 2), date(2025, 3, 16))

    def test_standard_days(self):
        assert self.strategy.standard_days(date(2025, 2, 16), date(2025, 2, 28)) == 15
        assert self.strategy.standard_days(date(2025, 2, 3), date(2025, 2, 12)) == 10


class TestMonthlyStrategy:
    strategy = MonthlyStrategy()

    def test_bounds_and_label(self):
        bounds = self.strategy.bounds_for_number(2024, 2)
        assert bounds.start == date(2024, 2, 1)
        assert bounds.end == date(2024, 2, 29)
        assert bounds.label == "Febrero 2024"

    def test_sequence_is_month(self):
        assert self.strategy.sequence_number(date(2025, 11, 30)) == 11
        assert len(self.strategy.periods_in_year(2025)) == 12

    def test_standard_days_is_thirty(self):
        assert self.strategy.standard_days(date(2025, 2, 1), date(2025, 2, 28)) == 30


class TestWeeklyStrategy:
    """Weeks anchored at the first Monday on/after January 1."""

    strategy = WeeklyStrategy()

    def test_anchor(self):
        # 2025-01-01 is a Wednesday
        assert WeeklyStrategy.anchor(2025) == date(2025, 1, 6)
        # 2024-01-01 is a Monday
        assert WeeklyStrategy.anchor(2024) == date(2024, 1, 1)

    def test_first_week(self):
        bounds = self.strategy.bounds_for_number(2025, 1)
        assert bounds.start == date(2025, 1, 6)
        assert bounds.end == date(2025, 1, 12)
        assert bounds.days == 7

    def test_days_before_anchor_belong_to_previous_year(self):
        year, number = self.strategy.locate(date(2025, 1, 3))
        assert (year, number) == (2024, 53)
        bounds = self.strategy.bounds_for_number(year, number)
        assert bounds.start == date(2024, 12, 30)
        assert bounds.end == date(2025, 1, 5)

    def test_weeks_per_year(self):
        assert self.strategy.periods_per_year(2024) == 53
        assert self.strategy.periods_per_year(2025) == 52

    def test_every_date_maps_back_to_its_week(self):
        for bounds in self.strategy.periods_in_year(2025):
            assert self.strategy.locate(bounds.start) == (2025, bounds.sequence_number)
            assert self.strategy.locate(bounds.end) == (2025, bounds.sequence_number)


class TestBusinessRange:
    """Limits on user-chosen ranges."""

    def test_end_before_start(self):
        check = get_strategy("biweekly").validate_business_range(date(2025, 1, 10), date(2025, 1, 1))
        assert check.valid is False
        assert check.errors

    def test_range_longer_than_periodicity_allows(self):
        check = get_strategy("biweekly").validate_business_range(date(2025, 1, 1), date(2025, 1, 25))
        assert check.valid is False

    def test_range_longer_than_absolute_limit(self):
        check = get_strategy("monthly").validate_business_range(date(2025, 1, 1), date(2025, 2, 15))
        assert check.valid is False
        assert "35" in check.errors[0]

    def test_short_range_is_a_warning(self):
        check = get_strategy("monthly").validate_business_range(date(2025, 1, 1), date(2025, 1, 5))
        assert check.valid is True
        assert check.warnings


def test_get_strategy_accepts_enum_and_value():
    assert get_strategy(Periodicity.WEEKLY) is get_strategy("weekly")
    with pytest.raises(ValueError):
        get_strategy("daily")


def test_validate_period_coherence():
    assert validate_period_coherence(date(2025, 1, 1), date(2025, 1, 31), "monthly", 1)
    assert not validate_period_coherence(date(2025, 1, 1), date(2025, 1, 30), "monthly", 1)


def test_describe_range_across_months():
    assert describe_range(date(2025, 1, 27), date(2025, 2, 2)) == "27 de Enero al 2 de Febrero 2025"
