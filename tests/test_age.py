"""Tests for the age label calculator and age buckets."""

from datetime import date, datetime, timedelta, timezone

import pytest

from resident_portal.services.age import (
    AgeBucket,
    AgeLabel,
    AgeUnit,
    age_in_years,
    classify_age_bucket,
    compute_age,
    is_valid_age_label,
)

REF = datetime(2024, 6, 15, 12, 0, 0)


class TestComputeAge:
    """Unit scaling of the age label."""

    def test_hours_for_newborn(self):
        """Less than a day old is counted in hours."""
        label = compute_age(REF - timedelta(hours=5), REF)
        assert label == AgeLabel(5, AgeUnit.HOURS)
        assert label.text == "5 hours old"

    def test_ten_day_old_is_days_not_months(self):
        """A 10-day-old infant is "10 days old", never "0 months old"."""
        label = compute_age(REF - timedelta(days=10), REF)
        assert label.text == "10 days old"

    def test_one_day_switches_to_days(self):
        assert compute_age(REF - timedelta(hours=24), REF).text == "1 days old"

    def test_months_after_thirty_days(self):
        assert compute_age(date(2024, 1, 10), REF).text == "5 months old"

    def test_month_boundary_never_zero(self):
        """30 days that do not complete a calendar month still read 1 month."""
        label = compute_age(date(2024, 1, 1), datetime(2024, 1, 31))
        assert label.unit == AgeUnit.MONTHS
        assert label.value == 1

    def test_years_after_twelve_months(self):
        assert compute_age(date(2000, 2, 29), date(2024, 2, 28)).text == "23 years old"
        assert compute_age(date(2000, 2, 29), date(2024, 2, 29)).text == "24 years old"

    def test_missing_birth_date_is_unknown(self):
        label = compute_age(None, REF)
        assert label is AgeLabel.UNKNOWN
        assert not label.known
        assert label.text == ""

    def test_future_birth_date_is_unknown(self):
        assert compute_age(date(2030, 1, 1), REF) is AgeLabel.UNKNOWN

    def test_aware_and_naive_datetimes_mix(self):
        born = datetime(2024, 6, 15, 2, 0, tzinfo=timezone.utc)
        assert compute_age(born, REF).text == "10 hours old"

    @pytest.mark.parametrize("days", [1, 2, 10, 29, 30, 45, 200, 364, 365, 400, 3650, 36500])
    def test_past_dates_never_round_to_zero(self, days):
        """Coarsest unit that still gives a non-zero value, always in label format."""
        label = compute_age(REF - timedelta(days=days), REF)
        assert label.known
        assert label.value >= 1
        assert is_valid_age_label(label.text)

    def test_defaults_reference_to_now(self):
        born = datetime.now() - timedelta(days=3)
        assert compute_age(born).text == "3 days old"


class TestAgeBuckets:
    """Child / Adult / Senior boundaries are calendar exact."""

    def test_day_before_eighteenth_birthday_is_child(self):
        assert classify_age_bucket(date(2006, 6, 16), REF) == AgeBucket.CHILD

    def test_eighteenth_birthday_is_adult(self):
        assert classify_age_bucket(date(2006, 6, 15), REF) == AgeBucket.ADULT

    def test_day_before_sixtieth_birthday_is_adult(self):
        assert classify_age_bucket(date(1964, 6, 16), REF) == AgeBucket.ADULT

    def test_sixtieth_birthday_is_senior(self):
        assert classify_age_bucket(date(1964, 6, 15), REF) == AgeBucket.SENIOR

    def test_infant_is_child(self):
        assert classify_age_bucket(REF - timedelta(hours=3), REF) == AgeBucket.CHILD

    def test_unknown_without_birth_date(self):
        assert classify_age_bucket(None, REF) == AgeBucket.UNKNOWN
        assert age_in_years(None, REF) is None


class TestAgeLabelFormat:
    @pytest.mark.parametrize("text", ["3 years old", "10 days old", "5 hours old", "1 months old", "3years old"])
    def test_valid_labels(self, text):
        assert is_valid_age_label(text)

    @pytest.mark.parametrize("text", ["3 years", "three years old", "3 weeks old", "", None, "old"])
    def test_invalid_labels(self, text):
        assert not is_valid_age_label(text)
