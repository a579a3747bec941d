"""Tests for user profiles and demographic risk."""

from datetime import date

import pytest

from src.core.profile import Gender, UserProfile, demographic_risk


class TestUserProfile:
    def test_risk_factors_normalized(self):
        profile = UserProfile("u1", date(1980, 1, 1), Gender.FEMALE, [" Smoking_History", "", "DIABETES"])
        assert profile.risk_factors == frozenset({"smoking_history", "diabetes"})

    def test_age_on(self, male_45):
        assert male_45.age_on(date(2024, 3, 9)) == 44
        assert male_45.age_on(date(2024, 3, 10)) == 45

    def test_date_before_birth(self, male_45):
        with pytest.raises(ValueError):
            male_45.age_on(date(1970, 1, 1))

    def test_user_id_required(self):
        with pytest.raises(ValueError):
            UserProfile("", date(1980, 1, 1), Gender.MALE)

    @pytest.mark.parametrize("raw, gender", [
        ("male", Gender.MALE), (" F ", Gender.FEMALE), ("Woman", Gender.FEMALE),
        ("other", Gender.OTHER),
    ])
    def test_gender_parse(self, raw, gender):
        assert Gender.parse(raw) is gender

    def test_gender_parse_unknown(self):
        with pytest.raises(ValueError):
            Gender.parse("robot")


class TestDemographicRisk:
    def test_age_above_floor(self, male_45, as_of):
        assert demographic_risk(male_45, as_of) == 15.0

    def test_young_without_factors_is_zero(self, as_of):
        profile = UserProfile("young", date(2000, 1, 1), Gender.OTHER)
        assert demographic_risk(profile, as_of) == 0.0

    def test_age_contribution_capped(self, as_of):
        profile = UserProfile("old", date(1930, 1, 1), Gender.FEMALE)
        assert demographic_risk(profile, as_of) == 50.0

    def test_risk_factors_add_points(self, as_of):
        profile = UserProfile("u1", date(1979, 3, 10), Gender.MALE, ["diabetes", "hypertension"])
        assert demographic_risk(profile, as_of) == 45.0

    def test_capped_at_one_hundred(self, as_of):
        factors = ["a", "b", "c", "d", "e"]
        profile = UserProfile("u1", date(1930, 1, 1), Gender.MALE, factors)
        assert demographic_risk(profile, as_of) == 100.0

    def test_settings_override(self, male_45, as_of):
        assert demographic_risk(male_45, as_of, {'points_per_year': 2.0}) == 30.0
