"""Test configuration and fixtures"""

from datetime import date, datetime

import pytest

from src.core.config import Config
from src.core.guidelines.models import (
    AgeRange,
    EvidenceLevel,
    Guideline,
    GuidelineSource,
    TestCategory,
)
from src.core.guidelines.store import GuidelineStore
from src.core.profile import Gender, UserProfile
from src.core.timeline.models import DataPoint
from src.core.timeline.store import TimelineStore


@pytest.fixture
def cfg():
    """Fresh configuration so tests never share mutated sections"""
    return Config()


@pytest.fixture
def guideline_store():
    """Built-in guideline data"""
    store = GuidelineStore()
    store.initialize()
    return store


@pytest.fixture
def fasting_glucose_guideline():
    """Fasting glucose every 12 months from age 40"""
    return Guideline(
        id="test_fasting_glucose_40",
        source=GuidelineSource.ADA,
        category=TestCategory.DIABETES,
        test_type="fasting_glucose",
        test_name="Blood sugar check (fasting glucose)",
        purpose="check how your body handles sugar",
        age_range=AgeRange(40, 120),
        recommended_frequency_days=365,
        evidence_level=EvidenceLevel.B,
        citation="ADA Standards of Care in Diabetes (2024), Section 2",
        parameters=frozenset({"fasting_glucose"}),
    )


@pytest.fixture
def glucose_only_store(fasting_glucose_guideline):
    store = GuidelineStore(guidelines=[fasting_glucose_guideline])
    store.initialize()
    return store


@pytest.fixture
def male_45():
    """45 years old on 2024-06-01"""
    return UserProfile(user_id="user-45", birth_date=date(1979, 3, 10), gender=Gender.MALE)


@pytest.fixture
def timeline_store():
    return TimelineStore()


@pytest.fixture
def as_of():
    return date(2024, 6, 1)


@pytest.fixture
def created_at():
    return datetime(2024, 6, 1, 9, 0, 0)


@pytest.fixture
def hba1c_points():
    """Five monthly HbA1c results rising 5.5 -> 6.3"""
    values = [5.5, 5.6, 5.8, 6.0, 6.3]
    return [
        DataPoint("u1", "HbA1c", date(2024, month, 15), value, "%", f"lab-{month}")
        for month, value in zip(range(1, 6), values)
    ]
