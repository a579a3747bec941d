"""
General wellness: routine checkups and body measurements.
Used as the fallback reference for measurements no specific guideline covers.
"""

from ..models import AgeRange, EvidenceLevel, Guideline, GuidelineSource, TestCategory

_SRC = GuidelineSource.GENERAL_WELLNESS

WELLNESS_GUIDELINES = [
    Guideline(
        id="wellness_annual_checkup",
        source=_SRC,
        category=TestCategory.GENERAL_WELLNESS,
        test_type="wellness_visit",
        test_name="Yearly checkup",
        purpose="review your health and your test results with your care team",
        age_range=AgeRange(18, 120),
        recommended_frequency_days=365,
        evidence_level=EvidenceLevel.EXPERT_OPINION,
        citation="AAFP: Periodic Health Evaluation (2023)",
    ),
    Guideline(
        id="wellness_body_measurements",
        source=_SRC,
        category=TestCategory.GENERAL_WELLNESS,
        test_type="body_measurements",
        test_name="Weight and BMI check",
        purpose="track your weight over time",
        age_range=AgeRange(18, 120),
        recommended_frequency_days=365,
        evidence_level=EvidenceLevel.B,
        citation="USPSTF: Weight Loss to Prevent Obesity-Related Morbidity (2018)",
        parameters=frozenset({"weight", "bmi"}),
    ),
]
