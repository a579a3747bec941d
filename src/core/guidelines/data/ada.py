"""
ADA: American Diabetes Association Standards of Care.
Screening for prediabetes and type 2 diabetes, and annual monitoring
for people with known risk.
Source: https://diabetesjournals.org/care/issue/47/Supplement_1
"""

from ..models import AgeRange, EvidenceLevel, Guideline, GuidelineSource, TestCategory

_SRC = GuidelineSource.ADA
_CITE = "ADA Standards of Care in Diabetes (2024), Section 2"

ADA_GUIDELINES = [
    Guideline(
        id="ada_glucose_screening_35_plus",
        source=_SRC,
        category=TestCategory.DIABETES,
        test_type="fasting_glucose",
        test_name="Blood sugar check (fasting glucose)",
        purpose="check how your body handles sugar",
        age_range=AgeRange(35, 120),
        recommended_frequency_days=1095,
        evidence_level=EvidenceLevel.B,
        citation=_CITE,
        parameters=frozenset({"fasting_glucose", "hba1c"}),
    ),
    Guideline(
        id="ada_glucose_screening_overweight",
        source=_SRC,
        category=TestCategory.DIABETES,
        test_type="fasting_glucose",
        test_name="Blood sugar check (fasting glucose)",
        purpose="check how your body handles sugar",
        age_range=AgeRange(18, 34),
        risk_factors=frozenset({"overweight", "family_history_diabetes", "gestational_diabetes"}),
        recommended_frequency_days=1095,
        evidence_level=EvidenceLevel.B,
        citation=_CITE,
        parameters=frozenset({"fasting_glucose", "hba1c"}),
    ),
    Guideline(
        id="ada_hba1c_prediabetes",
        source=_SRC,
        category=TestCategory.DIABETES,
        test_type="hba1c",
        test_name="Average blood sugar check (HbA1c)",
        purpose="track your average blood sugar over the past few months",
        age_range=AgeRange(18, 120),
        risk_factors=frozenset({"prediabetes", "diabetes"}),
        recommended_frequency_days=365,
        evidence_level=EvidenceLevel.B,
        citation=_CITE,
        parameters=frozenset({"hba1c"}),
    ),
    Guideline(
        id="ada_kidney_function_diabetes",
        source=_SRC,
        category=TestCategory.DIABETES,
        test_type="kidney_function",
        test_name="Kidney check (eGFR and urine test)",
        purpose="see how well your kidneys are working",
        age_range=AgeRange(18, 120),
        risk_factors=frozenset({"diabetes"}),
        recommended_frequency_days=365,
        evidence_level=EvidenceLevel.A,
        citation="ADA Standards of Care in Diabetes (2024), Section 11",
        parameters=frozenset({"egfr", "creatinine"}),
    ),
]
