"""
ACC/AHA: cardiovascular prevention guidance.
Lipid and blood pressure checks for adults, tightened for people
with cardiovascular risk factors.
Source: 2019 ACC/AHA Guideline on the Primary Prevention of Cardiovascular Disease
"""

from ..models import AgeRange, EvidenceLevel, Guideline, GuidelineSource, TestCategory

_SRC = GuidelineSource.ACC_AHA
_CITE = "2019 ACC/AHA Guideline on the Primary Prevention of Cardiovascular Disease"
_LIPIDS = frozenset({"ldl_cholesterol", "hdl_cholesterol", "total_cholesterol", "triglycerides"})
_BP = frozenset({"systolic_bp", "diastolic_bp"})

ACC_AHA_GUIDELINES = [
    Guideline(
        id="acc_aha_lipid_panel_adults",
        source=_SRC,
        category=TestCategory.CARDIOVASCULAR,
        test_type="lipid_panel",
        test_name="Cholesterol check (lipid panel)",
        purpose="check the fats in your blood that affect your heart",
        age_range=AgeRange(20, 120),
        recommended_frequency_days=1826,
        evidence_level=EvidenceLevel.B,
        citation=_CITE,
        parameters=_LIPIDS,
    ),
    Guideline(
        id="acc_aha_lipid_panel_at_risk",
        source=_SRC,
        category=TestCategory.CARDIOVASCULAR,
        test_type="lipid_panel",
        test_name="Cholesterol check (lipid panel)",
        purpose="check the fats in your blood that affect your heart",
        age_range=AgeRange(40, 75),
        risk_factors=frozenset({"diabetes", "hypertension", "family_history_cvd", "smoking_history"}),
        recommended_frequency_days=365,
        evidence_level=EvidenceLevel.B,
        citation=_CITE,
        parameters=_LIPIDS,
    ),
    Guideline(
        id="acc_aha_blood_pressure_18_39",
        source=_SRC,
        category=TestCategory.CARDIOVASCULAR,
        test_type="blood_pressure",
        test_name="Blood pressure check",
        purpose="check the force of blood in your vessels",
        age_range=AgeRange(18, 39),
        recommended_frequency_days=1095,
        evidence_level=EvidenceLevel.A,
        citation="USPSTF/ACC/AHA: Hypertension Screening in Adults (2021)",
        parameters=_BP,
    ),
    Guideline(
        id="acc_aha_blood_pressure_40_plus",
        source=_SRC,
        category=TestCategory.CARDIOVASCULAR,
        test_type="blood_pressure",
        test_name="Blood pressure check",
        purpose="check the force of blood in your vessels",
        age_range=AgeRange(40, 120),
        recommended_frequency_days=365,
        evidence_level=EvidenceLevel.A,
        citation="USPSTF/ACC/AHA: Hypertension Screening in Adults (2021)",
        parameters=_BP,
    ),
]
