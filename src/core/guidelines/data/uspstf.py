"""
USPSTF: U.S. Preventive Services Task Force screening recommendations.
Grade A/B recommendations for cancer screening in average-risk adults.
Source: https://www.uspreventiveservicestaskforce.org/uspstf/recommendation-topics
"""

from src.core.profile import Gender

from ..models import AgeRange, EvidenceLevel, Guideline, GuidelineSource, TestCategory

_SRC = GuidelineSource.USPSTF

USPSTF_GUIDELINES = [
    Guideline(
        id="uspstf_colorectal_colonoscopy",
        source=_SRC,
        category=TestCategory.CANCER_SCREENING,
        test_type="colonoscopy",
        test_name="Colon cancer screening (colonoscopy)",
        purpose="find early changes in the colon before they cause problems",
        age_range=AgeRange(45, 75),
        recommended_frequency_days=3650,
        evidence_level=EvidenceLevel.A,
        citation="USPSTF: Colorectal Cancer Screening (2021)",
    ),
    Guideline(
        id="uspstf_breast_mammography",
        source=_SRC,
        category=TestCategory.CANCER_SCREENING,
        test_type="mammogram",
        test_name="Breast cancer screening (mammogram)",
        purpose="find breast changes early, when care works best",
        age_range=AgeRange(40, 74),
        genders=frozenset({Gender.FEMALE}),
        recommended_frequency_days=730,
        evidence_level=EvidenceLevel.B,
        citation="USPSTF: Breast Cancer Screening (2024)",
    ),
    Guideline(
        id="uspstf_cervical_cytology",
        source=_SRC,
        category=TestCategory.CANCER_SCREENING,
        test_type="pap_smear",
        test_name="Cervical cancer screening (Pap test)",
        purpose="find cell changes in the cervix early",
        age_range=AgeRange(21, 65),
        genders=frozenset({Gender.FEMALE}),
        recommended_frequency_days=1095,
        evidence_level=EvidenceLevel.A,
        citation="USPSTF: Cervical Cancer Screening (2018)",
    ),
    Guideline(
        id="uspstf_lung_ldct",
        source=_SRC,
        category=TestCategory.CANCER_SCREENING,
        test_type="low_dose_ct",
        test_name="Lung cancer screening (low-dose CT scan)",
        purpose="find lung changes early in people who have smoked",
        age_range=AgeRange(50, 80),
        risk_factors=frozenset({"smoking_history"}),
        recommended_frequency_days=365,
        evidence_level=EvidenceLevel.B,
        citation="USPSTF: Lung Cancer Screening (2021)",
    ),
    Guideline(
        id="uspstf_prostate_psa",
        source=_SRC,
        category=TestCategory.CANCER_SCREENING,
        test_type="psa",
        test_name="Prostate check (PSA blood test)",
        purpose="talk with your care team about prostate checks",
        age_range=AgeRange(55, 69),
        genders=frozenset({Gender.MALE}),
        recommended_frequency_days=730,
        evidence_level=EvidenceLevel.C,
        citation="USPSTF: Prostate Cancer Screening (2018)",
        parameters=frozenset({"psa"}),
    ),
]
