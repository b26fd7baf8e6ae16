"""
Profile completeness score shown on the enhanced patient profile.
"""
from carehub.features.patients.models import Patient

REQUIRED_FIELDS = (
    "first_name", "last_name", "dob", "gender", "email", "phone",
    "address_line", "city", "state", "zip",
)
OPTIONAL_FIELDS = (
    "middle_name", "suffix", "pronouns", "ethnicity", "race",
    "language_preference", "marital_status", "emergency_contact",
)

REQUIRED_WEIGHT = 3
OPTIONAL_WEIGHT = 1
ALLERGY_BONUS = 2
MEDICATION_BONUS = 2
INSURANCE_BONUS = 3


def _filled(value) -> bool:
    return value is not None and bool(str(value).strip())


def completeness_score(
    patient: Patient,
    allergies_count: int = 0,
    active_medications_count: int = 0,
    active_insurance_count: int = 0,
) -> int:
    """
    Percentage of the profile that is filled in.

    Required fields weigh 3 points and optional fields 1. Clinical bonuses
    (allergies 2, active medications 2, active insurance 3) are added to both
    the score and the possible total, so they raise the percentage only
    when present.
    """
    score = 0
    possible = 0

    for field in REQUIRED_FIELDS:
        possible += REQUIRED_WEIGHT
        if _filled(getattr(patient, field)):
            score += REQUIRED_WEIGHT

    for field in OPTIONAL_FIELDS:
        possible += OPTIONAL_WEIGHT
        if _filled(getattr(patient, field)):
            score += OPTIONAL_WEIGHT

    for count, bonus in (
        (allergies_count, ALLERGY_BONUS),
        (active_medications_count, MEDICATION_BONUS),
        (active_insurance_count, INSURANCE_BONUS),
    ):
        if count > 0:
            score += bonus
            possible += bonus

    return round(score / possible * 100)
