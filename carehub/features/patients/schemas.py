"""
Pydantic schemas for patient requests and responses.

Field names are snake_case in Python and camelCase on the wire.
"""
from datetime import date, datetime
from decimal import Decimal
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base schema accepting and emitting camelCase keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# ---------------------------------------------------------------------------
# Child records
# ---------------------------------------------------------------------------

class AllergyIn(CamelModel):
    category: int | None = Field(None, ge=1, le=4, description="1=food 2=medication 3=environment 4=biological")
    allergen: str = Field(..., min_length=1, max_length=255)
    reaction: str | None = None


class InsuranceIn(CamelModel):
    policy_number: str | None = None
    group_number: str | None = None
    company: str | None = None
    plan: str | None = None
    relationship: str | None = None
    expiration_date: date | None = None
    type: str | None = None
    effective_date: date | None = None
    insured_name: str | None = None
    insured_gender: str | None = None
    insured_dob: date | None = Field(None, alias="insuredDOB")
    insured_address: str | None = None
    insured_phone: str | None = None


class MedicationIn(CamelModel):
    name: str = Field(..., min_length=1, max_length=200)
    dosage: str | None = None
    frequency: str | None = None
    prescribed_by: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    status: str = "active"
    refills: int | None = None


class DiagnosisIn(CamelModel):
    icd10: str = Field(..., min_length=3, max_length=10)
    diagnosis: str = Field(..., min_length=1, max_length=255)
    status: str | None = None
    type: str | None = None
    diagnosis_date: date | None = Field(None, alias="date")


class InitialNoteIn(CamelModel):
    note: str = Field(..., min_length=1)
    duration: int = Field(0, ge=0)
    type: str | None = None


class VitalsIn(CamelModel):
    height: Decimal = Decimal(0)
    weight: Decimal = Decimal(0)
    bmi: Decimal = Decimal(0)
    blood_pressure: str = "0/0"
    heart_rate: int = 0
    temperature: Decimal = Decimal(0)


class AllergyOut(CamelModel):
    id: int
    category: str | None = None
    allergen: str
    reaction: str | None = None
    created: datetime | None = None


class InsuranceOut(CamelModel):
    id: int = Field(..., serialization_alias="patientInsuranceId")
    policy_number: str | None = None
    group_number: str | None = None
    company: str | None = None
    plan: str | None = None
    insured_relationship: str | None = Field(None, serialization_alias="relationship")
    expiration_date: date | None = None
    type: str | None = None
    effective_date: date | None = None
    insured_name: str | None = None
    insured_gender: str | None = None
    insured_dob: date | None = None
    insured_address: str | None = None
    insured_phone: str | None = None


class MedicationOut(CamelModel):
    id: int
    name: str
    dosage: str | None = None
    frequency: str | None = None
    prescribed_by: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    status: str | None = None
    refills: int | None = None


class DiagnosisOut(CamelModel):
    id: int
    diagnosis_date: date | None = Field(None, serialization_alias="date")
    icd10: str
    diagnosis: str
    status: str | None = None
    type: str | None = None


class VitalsOut(CamelModel):
    id: int
    height: Decimal | None = None
    weight: Decimal | None = None
    bmi: Decimal | None = None
    blood_pressure: str | None = None
    heart_rate: int | None = None
    temperature: Decimal | None = None
    created: datetime


# ---------------------------------------------------------------------------
# Patient create / update
# ---------------------------------------------------------------------------

class PatientCreate(CamelModel):
    """Everything captured on the new-patient form."""
    first_name: str = Field(..., min_length=1, max_length=100)
    middle_name: str | None = None
    last_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    phone: str | None = None
    gender: str | None = None
    status: int | None = Field(None, ge=1, le=3)
    birth_date: date | None = None
    last_visit: date | None = None
    emergency_contact: str | None = None
    ethnicity: str | None = None
    address_line1: str | None = None
    address_line2: str | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None
    zip_code: str | None = None
    organization_id: int | None = None
    practice_id: int | None = None
    physician_id: int | None = None
    nurse_id: int | None = None
    patient_service: list[int] = Field(default_factory=list)
    device_imei: str | None = None

    height: Decimal | None = None
    weight: Decimal | None = None
    bmi: Decimal | None = None
    blood_pressure: str | None = None
    heart_rate: int | None = None
    temperature: Decimal | None = None

    allergies: list[AllergyIn] = Field(default_factory=list)
    insurance: list[InsuranceIn] = Field(default_factory=list)
    current_medications: list[MedicationIn] = Field(default_factory=list)
    diagnosis: list[DiagnosisIn] = Field(default_factory=list)
    notes: list[InitialNoteIn] = Field(default_factory=list)


class PatientUpdate(CamelModel):
    """Partial demographics update; only provided fields change."""
    patient_id: int
    first_name: str | None = Field(None, min_length=1, max_length=100)
    middle_name: str | None = None
    last_name: str | None = Field(None, min_length=1, max_length=100)
    phone: str | None = None
    gender: str | None = None
    status: int | None = Field(None, ge=1, le=3)
    birth_date: date | None = None
    last_visit: date | None = None
    emergency_contact: str | None = None
    ethnicity: str | None = None
    address_line1: str | None = None
    address_line2: str | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None
    zip_code: str | None = None
    patient_service: list[int] | None = None
    device_imei: str | None = None

    @field_validator("first_name", "last_name")
    @classmethod
    def name_not_null(cls, v):
        if v is None:
            raise ValueError("may not be null")
        return v


class AddressIn(CamelModel):
    line1: str | None = None
    line2: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None
    country: str | None = None


class EmergencyContactIn(CamelModel):
    name: str | None = None
    relationship: str | None = None
    phone: str | None = None
    email: str | None = None


class EnhancedProfileUpdate(CamelModel):
    """Full demographic profile including sensitive identifiers."""
    first_name: str = Field(..., min_length=1, max_length=100)
    middle_name: str | None = None
    last_name: str = Field(..., min_length=1, max_length=100)
    suffix: str | None = None
    pronouns: str | None = None
    date_of_birth: date | None = None
    gender: str | None = None
    email: EmailStr | None = None
    phone: str | None = None
    alternate_phone: str | None = None
    address: AddressIn | None = None
    ethnicity: str | None = None
    race: str | None = None
    language_preference: str | None = None
    preferred_communication: str | None = None
    marital_status: str | None = None
    disability_status: str | None = None
    accessibility_needs: list[str] = Field(default_factory=list)
    interpreter_needed: bool = False
    wheelchair_access: bool = False
    emergency_contact: EmergencyContactIn | None = None
    ssn: str | None = Field(None, pattern=r"^\d{3}-?\d{2}-?\d{4}$")
    driver_license: str | None = None
    passport: str | None = None


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------

class PatientListItem(CamelModel):
    patient_id: int
    name: str
    email: str | None = None
    phone: str | None = None
    birth_date: date | None = None
    last_visit: date | None = None
    status: str
    patient_service: list[str] = Field(default_factory=list)


class PatientSearchResult(BaseModel):
    patient_id: int
    patient_name: str


# ---------------------------------------------------------------------------
# Single child-record requests
# ---------------------------------------------------------------------------

class AllergyCreate(AllergyIn):
    patient_id: int
    category: int = Field(..., ge=1, le=4)
    reaction: str = Field(..., min_length=1)


class InsuranceCreate(InsuranceIn):
    patient_id: int
    policy_number: str = Field(..., min_length=1)
    group_number: str = Field(..., min_length=1)
    company: str = Field(..., min_length=1)
    plan: str = Field(..., min_length=1)
    expiration_date: date
    type: str = Field(..., min_length=1)
    effective_date: date


class MedicationCreate(MedicationIn):
    patient_id: int
    dosage: str = Field(..., min_length=1)
    frequency: str = Field(..., min_length=1)
    start_date: date
    end_date: date
    refills: int = 0
