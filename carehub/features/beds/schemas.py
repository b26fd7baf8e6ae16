from pydantic import Field

from carehub.features.patients.schemas import CamelModel


class BedAssign(CamelModel):
    patient_id: int
    bed_no: str = Field(..., min_length=1, max_length=20)
    ward_no: str = Field(..., min_length=1, max_length=20)
    room_type: str = Field(..., min_length=1, max_length=30)
