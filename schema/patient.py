from pydantic import BaseModel, Field


class PatientUpsertRequest(BaseModel):
    patient_number: str = Field(..., min_length=1)
    patient_name: str = Field(..., min_length=1)
