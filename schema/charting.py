from pydantic import BaseModel, Field


class ChartingUpdateRequest(BaseModel):
    charting_count: int = Field(0, ge=0)
    diagnosis_total_count: int = Field(0, ge=0)
