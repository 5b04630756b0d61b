from pydantic import AliasChoices, BaseModel, Field, field_validator


class RosterStudent(BaseModel):
    number: str | None = Field(None, validation_alias=AliasChoices("number", "학번"))
    name: str | None = Field(None, validation_alias=AliasChoices("name", "이름"))

    @field_validator("number", "name", mode="before")
    @classmethod
    def as_text(cls, value):
        if value is None:
            return None
        return str(value).strip()


class RosterUploadRequest(BaseModel):
    students: list[RosterStudent]
