"""Course to calendar mapping model."""

from pydantic import AliasChoices, BaseModel, Field


class CalendarMapping(BaseModel):
    """Binding between a course (kkh) and its external calendar."""

    course_code: str = Field(
        min_length=1, validation_alias=AliasChoices("course_code", "kkh")
    )
    calendar_id: str = Field(min_length=1)

    model_config = {"frozen": True, "str_strip_whitespace": True}

    @property
    def kkh(self) -> str:
        return self.course_code
