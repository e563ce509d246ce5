"""DTOs for the Templates feature."""
from pydantic import Field

from api.shared.dtos import BaseDTO


class TemplateDTO(BaseDTO):
    name: str = Field(description="Template name")
    text: str = Field(description="Format string with three positional slots: prose, history, message")
    prose: str = Field(default="", description="Instructions inserted into the first slot")


class UpdateTemplateRequest(BaseDTO):
    text: str = Field(description="Format string with three positional slots: prose, history, message")
    prose: str = Field(default="", description="Instructions inserted into the first slot")
