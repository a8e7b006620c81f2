from typing import Optional, List, Literal
from pydantic import BaseModel, Field, field_validator, model_validator


class CategoryField(BaseModel):
    name: str = Field(min_length=1)
    type: Literal["text", "textarea", "dropdown", "file", "number"]
    label: str = Field(min_length=1)
    options: Optional[List[str]] = None

    @model_validator(mode="after")
    def check_dropdown_options(self):
        if self.type == "dropdown" and self.options is None:
            raise ValueError(f"Dropdown field '{self.name}' must define a list of options")
        return self


class CategoryCreate(BaseModel):
    name: str
    fields: List[CategoryField] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def clean_name(cls, name: str):
        name = name.strip()
        if not name:
            raise ValueError("Category name is required")
        if len(name) > 50:
            raise ValueError("Category name must be at most 50 characters")
        return name
