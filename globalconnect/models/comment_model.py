from pydantic import BaseModel, Field, field_validator


def _not_blank(text: str) -> str:
    if not text.strip():
        raise ValueError("Comment text is required")
    return text


class CommentCreate(BaseModel):
    postId: str
    text: str = Field(min_length=1, max_length=1000)

    @field_validator("text")
    @classmethod
    def check_text(cls, text: str):
        return _not_blank(text)


class CommentEdit(BaseModel):
    text: str = Field(min_length=1, max_length=1000)

    @field_validator("text")
    @classmethod
    def check_text(cls, text: str):
        return _not_blank(text)
