from pydantic import BaseModel, Field


class UserReportCreate(BaseModel):
    reportedUserId: str
    reportCategoryId: str


class PostReportCreate(BaseModel):
    postId: str
    selectedCategory: str = Field(min_length=1)


class ReportCategoryCreate(BaseModel):
    report_title: str = Field(min_length=1)
    description: str = Field(min_length=1)
