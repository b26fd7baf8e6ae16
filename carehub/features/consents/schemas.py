from pydantic import BaseModel, ConfigDict, Field


class ConsentSubmit(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    token: str = Field(..., min_length=1, max_length=36)
    html_content: str = Field(..., min_length=1, alias="htmlContent")
