# proctor_service/schemas.py
from pydantic import BaseModel, Field
from typing import Optional


class SessionCreate(BaseModel):
    session_id: Optional[str] = Field(default=None, min_length=1)
    candidate_name: str = Field(min_length=1)
