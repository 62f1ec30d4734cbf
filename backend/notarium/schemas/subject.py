from typing import List, Optional

from pydantic import BaseModel


class SubjectResponse(BaseModel):
    id: int
    name: str
    icon: Optional[str] = None
    note_count: int = 0

    model_config = {"from_attributes": True}


class SubjectListResponse(BaseModel):
    subjects: List[SubjectResponse]


class SubjectSyncResponse(BaseModel):
    success: bool = True
    subjects: List[SubjectResponse]
