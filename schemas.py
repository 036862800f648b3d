from typing import Dict, List, Optional

from pydantic import BaseModel, EmailStr, Field


class AnalysisRequest(BaseModel):
    images: List[str] = Field(..., min_length=1, max_length=1)


class AnalysisResponse(BaseModel):
    analysis: str


class SessionCreated(BaseModel):
    session_id: str


class SessionSnapshot(BaseModel):
    session_id: str
    state: str
    progress: int
    has_image: bool
    filename: Optional[str] = None
    content_type: Optional[str] = None
    file_size: Optional[int] = None
    has_report: bool
    report: str = ""
    error: Optional[str] = None


class ReportOut(BaseModel):
    analysis: str


class ExportOptions(BaseModel):
    title: str = "Orthodontic Treatment Plan"
    filename: str = "orthodontic-treatment-plan"


class Credentials(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)


class AuthSession(BaseModel):
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    user_id: Optional[str] = None
    email: Optional[str] = None
    confirmation_required: bool = False


class UsageStats(BaseModel):
    total: int
    by_event_type: Dict[str, int]
