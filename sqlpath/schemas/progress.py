"""
sqlpath/schemas/progress.py
Learner-facing request schemas and the standard response envelope

All learner endpoints respond with:
{
    "success": bool,
    "message": str,
    "data": dict
}
"""
from typing import Optional, List, Dict, Any, Literal
from pydantic import BaseModel, Field, EmailStr, field_validator


# ================= RESPONSE SCHEMAS =================

class StandardResponse(BaseModel):
    """
    Standardized response format for all learner and admin endpoints.

    Structure:
    {
        "success": true/false,
        "message": "Human-readable message",
        "data": {...}  // Endpoint-specific data
    }
    """
    success: bool = Field(..., description="Whether the operation succeeded")
    message: str = Field(..., description="Human-readable status message")
    data: Dict[str, Any] = Field(default_factory=dict, description="Endpoint-specific response data")

    class Config:
        json_schema_extra = {
            "example": {
                "success": True,
                "message": "Operation completed successfully",
                "data": {}
            }
        }


def ok(message: str, **data) -> StandardResponse:
    return StandardResponse(success=True, message=message, data=data)


# ================= AUTH =================

class UserRegister(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    username: str = Field(..., min_length=1, max_length=100)

    @field_validator("username")
    @classmethod
    def strip_username(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("username cannot be empty")
        return v.strip()


class UserLogin(BaseModel):
    """JSON login schema"""
    email: EmailStr
    password: str


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: int
    is_admin: bool = False


# ================= LEARNING =================

class AnswerSubmission(BaseModel):
    """
    An answer to a graded challenge.

    For MCQ challenges the answer is the chosen option text; for everything
    else it is the SQL the learner wrote.
    """
    answer: str = Field(..., min_length=1, max_length=20000)

    @field_validator("answer")
    @classmethod
    def validate_answer(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("answer cannot be empty")
        return v

    class Config:
        json_schema_extra = {
            "example": {"answer": "SELECT name FROM customers WHERE city = 'Pune';"}
        }


class PracticeChallengeRequest(BaseModel):
    difficulty: str = Field(..., min_length=1, max_length=50)
    industry: str = Field(..., min_length=1, max_length=100)
    index: int = Field(..., ge=0)
    custom_context: Optional[str] = Field(None, max_length=4000)


class PracticeSubmission(PracticeChallengeRequest):
    """The challenge document travels back because personalised challenges are never stored."""
    challenge: Dict[str, Any]
    answer: str = Field(..., min_length=1, max_length=20000)


# ================= TUTOR =================

class TutorTurn(BaseModel):
    role: Literal["user", "model"]
    text: str


class TutorChatRequest(BaseModel):
    challenge: Dict[str, Any]
    message: str = Field(..., min_length=1, max_length=4000)
    history: List[TutorTurn] = Field(default_factory=list)
    industry: Optional[str] = None
    custom_context: Optional[str] = None


class LiveInstructionRequest(BaseModel):
    challenge: Dict[str, Any]
    industry: Optional[str] = None
    custom_context: Optional[str] = None
    current_code: Optional[str] = None


# ================= SUBSCRIPTION / CERTIFICATES =================

class SubscriptionUpgradeRequest(BaseModel):
    """A payment confirmed by the payment provider."""
    tier: Literal["basic", "pro"]
    cycle: Literal["monthly", "annual"]
    reference: str = Field(..., min_length=1, max_length=255)
    amount: float = Field(..., ge=0)


class CertificateClaimRequest(BaseModel):
    kind: Literal["course", "path"]
    entity_id: int = Field(..., gt=0)
