"""
sqlpath/schemas/admin.py
Request schemas for the admin authoring console
"""
from typing import Optional, List, Dict, Any, Literal
from pydantic import BaseModel, Field


CourseStatusValue = Literal["draft", "outline_ready", "generating", "published"]
ChallengeTypeValue = Literal["sql", "mcq", "debug", "completion"]


# ================= COURSES =================

class CourseDraftCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    industry: Optional[str] = Field(None, max_length=100)
    target_role: Optional[str] = Field(None, max_length=100)
    skill_level: Optional[str] = Field(None, max_length=50)
    main_context: Optional[str] = None


class CourseUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    industry: Optional[str] = None
    target_role: Optional[str] = None
    skill_level: Optional[str] = None
    main_context: Optional[str] = None
    status: Optional[CourseStatusValue] = None


class OutlineRequest(BaseModel):
    prompt: str = Field(..., min_length=1, max_length=8000)


class ModuleCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    skill_focus: Optional[str] = None
    task_description: Optional[str] = None
    expected_outcome: Optional[str] = None
    estimated_time: Optional[str] = None
    module_type: Optional[ChallengeTypeValue] = None
    challenge_json: Optional[Dict[str, Any]] = None


class ModulesCreate(BaseModel):
    modules: List[ModuleCreate] = Field(..., min_length=1)


class ModuleUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    skill_focus: Optional[str] = None
    task_description: Optional[str] = None
    expected_outcome: Optional[str] = None
    estimated_time: Optional[str] = None
    module_type: Optional[ChallengeTypeValue] = None


class ChallengeJsonReplace(BaseModel):
    """Raw JSON text as pasted into the editor; validated server-side."""
    raw_json: str = Field(..., min_length=2)


class ModuleChallengeGenerate(BaseModel):
    challenge_type: Optional[ChallengeTypeValue] = None


class RefineRequest(BaseModel):
    instruction: str = Field(..., min_length=1, max_length=4000)


class ModuleReorder(BaseModel):
    module_ids: List[int] = Field(..., min_length=1)


# ================= LEARNING PATHS =================

class PathCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    target_role: Optional[str] = None
    industry: Optional[str] = None
    is_published: bool = False


class PathUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    target_role: Optional[str] = None
    industry: Optional[str] = None
    is_published: Optional[bool] = None


class PathCourseAdd(BaseModel):
    course_id: int = Field(..., gt=0)
    sequence_order: Optional[int] = Field(None, ge=1)


class TopicRequest(BaseModel):
    topic: str = Field(..., min_length=1, max_length=500)


class BusinessBriefRequest(BaseModel):
    context: str = Field(..., min_length=1, max_length=4000)


# ================= PLANS / LEARNERS =================

class PlanPermissionUpdate(BaseModel):
    course_lesson_limit: Optional[int] = Field(None, ge=-1)
    allow_ai_tutor: Optional[bool] = None
    allow_live_instructor: Optional[bool] = None


class PlanSettings(BaseModel):
    """{tier: {cycle: amount}}"""
    settings: Dict[str, Dict[str, float]]


class LearnerPlanUpdate(BaseModel):
    plan: str = Field(..., min_length=1, max_length=50)


# ================= SAVED CHALLENGES =================

class AdminChallengeGenerate(BaseModel):
    topic: str = Field(..., min_length=1, max_length=255)
    industry: str = Field(..., min_length=1, max_length=100)
    difficulty: str = Field(..., min_length=1, max_length=50)
    context: Optional[str] = ""


class ChallengeRefine(BaseModel):
    challenge: Dict[str, Any]
    instruction: str = Field(..., min_length=1, max_length=4000)


class ChallengeSave(BaseModel):
    challenge: Dict[str, Any]
    industry: str = Field(..., min_length=1, max_length=100)
    difficulty: str = Field(..., min_length=1, max_length=50)
    is_published: bool = True
