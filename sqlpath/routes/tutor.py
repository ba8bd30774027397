"""
sqlpath/routes/tutor.py
AI tutor chat and live voice instructor setup

Both features are plan-gated: the learner's tier must allow them
(PlanPermission.allow_ai_tutor / allow_live_instructor), otherwise 402.
"""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from sqlpath.database import get_db
from sqlpath.orm.user import User
from sqlpath.rbac import get_current_user
from sqlpath.schemas.challenge import parse_challenge
from sqlpath.schemas.progress import TutorChatRequest, LiveInstructionRequest, StandardResponse, ok
from sqlpath.services import gemini_service
from sqlpath.services.access_gate import AccessGateService, FEATURE_AI_TUTOR, FEATURE_LIVE_INSTRUCTOR

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tutor", tags=["AI Tutor"])


@router.post("/chat", response_model=StandardResponse)
async def tutor_chat(
    request: TutorChatRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await AccessGateService(db).enforce_feature(current_user, FEATURE_AI_TUTOR)
    challenge = parse_challenge(request.challenge)

    reply = await gemini_service.tutor_reply(
        challenge,
        [turn.model_dump() for turn in request.history],
        request.message,
        request.industry,
        request.custom_context,
    )
    return ok("Tutor reply", reply=reply)


@router.post("/live-instruction", response_model=StandardResponse)
async def live_instruction(
    request: LiveInstructionRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """System instruction for the client-side live voice session."""
    await AccessGateService(db).enforce_feature(current_user, FEATURE_LIVE_INSTRUCTOR)
    challenge = parse_challenge(request.challenge)

    instruction = gemini_service.build_live_instructor_instruction(
        challenge, request.industry, request.custom_context, request.current_code
    )
    return ok("Live instructor ready", system_instruction=instruction)
