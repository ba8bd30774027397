"""
sqlpath/routes/admin.py
Admin console: course authoring, learning paths, plans, learners and the
challenge library

All endpoints require User.is_admin.
"""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from sqlpath.database import get_db
from sqlpath.orm.user import User
from sqlpath.rbac import require_admin
from sqlpath.schemas.admin import (
    AdminChallengeGenerate,
    BusinessBriefRequest,
    ChallengeJsonReplace,
    ChallengeRefine,
    ChallengeSave,
    CourseDraftCreate,
    CourseUpdate,
    LearnerPlanUpdate,
    ModuleChallengeGenerate,
    ModuleReorder,
    ModulesCreate,
    ModuleUpdate,
    OutlineRequest,
    PathCourseAdd,
    PathCreate,
    PathUpdate,
    PlanPermissionUpdate,
    PlanSettings,
    RefineRequest,
    TopicRequest,
)
from sqlpath.schemas.challenge import parse_challenge, challenge_to_dict
from sqlpath.schemas.progress import StandardResponse, ok
from sqlpath.services import challenge_service, gemini_service
from sqlpath.services.course_service import CourseService
from sqlpath.services.path_service import PathService
from sqlpath.services.plan_service import PlanService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


# ================= COURSES =================

@router.get("/courses", response_model=StandardResponse)
async def list_courses(admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    courses = await CourseService(db).list_courses()
    return ok("Courses", courses=[c.to_dict(include_modules=False) for c in courses])


@router.post("/courses", response_model=StandardResponse, status_code=201)
async def create_course(
    payload: CourseDraftCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    course = await CourseService(db).create_course_draft(payload.model_dump())
    return ok("Course draft created", course=course.to_dict())


@router.get("/courses/{course_id}", response_model=StandardResponse)
async def get_course(course_id: int, admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    course = await CourseService(db).get_course(course_id)
    return ok("Course", course=course.to_dict())


@router.patch("/courses/{course_id}", response_model=StandardResponse)
async def update_course(
    course_id: int,
    payload: CourseUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    course = await CourseService(db).update_course_details(course_id, payload.model_dump(exclude_unset=True))
    return ok("Course updated", course=course.to_dict())


@router.delete("/courses/{course_id}", response_model=StandardResponse)
async def delete_course(course_id: int, admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    await CourseService(db).delete_course(course_id)
    return ok("Course deleted", course_id=course_id)


@router.post("/courses/{course_id}/outline", response_model=StandardResponse)
async def generate_outline(
    course_id: int,
    payload: OutlineRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Draft scenario + module outline for review; nothing is added to the course yet."""
    outline = await CourseService(db).generate_outline(course_id, payload.prompt)
    return ok("Outline generated", **outline)


@router.post("/courses/{course_id}/modules", response_model=StandardResponse, status_code=201)
async def create_modules(
    course_id: int,
    payload: ModulesCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    course = await CourseService(db).create_course_modules(
        course_id, [m.model_dump() for m in payload.modules]
    )
    return ok("Modules created", course=course.to_dict())


@router.put("/courses/{course_id}/modules/order", response_model=StandardResponse)
async def reorder_modules(
    course_id: int,
    payload: ModuleReorder,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    course = await CourseService(db).reorder_modules(course_id, payload.module_ids)
    return ok("Modules reordered", course=course.to_dict())


@router.post("/courses/{course_id}/generate", response_model=StandardResponse)
async def generate_course_content(
    course_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Generate every missing module challenge, then publish."""
    course = await CourseService(db).generate_course_content(course_id)
    return ok("Course content generated", course=course.to_dict())


@router.post("/business-brief", response_model=StandardResponse)
async def business_brief(payload: BusinessBriefRequest, admin: User = Depends(require_admin)):
    brief = await gemini_service.generate_business_brief(payload.context)
    return ok("Business brief generated", brief=brief)


# ================= MODULES =================

@router.patch("/modules/{module_id}", response_model=StandardResponse)
async def update_module(
    module_id: int,
    payload: ModuleUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    module = await CourseService(db).update_module(module_id, payload.model_dump(exclude_unset=True))
    return ok("Module updated", module=module.to_dict())


@router.put("/modules/{module_id}/challenge", response_model=StandardResponse)
async def replace_module_challenge(
    module_id: int,
    payload: ChallengeJsonReplace,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Pasted challenge JSON; invalid payloads are rejected with 400 and nothing is saved."""
    module = await CourseService(db).replace_module_challenge(module_id, payload.raw_json)
    return ok("Module challenge replaced", module=module.to_dict())


@router.post("/modules/{module_id}/challenge/generate", response_model=StandardResponse)
async def generate_module_challenge(
    module_id: int,
    payload: ModuleChallengeGenerate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    module = await CourseService(db).generate_module_challenge(module_id, payload.challenge_type)
    return ok("Module challenge generated", module=module.to_dict())


@router.post("/modules/{module_id}/refine", response_model=StandardResponse)
async def refine_module(
    module_id: int,
    payload: RefineRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    course = await CourseService(db).refine_module(module_id, payload.instruction)
    return ok("Module refined", course=course.to_dict())


@router.delete("/modules/{module_id}", response_model=StandardResponse)
async def delete_module(module_id: int, admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    course = await CourseService(db).delete_module(module_id)
    return ok("Module deleted", course=course.to_dict())


# ================= LEARNING PATHS =================

@router.get("/paths", response_model=StandardResponse)
async def list_paths(admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    paths = await PathService(db).list_paths()
    return ok("Learning paths", paths=[p.to_dict() for p in paths])


@router.post("/paths", response_model=StandardResponse, status_code=201)
async def create_path(payload: PathCreate, admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    path = await PathService(db).create_path(payload.model_dump())
    return ok("Learning path created", path=path.to_dict())


@router.post("/paths/metadata", response_model=StandardResponse)
async def generate_path_metadata(payload: TopicRequest, admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    metadata = await PathService(db).generate_metadata(payload.topic)
    return ok("Learning path metadata generated", **metadata)


@router.patch("/paths/{path_id}", response_model=StandardResponse)
async def update_path(
    path_id: int,
    payload: PathUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    path = await PathService(db).update_path(path_id, payload.model_dump(exclude_unset=True))
    return ok("Learning path updated", path=path.to_dict())


@router.delete("/paths/{path_id}", response_model=StandardResponse)
async def delete_path(path_id: int, admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    await PathService(db).delete_path(path_id)
    return ok("Learning path deleted", path_id=path_id)


@router.post("/paths/{path_id}/courses", response_model=StandardResponse)
async def add_course_to_path(
    path_id: int,
    payload: PathCourseAdd,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    path = await PathService(db).add_course_to_path(path_id, payload.course_id, payload.sequence_order)
    return ok("Course added to learning path", path=path.to_dict())


@router.delete("/paths/{path_id}/courses/{course_id}", response_model=StandardResponse)
async def remove_course_from_path(
    path_id: int,
    course_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    path = await PathService(db).remove_course_from_path(path_id, course_id)
    return ok("Course removed from learning path", path=path.to_dict())


# ================= PLANS & LEARNERS =================

@router.get("/plans/permissions", response_model=StandardResponse)
async def list_plan_permissions(admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    rows = await PlanService(db).fetch_all_plan_permissions()
    return ok("Plan permissions", permissions=[r.to_dict() for r in rows])


@router.patch("/plans/permissions/{tier}", response_model=StandardResponse)
async def update_plan_permission(
    tier: str,
    payload: PlanPermissionUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    row = await PlanService(db).update_plan_permission(tier, payload.model_dump(exclude_unset=True))
    return ok("Plan permissions updated", permission=row.to_dict())


@router.get("/plans/prices", response_model=StandardResponse)
async def get_plan_prices(admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return ok("Plan prices", prices=await PlanService(db).fetch_plan_settings())


@router.put("/plans/prices", response_model=StandardResponse)
async def save_plan_prices(payload: PlanSettings, admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    prices = await PlanService(db).save_plan_settings(payload.settings)
    return ok("Plan prices saved", prices=prices)


@router.get("/learners", response_model=StandardResponse)
async def list_learners(admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    learners = await PlanService(db).fetch_all_learners()
    return ok("Learners", learners=[u.to_dict() for u in learners])


@router.patch("/learners/{user_id}/plan", response_model=StandardResponse)
async def update_learner_plan(
    user_id: int,
    payload: LearnerPlanUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    user = await PlanService(db).update_learner_plan(user_id, payload.plan)
    return ok("Learner plan updated", learner=user.to_dict())


# ================= CHALLENGE LIBRARY =================

@router.post("/challenges/generate", response_model=StandardResponse)
async def generate_challenge(payload: AdminChallengeGenerate, admin: User = Depends(require_admin)):
    """Draft a challenge for review; it is only stored once saved."""
    challenge = await gemini_service.generate_admin_challenge(
        payload.topic, payload.industry, payload.difficulty, payload.context or ""
    )
    return ok("Challenge generated", challenge=challenge_to_dict(challenge))


@router.post("/challenges/refine", response_model=StandardResponse)
async def refine_challenge(payload: ChallengeRefine, admin: User = Depends(require_admin)):
    challenge = parse_challenge(payload.challenge)
    refined = await gemini_service.refine_challenge_content(challenge, payload.instruction)
    return ok("Challenge refined", challenge=challenge_to_dict(refined))


@router.get("/challenges", response_model=StandardResponse)
async def list_saved_challenges(admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    saved = await challenge_service.fetch_saved_challenges(db)
    return ok("Saved challenges", challenges=[c.to_dict() for c in saved])


@router.post("/challenges", response_model=StandardResponse, status_code=201)
async def save_challenge(payload: ChallengeSave, admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    challenge = parse_challenge(payload.challenge)
    saved = await challenge_service.save_admin_challenge(
        db, challenge, payload.industry, payload.difficulty, payload.is_published
    )
    return ok("Challenge saved", challenge=saved.to_dict())


@router.post("/challenges/{challenge_id}/toggle-publish", response_model=StandardResponse)
async def toggle_publish(challenge_id: int, admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    saved = await challenge_service.toggle_challenge_publish(db, challenge_id)
    return ok("Challenge published" if saved.is_published else "Challenge unpublished", challenge=saved.to_dict())


@router.delete("/challenges/{challenge_id}", response_model=StandardResponse)
async def delete_challenge(challenge_id: int, admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    await challenge_service.delete_saved_challenge(db, challenge_id)
    return ok("Challenge deleted", challenge_id=challenge_id)
