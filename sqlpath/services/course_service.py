"""
sqlpath/services/course_service.py
Course authoring: drafts, outlines, modules and module content

Module order is a 1-based, gapless sequence_order within a course. Every
operation that adds, removes, splits or reorders modules resequences the
course before committing.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from sqlpath.exceptions import ResourceNotFoundError, InvalidRequestError
from sqlpath.orm.course import Course, CourseModule, CourseStatus, ChallengeType
from sqlpath.orm.learning_path import LearningPathCourse
from sqlpath.schemas.challenge import parse_challenge, parse_challenge_json, challenge_to_dict
from sqlpath.services import gemini_service

logger = logging.getLogger(__name__)

COURSE_FIELDS = ("title", "industry", "target_role", "skill_level", "main_context")
MODULE_FIELDS = ("title", "skill_focus", "task_description", "expected_outcome", "estimated_time")


def resequence(modules: Iterable[CourseModule]) -> List[CourseModule]:
    """Renumber modules 1..n in their current order."""
    ordered = list(modules)
    for position, module in enumerate(ordered, start=1):
        module.sequence_order = position
    return ordered


def _sorted_modules(course: Course) -> List[CourseModule]:
    return sorted(course.modules, key=lambda m: (m.sequence_order, m.id or 0))


class CourseService:
    """Admin-side course operations. Learner reads go through get_course(published_only=True)."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ---- Reads ----

    async def list_courses(self, published_only: bool = False) -> List[Course]:
        query = select(Course)
        if published_only:
            query = query.where(Course.status == CourseStatus.published)
        result = await self.db.execute(query.order_by(Course.created_at.desc(), Course.id.desc()))
        return list(result.scalars().all())

    async def get_course(self, course_id: int, published_only: bool = False) -> Course:
        result = await self.db.execute(
            select(Course)
            .where(Course.id == course_id)
            .execution_options(populate_existing=True)
        )
        course = result.scalar_one_or_none()
        if course is None or (published_only and not course.is_published):
            raise ResourceNotFoundError("Course", course_id)
        return course

    async def get_module(self, module_id: int) -> CourseModule:
        module = await self.db.get(CourseModule, module_id)
        if module is None:
            raise ResourceNotFoundError("Module", module_id)
        return module

    # ---- Courses ----

    async def create_course_draft(self, data: Dict[str, Any]) -> Course:
        course = Course(status=CourseStatus.draft, **{k: data.get(k) for k in COURSE_FIELDS})
        self.db.add(course)
        await self.db.commit()
        logger.info(f"Created course draft {course.id} '{course.title}'")
        return await self.get_course(course.id)

    async def update_course_details(self, course_id: int, updates: Dict[str, Any]) -> Course:
        course = await self.get_course(course_id)
        for key in COURSE_FIELDS:
            if key in updates and updates[key] is not None:
                setattr(course, key, updates[key])
        if updates.get("status"):
            course.status = CourseStatus(updates["status"])
        await self.db.commit()
        return await self.get_course(course_id)

    async def update_course_status(self, course_id: int, status: str) -> Course:
        return await self.update_course_details(course_id, {"status": status})

    async def delete_course(self, course_id: int) -> None:
        course = await self.get_course(course_id)
        await self.db.execute(delete(LearningPathCourse).where(LearningPathCourse.course_id == course_id))
        await self.db.delete(course)
        await self.db.commit()
        logger.info(f"Deleted course {course_id}")

    async def generate_outline(self, course_id: int, prompt_text: str) -> Dict[str, Any]:
        """
        Ask the content service for a scenario and module outline. The
        scenario becomes the course context and the course moves to
        outline_ready; modules are created separately once the admin has
        reviewed the outline.
        """
        course = await self.get_course(course_id)
        outline = await gemini_service.generate_course_outline(
            course.title,
            course.industry or "",
            course.target_role or "",
            course.skill_level or "",
            prompt_text,
        )
        course.main_context = outline["scenario"]
        if outline["modules"]:
            course.status = CourseStatus.outline_ready
        await self.db.commit()
        return outline

    # ---- Modules ----

    async def create_course_modules(self, course_id: int, modules: List[Dict[str, Any]]) -> Course:
        """Append modules in the given order. Challenge payloads, if any, are validated first."""
        course = await self.get_course(course_id)

        rows = []
        for data in modules:
            challenge_json = None
            module_type = ChallengeType(data.get("module_type") or "sql")
            if data.get("challenge_json"):
                challenge = parse_challenge(data["challenge_json"])
                challenge_json = challenge_to_dict(challenge)
                module_type = ChallengeType(challenge.type)
            rows.append(CourseModule(
                course_id=course.id,
                module_type=module_type,
                challenge_json=challenge_json,
                **{k: data.get(k) for k in MODULE_FIELDS}
            ))

        resequence(_sorted_modules(course) + rows)
        self.db.add_all(rows)
        await self.db.commit()
        logger.info(f"Added {len(rows)} modules to course {course_id}")
        return await self.get_course(course_id)

    async def update_module(self, module_id: int, updates: Dict[str, Any]) -> CourseModule:
        module = await self.get_module(module_id)
        for key in MODULE_FIELDS:
            if key in updates and updates[key] is not None:
                setattr(module, key, updates[key])
        if updates.get("module_type"):
            module.module_type = ChallengeType(updates["module_type"])
        await self.db.commit()
        return module

    async def replace_module_challenge(self, module_id: int, raw_json: str) -> CourseModule:
        """
        Replace a module's challenge with pasted JSON.

        Raises:
            ChallengePayloadError: invalid JSON or payload; nothing is written
        """
        challenge = parse_challenge_json(raw_json)
        module = await self.get_module(module_id)
        module.challenge_json = challenge_to_dict(challenge)
        module.module_type = ChallengeType(challenge.type)
        await self.db.commit()
        logger.info(f"Replaced challenge of module {module_id} ({challenge.type})")
        return module

    async def generate_module_challenge(self, module_id: int, challenge_type: Optional[str] = None) -> CourseModule:
        module = await self.get_module(module_id)
        course = await self.get_course(module.course_id)
        challenge_type = challenge_type or (module.module_type.value if module.module_type else "sql")

        challenge = await gemini_service.generate_course_challenge(
            {
                "title": module.title,
                "skill_focus": module.skill_focus,
                "task_description": module.task_description,
                "difficulty": course.skill_level,
            },
            course.industry or "",
            course.main_context or "",
            challenge_type,
        )
        module.challenge_json = challenge_to_dict(challenge)
        module.module_type = ChallengeType(challenge.type)
        await self.db.commit()
        return module

    async def generate_course_content(self, course_id: int) -> Course:
        """Generate challenges for every module that has none, then publish."""
        course = await self.get_course(course_id)
        course.status = CourseStatus.generating
        await self.db.commit()

        for module in _sorted_modules(course):
            if module.has_content:
                continue
            await self.generate_module_challenge(module.id)

        course = await self.get_course(course_id)
        course.status = CourseStatus.published
        await self.db.commit()
        return await self.get_course(course_id)

    async def refine_module(self, module_id: int, instruction: str) -> Course:
        """
        Rewrite a module per the admin's instruction. When the content
        service splits it, the extra modules are inserted right after it.
        Generated content of the original module is dropped since it no
        longer matches the rewritten outline.
        """
        module = await self.get_module(module_id)
        course = await self.get_course(module.course_id)

        refined = await gemini_service.refine_course_module(
            module.to_dict(), course.main_context or "", instruction
        )

        first, extra = refined[0], refined[1:]
        for key in MODULE_FIELDS:
            if first.get(key) is not None:
                setattr(module, key, first[key])
        if extra:
            module.challenge_json = None

        new_rows = [
            CourseModule(course_id=course.id, module_type=module.module_type, **{k: data.get(k) for k in MODULE_FIELDS})
            for data in extra
        ]

        ordered = []
        for existing in _sorted_modules(course):
            ordered.append(existing)
            if existing.id == module.id:
                ordered.extend(new_rows)
        resequence(ordered)

        self.db.add_all(new_rows)
        await self.db.commit()
        return await self.get_course(course.id)

    async def delete_module(self, module_id: int) -> Course:
        module = await self.get_module(module_id)
        course = await self.get_course(module.course_id)

        remaining = [m for m in _sorted_modules(course) if m.id != module_id]
        await self.db.delete(module)
        resequence(remaining)
        await self.db.commit()
        logger.info(f"Deleted module {module_id} from course {course.id}")
        return await self.get_course(course.id)

    async def reorder_modules(self, course_id: int, ordered_ids: List[int]) -> Course:
        """
        Raises:
            InvalidRequestError: ordered_ids is not a permutation of the course's modules
        """
        course = await self.get_course(course_id)
        by_id = {m.id: m for m in course.modules}
        if sorted(ordered_ids) != sorted(by_id):
            raise InvalidRequestError("Module order must list every module of the course exactly once")

        resequence(by_id[module_id] for module_id in ordered_ids)
        await self.db.commit()
        return await self.get_course(course_id)
