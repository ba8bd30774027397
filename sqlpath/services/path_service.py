"""
sqlpath/services/path_service.py
Learning path (bundle) authoring and reads
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sqlpath.exceptions import ResourceNotFoundError
from sqlpath.orm.course import Course
from sqlpath.orm.learning_path import LearningPath, LearningPathCourse
from sqlpath.services import gemini_service

logger = logging.getLogger(__name__)

PATH_FIELDS = ("title", "description", "target_role", "industry", "is_published")


def resequence_links(links: List[LearningPathCourse]) -> List[LearningPathCourse]:
    for position, link in enumerate(links, start=1):
        link.sequence_order = position
    return links


class PathService:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_paths(self, published_only: bool = False) -> List[LearningPath]:
        query = select(LearningPath)
        if published_only:
            query = query.where(LearningPath.is_published == True)
        result = await self.db.execute(query.order_by(LearningPath.created_at.desc(), LearningPath.id.desc()))
        return list(result.scalars().all())

    async def get_path(self, path_id: int, published_only: bool = False) -> LearningPath:
        result = await self.db.execute(
            select(LearningPath)
            .where(LearningPath.id == path_id)
            .execution_options(populate_existing=True)
        )
        path = result.scalar_one_or_none()
        if path is None or (published_only and not path.is_published):
            raise ResourceNotFoundError("Learning path", path_id)
        return path

    async def create_path(self, data: Dict[str, Any]) -> LearningPath:
        path = LearningPath(
            title=data.get("title"),
            description=data.get("description"),
            target_role=data.get("target_role"),
            industry=data.get("industry"),
            is_published=bool(data.get("is_published", False)),
        )
        self.db.add(path)
        await self.db.commit()
        logger.info(f"Created learning path {path.id} '{path.title}'")
        return await self.get_path(path.id)

    async def update_path(self, path_id: int, updates: Dict[str, Any]) -> LearningPath:
        path = await self.get_path(path_id)
        for key in PATH_FIELDS:
            if key in updates and updates[key] is not None:
                setattr(path, key, updates[key])
        await self.db.commit()
        return await self.get_path(path_id)

    async def delete_path(self, path_id: int) -> None:
        path = await self.get_path(path_id)
        await self.db.delete(path)
        await self.db.commit()
        logger.info(f"Deleted learning path {path_id}")

    async def add_course_to_path(self, path_id: int, course_id: int, sequence_order: Optional[int] = None) -> LearningPath:
        """
        Insert a course at `sequence_order` (1-based; appended when omitted).
        Adding a course that is already a member moves it instead.
        """
        path = await self.get_path(path_id)
        if await self.db.get(Course, course_id) is None:
            raise ResourceNotFoundError("Course", course_id)

        links = [link for link in path.course_links if link.course_id != course_id]
        existing = next((link for link in path.course_links if link.course_id == course_id), None)
        link = existing or LearningPathCourse(path_id=path.id, course_id=course_id)

        position = len(links) if sequence_order is None else max(0, min(sequence_order - 1, len(links)))
        links.insert(position, link)
        resequence_links(links)

        if existing is None:
            self.db.add(link)
        await self.db.commit()
        return await self.get_path(path_id)

    async def remove_course_from_path(self, path_id: int, course_id: int) -> LearningPath:
        path = await self.get_path(path_id)
        link = next((link for link in path.course_links if link.course_id == course_id), None)
        if link is None:
            raise ResourceNotFoundError("Course in learning path", course_id)

        remaining = [l for l in path.course_links if l.course_id != course_id]
        await self.db.delete(link)
        resequence_links(remaining)
        await self.db.commit()
        return await self.get_path(path_id)

    async def generate_metadata(self, topic: str) -> Dict[str, str]:
        return await gemini_service.generate_bundle_metadata(topic)
