"""
sqlpath/routes/catalog.py
Published courses and learning paths
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from sqlpath.database import get_db
from sqlpath.orm.user import User
from sqlpath.rbac import get_current_user
from sqlpath.schemas.progress import StandardResponse, ok
from sqlpath.services.course_service import CourseService
from sqlpath.services.path_service import PathService

router = APIRouter(prefix="/catalog", tags=["Catalog"])


@router.get("/courses", response_model=StandardResponse)
async def list_courses(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    courses = await CourseService(db).list_courses(published_only=True)
    return ok("Courses", courses=[c.to_dict(include_modules=False) for c in courses])


@router.get("/courses/{course_id}", response_model=StandardResponse)
async def get_course(
    course_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    course = await CourseService(db).get_course(course_id, published_only=True)
    return ok("Course", course=course.to_dict(include_content=False))


@router.get("/paths", response_model=StandardResponse)
async def list_paths(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    paths = await PathService(db).list_paths(published_only=True)
    return ok("Learning paths", paths=[p.to_dict() for p in paths])


@router.get("/paths/{path_id}", response_model=StandardResponse)
async def get_path(
    path_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    path = await PathService(db).get_path(path_id, published_only=True)
    return ok("Learning path", path=path.to_dict())
