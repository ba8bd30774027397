"""
sqlpath/services/progress_reconciliation.py
Progress reconciliation - merge enrollments, module progress and path
enrollments into display-ready dashboard items

This module is pure: it receives the published catalog and a snapshot of
the learner's progress rows and returns the dashboard lists together with
the status corrections that should be written back. Nothing here touches
the database; see progress_service.py for the store-backed wrapper.

RULES:
- A course is done when completed modules >= total modules > 0, or when its
  enrollment is already marked completed.
- Only paths the learner explicitly enrolled in become items. Their member
  courses are then hidden from the standalone course list.
- Percent = round-half-up(100 * completed / total), clamped to [0, 100],
  0 for an empty course or path.
- In-progress items are ordered by last activity, newest first; items
  without a timestamp go last in their original order. Only the first one
  is flagged last_active.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional, Set, Tuple

logger = logging.getLogger(__name__)

STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"
MODULE_COMPLETED = "completed"

ITEM_PATH = "path"
ITEM_COURSE = "course"

ACTION_OPEN_COURSE = "open_course"
ACTION_OPEN_PATH = "open_path"


# ================= INPUT VIEWS =================

@dataclass(frozen=True)
class CourseView:
    """Published course as seen by reconciliation."""
    id: int
    title: str
    module_ids: Tuple[int, ...] = ()
    industry: Optional[str] = None

    @classmethod
    def from_orm(cls, course) -> "CourseView":
        return cls(
            id=course.id,
            title=course.title,
            module_ids=tuple(m.id for m in course.modules),
            industry=course.industry,
        )


@dataclass(frozen=True)
class PathView:
    """Published learning path with its member courses in path order."""
    id: int
    title: str
    courses: Tuple[CourseView, ...] = ()
    industry: Optional[str] = None


@dataclass(frozen=True)
class EnrollmentRecord:
    course_id: int
    status: Optional[str] = STATUS_IN_PROGRESS
    last_accessed: Optional[datetime] = None


@dataclass(frozen=True)
class ModuleProgressRecord:
    course_id: int
    module_id: int
    status: str


@dataclass(frozen=True)
class PathEnrollmentRecord:
    path_id: int
    status: Optional[str] = STATUS_IN_PROGRESS
    enrolled_at: Optional[datetime] = None


@dataclass
class ProgressSnapshot:
    """Everything read from the store for one learner."""
    enrollments: List[EnrollmentRecord] = field(default_factory=list)
    module_progress: List[ModuleProgressRecord] = field(default_factory=list)
    path_enrollments: List[PathEnrollmentRecord] = field(default_factory=list)


# ================= OUTPUT =================

@dataclass(frozen=True)
class ContinueAction:
    """Where the dashboard's Continue button leads."""
    kind: str
    target_id: int

    def to_dict(self):
        return {"kind": self.kind, "target_id": self.target_id}


@dataclass
class ProgressItem:
    id: str
    type: str
    entity_id: int
    title: str
    subtitle: str
    percent: int
    completed_modules: int
    total_modules: int
    is_done: bool
    action: ContinueAction
    activity_at: Optional[datetime] = None
    next_course_id: Optional[int] = None
    last_active: bool = False

    def to_dict(self):
        return {
            "id": self.id,
            "type": self.type,
            "entity_id": self.entity_id,
            "title": self.title,
            "subtitle": self.subtitle,
            "percent": self.percent,
            "completed_modules": self.completed_modules,
            "total_modules": self.total_modules,
            "is_done": self.is_done,
            "action": self.action.to_dict(),
            "activity_at": self.activity_at.isoformat() if self.activity_at else None,
            "next_course_id": self.next_course_id,
            "last_active": self.last_active,
        }


@dataclass(frozen=True)
class StatusWrite:
    """A status correction reconciliation wants persisted."""
    entity: str  # "path" | "course"
    entity_id: int
    status: str
    previous_status: Optional[str] = None


@dataclass
class ReconciliationResult:
    in_progress: List[ProgressItem] = field(default_factory=list)
    completed: List[ProgressItem] = field(default_factory=list)
    completed_course_ids: Set[int] = field(default_factory=set)
    status_writes: List[StatusWrite] = field(default_factory=list)

    @property
    def path_writes(self) -> List[StatusWrite]:
        return [w for w in self.status_writes if w.entity == ITEM_PATH]

    @property
    def course_writes(self) -> List[StatusWrite]:
        return [w for w in self.status_writes if w.entity == ITEM_COURSE]

    @property
    def last_active(self) -> Optional[ProgressItem]:
        return self.in_progress[0] if self.in_progress else None

    def to_dict(self):
        return {
            "in_progress": [item.to_dict() for item in self.in_progress],
            "completed": [item.to_dict() for item in self.completed],
            "completed_course_ids": sorted(self.completed_course_ids),
        }


# ================= HELPER FUNCTIONS =================

def completion_percent(completed: int, total: int) -> int:
    """Whole-number percentage, half rounded up, clamped to [0, 100]."""
    if total <= 0:
        return 0
    value = (Decimal(100) * Decimal(completed) / Decimal(total)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return max(0, min(100, int(value)))


def is_course_done(completed: int, total: int, enrollment_status: Optional[str]) -> bool:
    """Derived signal OR explicit enrollment status."""
    return (total > 0 and completed >= total) or enrollment_status == STATUS_COMPLETED


def status_correction(is_done: bool, stored_status: Optional[str]) -> Optional[str]:
    """
    Status to write back, or None when the stored value is already right.

    Done but not stored as completed -> completed.
    Not done and stored as neither known status -> in_progress.
    """
    if is_done and stored_status != STATUS_COMPLETED:
        return STATUS_COMPLETED
    if not is_done and stored_status not in (STATUS_IN_PROGRESS, STATUS_COMPLETED):
        return STATUS_IN_PROGRESS
    return None


def completed_modules_by_course(rows: Iterable[ModuleProgressRecord]) -> Dict[int, Set[int]]:
    completed: Dict[int, Set[int]] = {}
    for row in rows:
        if row.status == MODULE_COMPLETED:
            completed.setdefault(row.course_id, set()).add(row.module_id)
    return completed


def _count_completed(course: CourseView, completed_map: Dict[int, Set[int]]) -> int:
    done = completed_map.get(course.id)
    if not done:
        return 0
    return len(done.intersection(course.module_ids))


def _latest(*timestamps: Optional[datetime]) -> Optional[datetime]:
    present = [ts for ts in timestamps if ts is not None]
    return max(present) if present else None


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}" if count == 1 else f"{count} {noun}s"


def sort_by_recency(items: List[ProgressItem]) -> List[ProgressItem]:
    """Newest activity first; undated items last, order preserved."""
    dated = [item for item in items if item.activity_at is not None]
    undated = [item for item in items if item.activity_at is None]
    dated.sort(key=lambda item: item.activity_at, reverse=True)
    ordered = dated + undated
    for index, item in enumerate(ordered):
        item.last_active = index == 0
    return ordered


# ================= RECONCILIATION =================

def reconcile(
    user_id: int,
    courses: List[CourseView],
    paths: List[PathView],
    snapshot: ProgressSnapshot,
) -> ReconciliationResult:
    """
    Build the learner's dashboard from the published catalog and their
    progress snapshot.

    Args:
        user_id: learner the snapshot belongs to
        courses: published courses with module ids
        paths: published paths with published member courses, in order
        snapshot: the learner's enrollments, module progress, path enrollments

    Returns:
        ReconciliationResult with in_progress / completed items, the set of
        done course ids, and the status writes to persist
    """
    if not user_id or (isinstance(user_id, int) and user_id <= 0):
        raise ValueError("user_id is required")

    result = ReconciliationResult()
    completed_map = completed_modules_by_course(snapshot.module_progress)

    enrollment_by_course: Dict[int, EnrollmentRecord] = {}
    for enrollment in snapshot.enrollments:
        enrollment_by_course.setdefault(enrollment.course_id, enrollment)

    path_enrollment_by_path: Dict[int, PathEnrollmentRecord] = {}
    for path_enrollment in snapshot.path_enrollments:
        path_enrollment_by_path.setdefault(path_enrollment.path_id, path_enrollment)

    catalog: Dict[int, CourseView] = {course.id: course for course in courses}
    active_path_ids: Set[int] = set()
    paths_by_course: Dict[int, Set[int]] = {}

    # ---- Paths ----
    for path in paths:
        if not path.courses:
            continue

        total_modules = 0
        completed_modules = 0
        next_course_id: Optional[int] = None
        member_activity: List[Optional[datetime]] = []

        for course in path.courses:
            paths_by_course.setdefault(course.id, set()).add(path.id)

            course_total = len(course.module_ids)
            course_completed = _count_completed(course, completed_map)
            total_modules += course_total
            completed_modules += course_completed

            enrollment = enrollment_by_course.get(course.id)
            enrollment_status = enrollment.status if enrollment else None
            if is_course_done(course_completed, course_total, enrollment_status):
                result.completed_course_ids.add(course.id)
            elif next_course_id is None:
                next_course_id = course.id

            if enrollment is not None:
                member_activity.append(enrollment.last_accessed)

        if next_course_id is None:
            next_course_id = path.courses[0].id

        path_enrollment = path_enrollment_by_path.get(path.id)
        if path_enrollment is None:
            continue

        active_path_ids.add(path.id)

        is_done = (
            (total_modules > 0 and completed_modules >= total_modules)
            or path_enrollment.status == STATUS_COMPLETED
        )

        correction = status_correction(is_done, path_enrollment.status)
        if correction is not None:
            result.status_writes.append(
                StatusWrite(ITEM_PATH, path.id, correction, path_enrollment.status)
            )

        if not is_done and next_course_id is not None:
            action = ContinueAction(ACTION_OPEN_COURSE, next_course_id)
        else:
            action = ContinueAction(ACTION_OPEN_PATH, path.id)

        item = ProgressItem(
            id=f"path-{path.id}",
            type=ITEM_PATH,
            entity_id=path.id,
            title=path.title,
            subtitle=_plural(len(path.courses), "course"),
            percent=completion_percent(completed_modules, total_modules),
            completed_modules=completed_modules,
            total_modules=total_modules,
            is_done=is_done,
            action=action,
            activity_at=_latest(path_enrollment.enrolled_at, *member_activity),
            next_course_id=next_course_id,
        )
        (result.completed if is_done else result.in_progress).append(item)

    # ---- Standalone courses ----
    seen: Set[int] = set()
    for enrollment in snapshot.enrollments:
        if enrollment.course_id in seen:
            continue
        seen.add(enrollment.course_id)

        course = catalog.get(enrollment.course_id)
        if course is None:
            continue

        course_total = len(course.module_ids)
        course_completed = _count_completed(course, completed_map)
        done = is_course_done(course_completed, course_total, enrollment.status)
        if done:
            result.completed_course_ids.add(course.id)

        correction = status_correction(done, enrollment.status)
        if correction is not None:
            result.status_writes.append(
                StatusWrite(ITEM_COURSE, course.id, correction, enrollment.status)
            )

        if paths_by_course.get(course.id, set()) & active_path_ids:
            continue

        item = ProgressItem(
            id=f"course-{course.id}",
            type=ITEM_COURSE,
            entity_id=course.id,
            title=course.title,
            subtitle=course.industry or "",
            percent=completion_percent(course_completed, course_total),
            completed_modules=course_completed,
            total_modules=course_total,
            is_done=done,
            action=ContinueAction(ACTION_OPEN_COURSE, course.id),
            activity_at=enrollment.last_accessed,
        )
        (result.completed if done else result.in_progress).append(item)

    result.in_progress = sort_by_recency(result.in_progress)
    for item in result.completed:
        item.last_active = False

    logger.debug(
        f"Reconciled user {user_id}: {len(result.in_progress)} in progress, "
        f"{len(result.completed)} completed, {len(result.status_writes)} status writes"
    )
    return result
