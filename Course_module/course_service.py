"""
Course lookup service.

Callers hand in a single course id that may point at either a published
Course or a PendingCourse draft. resolve_course_ref() does the one lookup
and returns a CourseRef that knows both sides of the link.
"""
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional
import logging

from sqlalchemy.orm import Session

from errors import NotFoundError
from .Course_model import Course, PendingCourse

logger = logging.getLogger(__name__)


@dataclass
class CourseRef:
    course: Optional[Course] = None
    pending_course: Optional[PendingCourse] = None

    @property
    def published_id(self) -> Optional[int]:
        if self.course is not None:
            return self.course.id
        if self.pending_course is not None:
            return self.pending_course.course_id
        return None

    @property
    def draft_id(self) -> Optional[int]:
        if self.pending_course is not None:
            return self.pending_course.id
        if self.course is not None:
            return self.course.pending_course_id
        return None

    @property
    def price(self) -> float:
        source = self.course if self.course is not None else self.pending_course
        return float(source.price or 0) if source is not None else 0.0

    @property
    def title(self) -> str:
        if self.course is not None:
            return self.course.display_title
        return self.pending_course.title if self.pending_course is not None else "Course"

    @property
    def instructor_id(self) -> Optional[int]:
        source = self.course if self.course is not None else self.pending_course
        return source.instructor_id if source is not None else None


def resolve_course_ref(db: Session, course_id: int) -> CourseRef:
    """
    Resolve a course id against published courses first, then drafts.
    Raises NotFoundError when neither table has it.
    """
    course = db.query(Course).filter(Course.id == course_id).first()
    if course:
        pending = None
        if course.pending_course_id:
            pending = db.query(PendingCourse).filter(PendingCourse.id == course.pending_course_id).first()
        return CourseRef(course=course, pending_course=pending)

    pending = db.query(PendingCourse).filter(PendingCourse.id == course_id).first()
    if pending:
        published = None
        if pending.course_id:
            published = db.query(Course).filter(Course.id == pending.course_id).first()
        return CourseRef(course=published, pending_course=pending)

    raise NotFoundError("Course not found", {"course_id": course_id})


def get_courses_by_ids(db: Session, course_ids: Iterable[int]) -> Dict[int, Course]:
    """Load published-table courses keyed by id. Missing ids are simply absent."""
    ids = list({int(cid) for cid in course_ids})
    if not ids:
        return {}
    courses = db.query(Course).filter(Course.id.in_(ids)).all()
    return {course.id: course for course in courses}


def find_missing_and_unpublished(db: Session, course_ids: List[int]):
    """
    Split requested course ids into (course_map, missing_ids, unpublished_ids),
    preserving the request order in both id lists.
    """
    course_map = get_courses_by_ids(db, course_ids)
    missing = [cid for cid in course_ids if cid not in course_map]
    unpublished = [cid for cid in course_ids if cid in course_map and not course_map[cid].published]
    return course_map, missing, unpublished
