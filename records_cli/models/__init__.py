from datetime import datetime
from typing import Literal, Optional

from nanoid import generate
from sqlalchemy import (
    JSON,
    Boolean,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


def _now() -> int:
    return int(datetime.now().timestamp())


UserRole = Literal["student", "lecturer", "hod"]


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        String, primary_key=True, default=lambda: generate()
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String, unique=True)
    reg_number: Mapped[Optional[str]] = mapped_column(String, unique=True)
    role: Mapped[UserRole] = mapped_column(String, nullable=False, default="student")
    intake: Mapped[Optional[str]] = mapped_column(String)
    cohort_year: Mapped[Optional[str]] = mapped_column(String)
    academic_year: Mapped[Optional[str]] = mapped_column(String)
    program: Mapped[Optional[str]] = mapped_column(String)
    created_at: Mapped[int] = mapped_column(Integer, nullable=False, default=_now)

    courses: Mapped[list["Course"]] = relationship(back_populates="lecturer")
    module_assignments: Mapped[list["StudentModuleAssignment"]] = relationship(
        back_populates="student", cascade="all, delete"
    )
    enrollments: Mapped[list["Enrollment"]] = relationship(
        back_populates="student", cascade="all, delete"
    )

    def __repr__(self) -> str:
        return f"<User id={self.id!r} name={self.name!r} role={self.role!r}>"


class Course(Base):
    __tablename__ = "courses"

    id: Mapped[str] = mapped_column(
        String, primary_key=True, default=lambda: generate()
    )
    code: Mapped[str] = mapped_column(String, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    intake: Mapped[Optional[str]] = mapped_column(String)
    cohort_year: Mapped[Optional[str]] = mapped_column(String)
    target_year: Mapped[Optional[str]] = mapped_column(String)
    start_date: Mapped[Optional[str]] = mapped_column(String)
    end_date: Mapped[Optional[str]] = mapped_column(String)
    lecturer_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL")
    )
    claims_enabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    created_at: Mapped[int] = mapped_column(Integer, nullable=False, default=_now)

    lecturer: Mapped[Optional["User"]] = relationship(back_populates="courses")
    enrollments: Mapped[list["Enrollment"]] = relationship(
        back_populates="course", cascade="all, delete"
    )
    marks: Mapped[list["Mark"]] = relationship(back_populates="course")

    def __repr__(self) -> str:
        return (
            f"<Course id={self.id!r} code={self.code!r} name={self.name!r} "
            f"intake={self.intake!r} cohort_year={self.cohort_year!r}>"
        )


class StudentModuleAssignment(Base):
    __tablename__ = "student_modules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    student_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="cascade"), nullable=False
    )
    module_code: Mapped[str] = mapped_column(String, nullable=False)
    academic_year: Mapped[Optional[str]] = mapped_column(String)

    student: Mapped["User"] = relationship(back_populates="module_assignments")

    __table_args__ = (Index("student_modules_student_idx", "student_id"),)

    def __repr__(self) -> str:
        return (
            f"<StudentModuleAssignment student_id={self.student_id!r} "
            f"module_code={self.module_code!r} academic_year={self.academic_year!r}>"
        )


class Enrollment(Base):
    __tablename__ = "enrollments"

    id: Mapped[str] = mapped_column(
        String, primary_key=True, default=lambda: generate()
    )
    student_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="cascade"), nullable=False
    )
    course_id: Mapped[str] = mapped_column(
        ForeignKey("courses.id", ondelete="cascade"), nullable=False
    )
    joined_at: Mapped[int] = mapped_column(Integer, nullable=False, default=_now)

    student: Mapped["User"] = relationship(back_populates="enrollments")
    course: Mapped["Course"] = relationship(back_populates="enrollments")

    __table_args__ = (
        UniqueConstraint("student_id", "course_id", name="enrollments_student_course"),
    )

    def __repr__(self) -> str:
        return (
            f"<Enrollment id={self.id!r} student_id={self.student_id!r} "
            f"course_id={self.course_id!r}>"
        )


AssessmentType = Literal[
    "cat",
    "fat",
    "individual_assignment",
    "group_assignment",
    "quiz",
    "attendance",
]

ASSESSMENT_TYPES: tuple[AssessmentType, ...] = (
    "cat",
    "fat",
    "individual_assignment",
    "group_assignment",
    "quiz",
    "attendance",
)


class Mark(Base):
    __tablename__ = "marks"

    id: Mapped[str] = mapped_column(
        String, primary_key=True, default=lambda: generate()
    )
    student_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="cascade"), nullable=False
    )
    course_id: Mapped[str] = mapped_column(
        ForeignKey("courses.id", ondelete="cascade"), nullable=False
    )
    cat: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    fat: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    individual_assignment: Mapped[float] = mapped_column(
        Float, nullable=False, default=0.0
    )
    group_assignment: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    quiz: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    attendance: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    is_published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[int] = mapped_column(Integer, nullable=False, default=_now)

    course: Mapped["Course"] = relationship(back_populates="marks")
    history: Mapped[list["MarkHistory"]] = relationship(back_populates="mark")

    __table_args__ = (
        UniqueConstraint("student_id", "course_id", name="marks_student_course"),
    )

    def components(self) -> dict[str, float]:
        return {name: getattr(self, name) for name in ASSESSMENT_TYPES}

    def snapshot(self) -> dict:
        values: dict = self.components()
        values["total"] = self.total
        values["is_published"] = self.is_published
        return values

    def __repr__(self) -> str:
        return (
            f"<Mark id={self.id!r} student_id={self.student_id!r} "
            f"course_id={self.course_id!r} total={self.total!r} "
            f"is_published={self.is_published!r}>"
        )


ChangeReason = Literal["Creation", "Update", "Claim resolution"]


class MarkHistory(Base):
    __tablename__ = "mark_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    mark_id: Mapped[str] = mapped_column(
        ForeignKey("marks.id", ondelete="cascade"), nullable=False
    )
    old_values: Mapped[Optional[dict]] = mapped_column(JSON)
    new_values: Mapped[dict] = mapped_column(JSON, nullable=False)
    change_reason: Mapped[ChangeReason] = mapped_column(String, nullable=False)
    changed_by: Mapped[Optional[str]] = mapped_column(String)
    timestamp: Mapped[int] = mapped_column(Integer, nullable=False, default=_now)

    mark: Mapped["Mark"] = relationship(back_populates="history")

    def __repr__(self) -> str:
        return (
            f"<MarkHistory id={self.id!r} mark_id={self.mark_id!r} "
            f"change_reason={self.change_reason!r}>"
        )


ClaimStatus = Literal["pending", "approved", "rejected"]


class Claim(Base):
    __tablename__ = "claims"

    id: Mapped[str] = mapped_column(
        String, primary_key=True, default=lambda: f"claim_{generate()}"
    )
    student_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="cascade"), nullable=False
    )
    course_id: Mapped[str] = mapped_column(
        ForeignKey("courses.id", ondelete="cascade"), nullable=False
    )
    mark_id: Mapped[str] = mapped_column(
        ForeignKey("marks.id", ondelete="cascade"), nullable=False
    )
    assessment_type: Mapped[AssessmentType] = mapped_column(String, nullable=False)
    original_mark: Mapped[float] = mapped_column(Float, nullable=False)
    explanation: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[ClaimStatus] = mapped_column(
        String, nullable=False, default="pending"
    )
    lecturer_comment: Mapped[Optional[str]] = mapped_column(String)
    submitted_at: Mapped[int] = mapped_column(Integer, nullable=False, default=_now)
    resolved_at: Mapped[Optional[int]] = mapped_column(Integer)

    course: Mapped["Course"] = relationship()
    mark: Mapped["Mark"] = relationship()

    def __repr__(self) -> str:
        return (
            f"<Claim id={self.id!r} mark_id={self.mark_id!r} "
            f"assessment_type={self.assessment_type!r} status={self.status!r}>"
        )
