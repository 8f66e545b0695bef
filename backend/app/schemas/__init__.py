"""Pydantic schemas consolidating backend API contracts."""

# purpose: aggregate request and response schemas for FastAPI surfaces and services
# status: active

from .departments import DepartmentCreate, DepartmentOut, DepartmentUpdate
from .enrollment import (
    DraftIn,
    EnrollmentOut,
    HodDecisionIn,
    HodDecisionOut,
    OfferedCourse,
    OfferingOut,
    PendingGroupOut,
    StudentRef,
)
from .programs import (
    ApproveRequest,
    CollaboratorIn,
    CollaboratorOut,
    CourseCreate,
    CourseOut,
    CourseUpdate,
    DegreeCreate,
    DegreeOut,
    DegreeUpdate,
    EditEligibilityOut,
    MAX_SEMESTER,
    ProgramOut,
    RejectRequest,
    SemesterRule,
    SubmitRequest,
    VersionRef,
)
from .timeline import TimelineActor, TimelineEvent, TimelineResponse
