"""Student enrollment request API routes."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .. import schemas
from ..auth import AuthContext, get_auth_context
from ..database import get_db
from ..services import enrollment_pipeline

router = APIRouter(prefix="/api/enrollments", tags=["enrollments"])


@router.get("/offering", response_model=schemas.OfferingOut)
def get_offering(
    semester: int = Query(ge=1, le=schemas.MAX_SEMESTER),
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
):
    offering = enrollment_pipeline.degree_offering(db, auth, semester)
    return schemas.OfferingOut(
        degree_code=offering.degree.code,
        semester=offering.semester,
        required_count=offering.required_count,
        window_open=offering.window_open,
        enrollment_start=offering.rule.enrollment_start,
        enrollment_end=offering.rule.enrollment_end,
        courses=[schemas.OfferedCourse.model_validate(course) for course in offering.courses],
    )


@router.get("/mine", response_model=list[schemas.EnrollmentOut])
def my_requests(
    academic_year: str | None = Query(default=None),
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
):
    return enrollment_pipeline.list_requests(db, auth, academic_year)


@router.get("/draft", response_model=schemas.EnrollmentOut | None)
def get_draft(
    academic_year: str = Query(),
    semester: int = Query(),
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
):
    return enrollment_pipeline.get_draft(db, auth, academic_year, semester)


@router.put("/draft", response_model=schemas.EnrollmentOut)
def save_draft(
    payload: schemas.DraftIn,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
):
    return enrollment_pipeline.save_draft(
        db,
        auth,
        academic_year=payload.academic_year,
        semester=payload.semester,
        course_codes=payload.course_codes,
    )


@router.post("/{request_id}/submit", response_model=schemas.EnrollmentOut)
def submit_request(
    request_id: UUID,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
):
    return enrollment_pipeline.submit(db, auth, request_id)


@router.get("/hod/pending", response_model=list[schemas.PendingGroupOut])
def pending_requests(
    semester: int | None = Query(default=None),
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
):
    return enrollment_pipeline.pending_for_hod(db, auth, semester)


@router.post("/hod/decision", response_model=schemas.HodDecisionOut)
def hod_decision(
    payload: schemas.HodDecisionIn,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
):
    result = enrollment_pipeline.hod_decision(db, auth, payload.request_ids, payload.action, payload.reason)
    return schemas.HodDecisionOut(
        action=result.action,
        processed=result.processed,
        requested=result.requested,
        processed_ids=result.processed_ids,
    )
