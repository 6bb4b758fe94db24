from fastapi import APIRouter, BackgroundTasks, Body, Depends, Query
from sqlalchemy.orm import Session, selectinload
from typing import Annotated, List, Union

from app.api.deps import get_db, get_notifier
from app.core.auth import get_current_user, User
from app.core.errors import Forbidden, NotFound
from app.core.notifications import Notifier
from app.models.job import Job
from app.schemas.job import (
    JobAppendCreate,
    JobDetailOut,
    JobMaterialCreate,
    JobMaterialOut,
    JobNoteCreate,
    JobNoteOut,
    JobOut,
    JobPhotoOut,
    JobUpdate,
)
from app.services import job_lifecycle

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.get("", response_model=List[JobOut])
def list_jobs(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    open_only: bool = Query(False, description="only jobs that are not completed"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    q = db.query(Job).options(selectinload(Job.vendor))

    if current_user.is_vendor:
        if current_user.vendor_id is None:
            raise Forbidden("No vendor linked to this account")
        q = q.filter(Job.vendor_id == current_user.vendor_id)
    elif current_user.is_operator:
        if current_user.organization_id is None:
            raise Forbidden("No organization linked to this account")
        q = q.filter(Job.organization_id == current_user.organization_id)

    if open_only:
        q = q.filter(Job.completed_at.is_(None))

    return q.order_by(Job.created_at.desc(), Job.id.desc()).offset(offset).limit(limit).all()


@router.get("/{job_id}", response_model=JobDetailOut)
def get_job(
    job_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    job = (
        db.query(Job)
        .options(
            selectinload(Job.vendor),
            selectinload(Job.notes),
            selectinload(Job.materials),
            selectinload(Job.photos),
        )
        .filter(Job.id == job_id)
        .first()
    )
    if not job:
        raise NotFound("Job not found")
    job_lifecycle.ensure_can_view(job, current_user)
    return job


@router.patch("/{job_id}", response_model=JobOut)
def update_job(
    job_id: int,
    payload: JobUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    notifier: Notifier = Depends(get_notifier),
):
    """
    Vendor/admin job action and free-form field updates.

    Example:
    ```
    PATCH /jobs/{job_id}
    {"action": "complete", "vendor_notes": "Replaced the valve", "total_cost": "240.00"}
    ```
    """
    job, _ = job_lifecycle.update_job(db, job_id, payload, current_user, notifier, background_tasks)
    return job


@router.post(
    "/{job_id}",
    response_model=Union[JobNoteOut, JobMaterialOut, JobPhotoOut],
    status_code=201,
)
def append_to_job(
    job_id: int,
    payload: Annotated[JobAppendCreate, Body(discriminator="type")],
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Add a note, material line or photo, picked by ``type``."""
    if isinstance(payload, JobNoteCreate):
        return job_lifecycle.add_note(db, job_id, payload, current_user)
    if isinstance(payload, JobMaterialCreate):
        return job_lifecycle.add_material(db, job_id, payload, current_user)
    return job_lifecycle.add_photo(db, job_id, payload, current_user)
