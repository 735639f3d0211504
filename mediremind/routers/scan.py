"""Scan endpoints - submit a photo, follow the pipeline, act on the result.

Pipeline progress is also pushed over ``/ws/session``; ``wait=true`` on
submit blocks until the run reaches ``result`` or ``error``.
"""

import base64
import binascii
import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from mediremind.models.analysis import PipelineSnapshot, ReminderFromResult, ScanRequest
from mediremind.models.profile import StoreUpdate
from mediremind.models.session import SessionView
from mediremind.routers.dependencies import get_session
from mediremind.services.analysis_pipeline import PipelineBusyError, ProfileRequiredError
from mediremind.services.session import NothingIdentifiedError, SessionController

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/scan", tags=["scan"])


def _decode_image(image_base64: str) -> bytes:
    # Accept data URLs as produced by browser file readers
    if image_base64.startswith("data:") and "," in image_base64:
        image_base64 = image_base64.split(",", 1)[1]
    try:
        return base64.b64decode(image_base64, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=400, detail="image_base64 is not valid base64") from None


def _profile_required(exc: ProfileRequiredError) -> HTTPException:
    return HTTPException(
        status_code=409,
        detail={"message": str(exc), "redirect": "profile"},
    )


@router.get("", response_model=SessionView)
async def get_scan_state(session: SessionController = Depends(get_session)):
    """Current pipeline snapshot plus derived view state."""
    return session.view()


@router.post("", response_model=PipelineSnapshot)
async def submit_scan(
    body: ScanRequest,
    wait: bool = Query(False),
    session: SessionController = Depends(get_session),
):
    image = _decode_image(body.image_base64)
    try:
        if wait:
            return await session.submit_image(image)
        return await session.start_scan(image)
    except ProfileRequiredError as exc:
        raise _profile_required(exc) from None
    except PipelineBusyError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from None


@router.post("/reset", response_model=PipelineSnapshot)
async def reset_scan(session: SessionController = Depends(get_session)):
    return await session.reset()


@router.post("/medications", response_model=StoreUpdate)
async def add_identified_medicine(session: SessionController = Depends(get_session)):
    """Add the identified medicine to the active profile's list."""
    try:
        return await session.add_to_medications()
    except ProfileRequiredError as exc:
        raise _profile_required(exc) from None
    except NothingIdentifiedError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from None


@router.post("/reminders", response_model=StoreUpdate)
async def set_reminder_for_result(
    body: ReminderFromResult | None = None,
    session: SessionController = Depends(get_session),
):
    """Schedule a reminder for the identified medicine at the default time."""
    try:
        return await session.set_reminder(dosage=body.dosage if body else None)
    except ProfileRequiredError as exc:
        raise _profile_required(exc) from None
    except NothingIdentifiedError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from None
