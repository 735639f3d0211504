import logging

from fastapi import APIRouter, Depends, HTTPException

from mediremind.catalog import LANGUAGES, is_known_voice
from mediremind.models.profile import (
    MedicationCreate,
    PreferencesUpdate,
    Profile,
    ProfileCreate,
    ProfilesSnapshot,
    ReminderCreate,
    ReminderUpdate,
    StoreUpdate,
)
from mediremind.routers.dependencies import get_session
from mediremind.services.profile_store import ProfileNotFoundError
from mediremind.services.session import SessionController

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/profiles", tags=["profiles"])

_LANGUAGE_CODES = {lang["code"] for lang in LANGUAGES}


def _not_found(exc: ProfileNotFoundError) -> HTTPException:
    return HTTPException(status_code=404, detail=str(exc))


def _check_language(code: str | None) -> None:
    if code is not None and code not in _LANGUAGE_CODES:
        raise HTTPException(status_code=422, detail=f"Unsupported language: {code}")


@router.get("", response_model=ProfilesSnapshot)
async def list_profiles(session: SessionController = Depends(get_session)):
    """List all profiles and the active selection."""
    return ProfilesSnapshot(
        profiles=session.store.profiles,
        active_profile_id=session.store.active_profile_id,
    )


@router.post("", response_model=StoreUpdate)
async def create_profile(body: ProfileCreate, session: SessionController = Depends(get_session)):
    """Create a profile; it becomes the active one."""
    _check_language(body.language_code)
    return await session.create_profile(body.name, body.language_code)


@router.get("/{profile_id}", response_model=Profile)
async def get_profile(profile_id: str, session: SessionController = Depends(get_session)):
    try:
        return session.store.get(profile_id)
    except ProfileNotFoundError as exc:
        raise _not_found(exc) from None


@router.delete("/{profile_id}", response_model=StoreUpdate)
async def delete_profile(profile_id: str, session: SessionController = Depends(get_session)):
    try:
        return await session.delete_profile(profile_id)
    except ProfileNotFoundError as exc:
        raise _not_found(exc) from None


@router.post("/{profile_id}/activate", response_model=StoreUpdate)
async def activate_profile(profile_id: str, session: SessionController = Depends(get_session)):
    """Switch the active profile, abandoning any scan in progress."""
    try:
        return await session.switch_profile(profile_id)
    except ProfileNotFoundError as exc:
        raise _not_found(exc) from None


@router.patch("/{profile_id}/preferences", response_model=StoreUpdate)
async def update_preferences(
    profile_id: str,
    body: PreferencesUpdate,
    session: SessionController = Depends(get_session),
):
    _check_language(body.language_code)
    if body.voice_id is not None and not is_known_voice(body.voice_id):
        raise HTTPException(status_code=422, detail=f"Unknown voice: {body.voice_id}")
    try:
        return await session.update_preferences(profile_id, body.language_code, body.voice_id)
    except ProfileNotFoundError as exc:
        raise _not_found(exc) from None


@router.post("/{profile_id}/medications", response_model=StoreUpdate)
async def add_medication(
    profile_id: str,
    body: MedicationCreate,
    session: SessionController = Depends(get_session),
):
    """Add a medicine; a case-insensitive duplicate is ignored (changed=false)."""
    try:
        return await session.add_medication(profile_id, body.name)
    except ProfileNotFoundError as exc:
        raise _not_found(exc) from None


@router.delete("/{profile_id}/medications/{medication_id}", response_model=StoreUpdate)
async def remove_medication(
    profile_id: str,
    medication_id: str,
    session: SessionController = Depends(get_session),
):
    try:
        return await session.remove_medication(profile_id, medication_id)
    except ProfileNotFoundError as exc:
        raise _not_found(exc) from None


@router.post("/{profile_id}/reminders", response_model=StoreUpdate)
async def add_reminder(
    profile_id: str,
    body: ReminderCreate,
    session: SessionController = Depends(get_session),
):
    try:
        return await session.add_reminder(
            profile_id, body.medicine_name, body.dosage, body.time, body.active,
        )
    except ProfileNotFoundError as exc:
        raise _not_found(exc) from None


@router.patch("/{profile_id}/reminders/{reminder_id}", response_model=StoreUpdate)
async def update_reminder(
    profile_id: str,
    reminder_id: str,
    body: ReminderUpdate,
    session: SessionController = Depends(get_session),
):
    try:
        return await session.update_reminder(profile_id, reminder_id, body.time, body.active)
    except ProfileNotFoundError as exc:
        raise _not_found(exc) from None


@router.delete("/{profile_id}/reminders/{reminder_id}", response_model=StoreUpdate)
async def remove_reminder(
    profile_id: str,
    reminder_id: str,
    session: SessionController = Depends(get_session),
):
    try:
        return await session.remove_reminder(profile_id, reminder_id)
    except ProfileNotFoundError as exc:
        raise _not_found(exc) from None
