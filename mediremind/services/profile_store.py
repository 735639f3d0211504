"""Profile store - owns every local profile and its medicines/reminders.

Profiles are frozen pydantic models. Each mutation builds a new profile list
with the single targeted profile swapped for an updated copy, then writes it
with one ``KeyValueStore.set_many`` call before returning. If that write
fails the in-memory state keeps the change and the caller gets a warning on
the returned ``StoreUpdate``.

The active profile id is stored under its own key so the last selection
survives edits to the profile list.
"""

import json
import logging
import uuid
from datetime import UTC, datetime
from typing import Awaitable, Callable

from pydantic import TypeAdapter, ValidationError

from mediremind.catalog import color_for_index, default_voice_for
from mediremind.config import ACTIVE_PROFILE_STORAGE_KEY, PROFILES_STORAGE_KEY
from mediremind.database import KeyValueStore
from mediremind.models.profile import MedicineRecord, Profile, Reminder, StoreUpdate

logger = logging.getLogger(__name__)

_PROFILE_LIST = TypeAdapter(list[Profile])

ActiveProfileListener = Callable[[Profile | None], Awaitable[None]]


class ProfileNotFoundError(KeyError):
    def __init__(self, profile_id: str) -> None:
        super().__init__(profile_id)
        self.profile_id = profile_id

    def __str__(self) -> str:
        return f"Profile {self.profile_id} not found"


def _new_id() -> str:
    return uuid.uuid4().hex


class ProfileStore:
    def __init__(self, storage: KeyValueStore) -> None:
        self._storage = storage
        self._profiles: tuple[Profile, ...] = ()
        self._active_id: str | None = None
        self._listeners: list[ActiveProfileListener] = []

    # --- reads ---

    @property
    def profiles(self) -> list[Profile]:
        return list(self._profiles)

    @property
    def active_profile_id(self) -> str | None:
        return self._active_id

    @property
    def active_profile(self) -> Profile | None:
        if self._active_id is None:
            return None
        return self._find(self._active_id)

    def get(self, profile_id: str) -> Profile:
        profile = self._find(profile_id)
        if profile is None:
            raise ProfileNotFoundError(profile_id)
        return profile

    def _find(self, profile_id: str) -> Profile | None:
        for p in self._profiles:
            if p.id == profile_id:
                return p
        return None

    def on_active_change(self, listener: ActiveProfileListener) -> None:
        """Register a reaction run whenever the active profile changes."""
        self._listeners.append(listener)

    async def _notify_active(self) -> None:
        active = self.active_profile
        for listener in self._listeners:
            await listener(active)

    # --- lifecycle ---

    async def load(self) -> None:
        """Restore profiles and the last active id from storage."""
        raw_profiles = await self._storage.get(PROFILES_STORAGE_KEY)
        raw_active = await self._storage.get(ACTIVE_PROFILE_STORAGE_KEY)

        profiles: list[Profile] = []
        if raw_profiles:
            try:
                profiles = _PROFILE_LIST.validate_json(raw_profiles)
            except ValidationError as exc:
                logger.error("Stored profiles could not be parsed, starting empty: %s", exc)

        active_id = None
        if raw_active:
            try:
                active_id = json.loads(raw_active)
            except json.JSONDecodeError:
                logger.warning("Stored active profile id is not valid JSON: %r", raw_active)

        self._profiles = tuple(profiles)
        if active_id is not None and self._find(active_id) is not None:
            self._active_id = active_id
        elif self._profiles:
            self._active_id = self._profiles[0].id
        else:
            self._active_id = None

        logger.info("Loaded %d profile(s), active=%s", len(self._profiles), self._active_id)
        await self._notify_active()

    # --- persistence ---

    async def _commit(self, profiles: tuple[Profile, ...], *, active_changed: bool = False) -> str | None:
        """Apply ``profiles`` in memory, then persist in a single write."""
        self._profiles = profiles
        items: dict[str, str | None] = {
            PROFILES_STORAGE_KEY: _PROFILE_LIST.dump_json(list(profiles)).decode(),
        }
        if active_changed:
            items[ACTIVE_PROFILE_STORAGE_KEY] = json.dumps(self._active_id) if self._active_id else None
        return await self._write(items)

    async def _write(self, items: dict[str, str | None]) -> str | None:
        try:
            await self._storage.set_many(items)
        except Exception as exc:
            logger.warning("Failed to persist profiles (%s); keeping in-memory state", exc)
            return f"Changes could not be saved on this device: {exc}"
        return None

    async def _replace(self, updated: Profile) -> str | None:
        profiles = tuple(updated if p.id == updated.id else p for p in self._profiles)
        return await self._commit(profiles)

    # --- profile mutations ---

    async def create(self, name: str, language_code: str) -> StoreUpdate:
        """Add a profile with the language's default voice and make it active."""
        name = name.strip()
        if not name:
            return StoreUpdate(changed=False)

        profile = Profile(
            id=_new_id(),
            name=name,
            color=color_for_index(len(self._profiles)),
            preferred_language_code=language_code,
            preferred_voice_id=default_voice_for(language_code),
        )
        self._active_id = profile.id
        warning = await self._commit((*self._profiles, profile), active_changed=True)
        logger.info("Created profile %s (%s)", profile.id, profile.name)
        await self._notify_active()
        return StoreUpdate(profile_id=profile.id, warning=warning)

    async def delete(self, profile_id: str) -> StoreUpdate:
        self.get(profile_id)
        remaining = tuple(p for p in self._profiles if p.id != profile_id)
        was_active = self._active_id == profile_id
        if was_active:
            self._active_id = remaining[0].id if remaining else None
        warning = await self._commit(remaining, active_changed=was_active)
        logger.info("Deleted profile %s, active=%s", profile_id, self._active_id)
        if was_active:
            await self._notify_active()
        return StoreUpdate(profile_id=profile_id, warning=warning)

    async def set_active(self, profile_id: str) -> StoreUpdate:
        self.get(profile_id)
        self._active_id = profile_id
        warning = await self._write({ACTIVE_PROFILE_STORAGE_KEY: json.dumps(profile_id)})
        await self._notify_active()
        return StoreUpdate(profile_id=profile_id, warning=warning)

    async def update_preferences(
        self,
        profile_id: str,
        language_code: str | None = None,
        voice_id: str | None = None,
    ) -> StoreUpdate:
        """Change language and/or voice.

        A new language without an explicit voice also moves the profile to
        that language's default voice.
        """
        profile = self.get(profile_id)
        changes: dict = {}
        if language_code is not None:
            changes["preferred_language_code"] = language_code
            changes["preferred_voice_id"] = default_voice_for(language_code)
        if voice_id is not None:
            changes["preferred_voice_id"] = voice_id
        if not changes:
            return StoreUpdate(profile_id=profile_id, changed=False)

        warning = await self._replace(profile.model_copy(update=changes))
        if profile_id == self._active_id:
            await self._notify_active()
        return StoreUpdate(profile_id=profile_id, warning=warning)

    # --- medications ---

    async def add_medication(self, profile_id: str, name: str) -> StoreUpdate:
        """Append a medicine unless one with the same name (any case) exists."""
        profile = self.get(profile_id)
        name = name.strip()
        if not name or profile.has_medication(name):
            return StoreUpdate(profile_id=profile_id, changed=False)

        record = MedicineRecord(id=_new_id(), name=name, added_at=datetime.now(UTC))
        updated = profile.model_copy(update={"medications": (*profile.medications, record)})
        warning = await self._replace(updated)
        return StoreUpdate(profile_id=profile_id, warning=warning)

    async def remove_medication(self, profile_id: str, medication_id: str) -> StoreUpdate:
        profile = self.get(profile_id)
        kept = tuple(m for m in profile.medications if m.id != medication_id)
        if len(kept) == len(profile.medications):
            return StoreUpdate(profile_id=profile_id, changed=False)
        warning = await self._replace(profile.model_copy(update={"medications": kept}))
        return StoreUpdate(profile_id=profile_id, warning=warning)

    # --- reminders ---

    async def add_reminder(self, profile_id: str, reminder: Reminder) -> StoreUpdate:
        profile = self.get(profile_id)
        updated = profile.model_copy(update={"reminders": (*profile.reminders, reminder)})
        warning = await self._replace(updated)
        return StoreUpdate(profile_id=profile_id, warning=warning)

    async def update_reminder(
        self,
        profile_id: str,
        reminder_id: str,
        time: str | None = None,
        active: bool | None = None,
    ) -> StoreUpdate:
        profile = self.get(profile_id)
        changes: dict = {}
        if time is not None:
            changes["time"] = time
        if active is not None:
            changes["active"] = active

        reminders = []
        found = False
        for r in profile.reminders:
            if r.id == reminder_id:
                found = True
                # validates the new time
                r = Reminder.model_validate({**r.model_dump(), **changes})
            reminders.append(r)
        if not found or not changes:
            return StoreUpdate(profile_id=profile_id, changed=False)

        warning = await self._replace(profile.model_copy(update={"reminders": tuple(reminders)}))
        return StoreUpdate(profile_id=profile_id, warning=warning)

    async def remove_reminder(self, profile_id: str, reminder_id: str) -> StoreUpdate:
        profile = self.get(profile_id)
        kept = tuple(r for r in profile.reminders if r.id != reminder_id)
        if len(kept) == len(profile.reminders):
            return StoreUpdate(profile_id=profile_id, changed=False)
        warning = await self._replace(profile.model_copy(update={"reminders": kept}))
        return StoreUpdate(profile_id=profile_id, warning=warning)


def new_reminder(medicine_name: str, dosage: str, time: str, active: bool = True) -> Reminder:
    return Reminder(id=_new_id(), medicine_name=medicine_name, dosage=dosage, time=time, active=active)
