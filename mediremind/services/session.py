"""Session controller - wires user intents to the profile store and pipeline.

It owns the session-scoped state: the language/voice in use (kept in step
with the active profile by a store reaction) and the single scan pipeline
with its background task. Switching, creating or deleting the active
profile abandons any scan in progress before the store changes.
"""

import asyncio
import logging

from mediremind.catalog import DEFAULT_LANGUAGE, default_voice_for
from mediremind.config import DEFAULT_REMINDER_TIME
from mediremind.models.analysis import PipelineSnapshot, PipelineState
from mediremind.models.profile import Profile, StoreUpdate
from mediremind.models.session import SessionView
from mediremind.services.analysis_pipeline import (
    AnalysisPipeline,
    ConnectivityCheck,
    PipelineBusyError,
    ProfileRequiredError,
)
from mediremind.services.event_bus import SessionEventBus
from mediremind.services.inference_gateway import InferenceGateway
from mediremind.services.profile_store import ProfileStore, new_reminder

logger = logging.getLogger(__name__)


class NothingIdentifiedError(Exception):
    """There is no identified medicine to act on."""


def _log_scan_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Background scan failed: %s", exc, exc_info=exc)


class SessionController:
    def __init__(
        self,
        store: ProfileStore,
        gateway: InferenceGateway,
        connectivity: ConnectivityCheck,
        event_bus: SessionEventBus | None = None,
        default_reminder_time: str = DEFAULT_REMINDER_TIME,
    ) -> None:
        self.store = store
        self.event_bus = event_bus or SessionEventBus()
        self.default_reminder_time = default_reminder_time
        self.pipeline = AnalysisPipeline(gateway, connectivity, on_transition=self._publish_pipeline)
        self.language_code: str = DEFAULT_LANGUAGE["code"]
        self.voice_id: str = DEFAULT_LANGUAGE["voice"]
        self._scan_task: asyncio.Task | None = None
        store.on_active_change(self._apply_preferences)

    async def start(self) -> None:
        await self.store.load()
        await self._publish_profiles()

    # --- derived state ---

    @property
    def active_profile(self) -> Profile | None:
        return self.store.active_profile

    @property
    def identified_name(self) -> str | None:
        if self.pipeline.result is not None:
            return self.pipeline.result.name
        if self.pipeline.identification is not None:
            return self.pipeline.identification.name
        return None

    @property
    def identified_in_medications(self) -> bool:
        profile = self.active_profile
        name = self.identified_name
        if profile is None or name is None:
            return False
        return profile.has_medication(name)

    def view(self) -> SessionView:
        return SessionView(
            active_profile=self.active_profile,
            language_code=self.language_code,
            voice_id=self.voice_id,
            pipeline=self.pipeline.snapshot(),
            identified_in_medications=self.identified_in_medications,
        )

    # --- reactions and events ---

    async def _apply_preferences(self, profile: Profile | None) -> None:
        if profile is None:
            self.language_code = DEFAULT_LANGUAGE["code"]
            self.voice_id = DEFAULT_LANGUAGE["voice"]
            return
        self.language_code = profile.preferred_language_code
        self.voice_id = profile.preferred_voice_id or default_voice_for(profile.preferred_language_code)

    async def _publish_pipeline(self, snapshot: PipelineSnapshot) -> None:
        await self.event_bus.publish("pipeline", snapshot.model_dump(mode="json"))

    async def _publish_profiles(self, update: StoreUpdate | None = None) -> None:
        await self.event_bus.publish("profiles", {
            "profiles": [p.model_dump(mode="json") for p in self.store.profiles],
            "active_profile_id": self.store.active_profile_id,
            "warning": update.warning if update else None,
        })

    # --- scanning ---

    def _require_profile(self) -> Profile:
        profile = self.active_profile
        if profile is None:
            raise ProfileRequiredError("Select or create a profile first")
        return profile

    async def submit_image(self, image: bytes) -> PipelineSnapshot:
        """Run a scan for the active profile and wait for its terminal state."""
        return await self.pipeline.submit(image, self.active_profile, self.language_code)

    async def start_scan(self, image: bytes) -> PipelineSnapshot:
        """Start a scan in the background and return the first snapshot."""
        profile = self._require_profile()
        if self._scan_task is not None and not self._scan_task.done():
            raise PipelineBusyError(self.pipeline.state)
        if self.pipeline.state is not PipelineState.IDLE:
            raise PipelineBusyError(self.pipeline.state)

        self._scan_task = asyncio.create_task(
            self.pipeline.submit(image, profile, self.language_code)
        )
        self._scan_task.add_done_callback(_log_scan_failure)
        # Let the run reach its first suspension point
        await asyncio.sleep(0)
        return self.pipeline.snapshot()

    async def reset(self) -> PipelineSnapshot:
        if self._scan_task is not None and not self._scan_task.done():
            self._scan_task.cancel()
        self._scan_task = None
        return await self.pipeline.reset()

    # --- profiles ---

    async def create_profile(self, name: str, language_code: str) -> StoreUpdate:
        if name.strip():
            await self.reset()
        update = await self.store.create(name, language_code)
        if update.changed:
            await self._publish_profiles(update)
        return update

    async def switch_profile(self, profile_id: str) -> StoreUpdate:
        self.store.get(profile_id)
        await self.reset()
        update = await self.store.set_active(profile_id)
        logger.info("Switched active profile to %s", profile_id)
        await self._publish_profiles(update)
        return update

    async def delete_profile(self, profile_id: str) -> StoreUpdate:
        self.store.get(profile_id)
        if profile_id == self.store.active_profile_id:
            await self.reset()
        update = await self.store.delete(profile_id)
        await self._publish_profiles(update)
        return update

    async def update_preferences(
        self,
        profile_id: str,
        language_code: str | None = None,
        voice_id: str | None = None,
    ) -> StoreUpdate:
        update = await self.store.update_preferences(profile_id, language_code, voice_id)
        await self._publish_profiles(update)
        return update

    # --- medications and reminders ---

    async def add_to_medications(self, name: str | None = None) -> StoreUpdate:
        """Save the identified (or given) medicine to the active profile."""
        profile = self._require_profile()
        name = name or self.identified_name
        if not name:
            raise NothingIdentifiedError("No identified medicine to add")
        update = await self.store.add_medication(profile.id, name)
        if update.changed:
            await self._publish_profiles(update)
        return update

    async def set_reminder(self, name: str | None = None, dosage: str | None = None) -> StoreUpdate:
        """Add an active reminder at the default time for the identified medicine."""
        profile = self._require_profile()
        name = name or self.identified_name
        if not name:
            raise NothingIdentifiedError("No identified medicine to remind about")
        if dosage is None:
            source = self.pipeline.result or self.pipeline.identification
            dosage = source.details.dosage if source is not None else ""
        reminder = new_reminder(name, dosage, self.default_reminder_time, active=True)
        update = await self.store.add_reminder(profile.id, reminder)
        await self._publish_profiles(update)
        return update

    async def add_medication(self, profile_id: str, name: str) -> StoreUpdate:
        update = await self.store.add_medication(profile_id, name)
        if update.changed:
            await self._publish_profiles(update)
        return update

    async def remove_medication(self, profile_id: str, medication_id: str) -> StoreUpdate:
        update = await self.store.remove_medication(profile_id, medication_id)
        await self._publish_profiles(update)
        return update

    async def add_reminder(
        self,
        profile_id: str,
        medicine_name: str,
        dosage: str = "",
        time: str | None = None,
        active: bool = True,
    ) -> StoreUpdate:
        reminder = new_reminder(medicine_name, dosage, time or self.default_reminder_time, active)
        update = await self.store.add_reminder(profile_id, reminder)
        await self._publish_profiles(update)
        return update

    async def update_reminder(
        self,
        profile_id: str,
        reminder_id: str,
        time: str | None = None,
        active: bool | None = None,
    ) -> StoreUpdate:
        update = await self.store.update_reminder(profile_id, reminder_id, time, active)
        await self._publish_profiles(update)
        return update

    async def remove_reminder(self, profile_id: str, reminder_id: str) -> StoreUpdate:
        update = await self.store.remove_reminder(profile_id, reminder_id)
        await self._publish_profiles(update)
        return update
