from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class MedicineRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    added_at: datetime


class Reminder(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    medicine_name: str
    dosage: str = ""
    time: str = Field("09:00", pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    active: bool = True


class Profile(BaseModel):
    """One local user's medicines, reminders and voice/language preferences.

    Profiles are frozen; the store replaces them with updated copies.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    color: str
    preferred_language_code: str
    preferred_voice_id: str
    medications: tuple[MedicineRecord, ...] = ()
    reminders: tuple[Reminder, ...] = ()

    def has_medication(self, name: str) -> bool:
        wanted = name.strip().casefold()
        return any(m.name.strip().casefold() == wanted for m in self.medications)

    def medication_names(self) -> list[str]:
        return [m.name for m in self.medications]


class StoreUpdate(BaseModel):
    """Outcome of a ProfileStore mutation.

    ``warning`` is set when the change applied in memory but could not be
    written to local storage.
    """

    profile_id: str | None = None
    changed: bool = True
    warning: str | None = None


class ProfileCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1)
    language_code: str = "en"


class PreferencesUpdate(BaseModel):
    language_code: str | None = None
    voice_id: str | None = None


class MedicationCreate(BaseModel):
    name: str = Field(..., min_length=1)


class ReminderCreate(BaseModel):
    medicine_name: str = Field(..., min_length=1)
    dosage: str = ""
    time: str | None = Field(None, pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    active: bool = True


class ReminderUpdate(BaseModel):
    time: str | None = Field(None, pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    active: bool | None = None


class ProfilesSnapshot(BaseModel):
    profiles: list[Profile] = []
    active_profile_id: str | None = None
