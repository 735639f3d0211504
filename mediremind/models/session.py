from pydantic import BaseModel

from mediremind.models.analysis import PipelineSnapshot
from mediremind.models.profile import Profile


class SessionView(BaseModel):
    active_profile: Profile | None = None
    language_code: str
    voice_id: str
    pipeline: PipelineSnapshot
    identified_in_medications: bool = False
