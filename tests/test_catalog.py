"""Tests for the language/voice catalog and localized error copy."""

from mediremind.catalog import (
    LANGUAGES,
    PROFILE_COLORS,
    color_for_index,
    default_voice_for,
    error_copy,
    get_language,
    is_known_voice,
)
from mediremind.models.analysis import ErrorKind, PipelineStage

REACHABLE_ERRORS = [
    (ErrorKind.NO_CONNECTIVITY, PipelineStage.CONNECTIVITY),
    (ErrorKind.UNREADABLE, PipelineStage.IDENTIFICATION),
    (ErrorKind.GENERIC, PipelineStage.IDENTIFICATION),
    (ErrorKind.GENERIC, PipelineStage.INTERACTION_CHECK),
]


class TestVoices:
    def test_every_language_voice_is_known(self):
        for lang in LANGUAGES:
            assert is_known_voice(lang["voice"])

    def test_default_voice_is_deterministic(self):
        assert default_voice_for("fr") == default_voice_for("fr") == "Charon"

    def test_unknown_language_falls_back(self):
        assert default_voice_for("zz") == "Kore"
        assert get_language("zz")["code"] == "en"


def test_colors_wrap_around():
    assert color_for_index(0) == PROFILE_COLORS[0]
    assert color_for_index(len(PROFILE_COLORS)) == PROFILE_COLORS[0]


class TestErrorCopy:
    def test_every_reachable_error_has_wording(self):
        for code in ("en", "es", "fr"):
            for kind, stage in REACHABLE_ERRORS:
                title, message = error_copy(kind, stage, code, "Aspirin")
                assert title
                assert message

    def test_all_wordings_distinct(self):
        titles = {error_copy(kind, stage, "en")[0] for kind, stage in REACHABLE_ERRORS}
        assert len(titles) == len(REACHABLE_ERRORS)

    def test_interaction_failure_names_medicine(self):
        _, message = error_copy(ErrorKind.GENERIC, PipelineStage.INTERACTION_CHECK, "en", "Ibuprofen")
        assert "Ibuprofen" in message
        assert "lighting" not in message

    def test_unknown_language_uses_english(self):
        assert error_copy(ErrorKind.UNREADABLE, PipelineStage.IDENTIFICATION, "hi") == error_copy(
            ErrorKind.UNREADABLE, PipelineStage.IDENTIFICATION, "en"
        )
