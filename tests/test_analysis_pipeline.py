"""Tests for the scan pipeline state machine."""

import asyncio
from datetime import UTC, datetime

import pytest

from mediremind.models.analysis import (
    ErrorKind,
    InteractionOutcome,
    MedicineIdentification,
    PipelineStage,
    PipelineState,
    Severity,
)
from mediremind.models.profile import MedicineRecord, Profile
from mediremind.services.analysis_pipeline import AnalysisPipeline, PipelineBusyError, ProfileRequiredError
from mediremind.services.inference_gateway import GatewayError, MedicineUnreadableError

IMAGE = b"\xff\xd8\xff\xe0fake-jpeg"


def make_profile(name: str = "Amina", medications: list[str] | None = None, language: str = "en") -> Profile:
    return Profile(
        id=f"profile-{name.lower()}",
        name=name,
        color="blue",
        preferred_language_code=language,
        preferred_voice_id="Kore",
        medications=tuple(
            MedicineRecord(id=f"med-{i}", name=med, added_at=datetime.now(UTC))
            for i, med in enumerate(medications or [])
        ),
    )


@pytest.fixture
def transitions():
    return []


@pytest.fixture
def pipeline(gateway, connectivity, transitions):
    async def record(snapshot):
        transitions.append(snapshot.state)

    return AnalysisPipeline(gateway, connectivity, on_transition=record)


# --- Preconditions ---


async def test_submit_without_profile_enters_no_state(pipeline, gateway, connectivity, transitions):
    with pytest.raises(ProfileRequiredError):
        await pipeline.submit(IMAGE, None)
    assert pipeline.state is PipelineState.IDLE
    assert pipeline.run_id == 0
    assert transitions == []
    assert gateway.identify_calls == []
    assert connectivity.calls == 0


async def test_offline_fails_without_contacting_gateway(pipeline, gateway, connectivity, transitions):
    connectivity.online = False
    snapshot = await pipeline.submit(IMAGE, make_profile())
    assert snapshot.state is PipelineState.ERROR
    assert snapshot.error.kind is ErrorKind.NO_CONNECTIVITY
    assert snapshot.error.title == "No Internet"
    assert gateway.identify_calls == []
    assert transitions == [PipelineState.ERROR]


async def test_submit_twice_without_reset_is_rejected(pipeline):
    await pipeline.submit(IMAGE, make_profile())
    with pytest.raises(PipelineBusyError):
        await pipeline.submit(IMAGE, make_profile())


# --- Happy paths ---


async def test_empty_medications_skip_interaction_check(pipeline, gateway, transitions):
    snapshot = await pipeline.submit(IMAGE, make_profile(medications=[]))
    assert snapshot.state is PipelineState.RESULT
    assert snapshot.result.name == "Ibuprofen"
    assert snapshot.result.interaction.has_conflict is False
    assert snapshot.result.interaction.severity is Severity.NONE
    assert gateway.interaction_calls == []
    assert transitions == [PipelineState.ANALYZING, PipelineState.RESULT]


async def test_conflict_outcome_attached_and_profile_untouched(pipeline, gateway, transitions):
    amina = make_profile("Amina", medications=["Aspirin"])
    gateway.identification = MedicineIdentification(name="Ibuprofen")
    gateway.interaction = InteractionOutcome(
        has_conflict=True,
        severity=Severity.MODERATE,
        explanation="Both are NSAIDs.",
        recommendation="Ask your pharmacist.",
    )

    snapshot = await pipeline.submit(IMAGE, amina)

    assert snapshot.state is PipelineState.RESULT
    assert snapshot.result.interaction == gateway.interaction
    assert gateway.interaction_calls == [("Ibuprofen", ["Aspirin"], "English")]
    assert amina.medication_names() == ["Aspirin"]
    assert transitions == [
        PipelineState.ANALYZING,
        PipelineState.CHECKING_INTERACTIONS,
        PipelineState.RESULT,
    ]


async def test_language_hint_uses_language_name(pipeline, gateway):
    await pipeline.submit(IMAGE, make_profile(language="es"))
    assert gateway.identify_calls == [(IMAGE, "Spanish")]


async def test_explicit_language_overrides_profile(pipeline, gateway):
    await pipeline.submit(IMAGE, make_profile(language="es"), language_code="fr")
    assert gateway.identify_calls == [(IMAGE, "French")]


# --- Failures ---


class TestIdentificationFailures:
    async def test_unreadable(self, pipeline, gateway):
        gateway.identify_error = MedicineUnreadableError("IMAGE_UNREADABLE")
        snapshot = await pipeline.submit(IMAGE, make_profile(medications=["Aspirin"]))
        assert snapshot.state is PipelineState.ERROR
        assert snapshot.error.kind is ErrorKind.UNREADABLE
        assert snapshot.error.stage is PipelineStage.IDENTIFICATION
        assert "better lighting" in snapshot.error.message
        assert gateway.interaction_calls == []

    async def test_generic_wording_differs_from_unreadable(self, pipeline, gateway):
        gateway.identify_error = GatewayError("timeout")
        snapshot = await pipeline.submit(IMAGE, make_profile())
        assert snapshot.error.kind is ErrorKind.GENERIC
        assert snapshot.error.stage is PipelineStage.IDENTIFICATION
        assert "better lighting" not in snapshot.error.message
        assert snapshot.error.title == "Processing Error"

    async def test_unexpected_exception_becomes_generic(self, pipeline, gateway):
        gateway.identify_error = ValueError("malformed")
        snapshot = await pipeline.submit(IMAGE, make_profile())
        assert snapshot.state is PipelineState.ERROR
        assert snapshot.error.kind is ErrorKind.GENERIC

    async def test_localized_unreadable_title(self, pipeline, gateway):
        gateway.identify_error = MedicineUnreadableError("IMAGE_UNREADABLE")
        snapshot = await pipeline.submit(IMAGE, make_profile(language="es"))
        assert snapshot.error.title == "Imagen poco clara"


class TestInteractionFailures:
    async def test_failure_is_generic_at_interaction_stage(self, pipeline, gateway):
        gateway.interaction_error = GatewayError("503")
        snapshot = await pipeline.submit(IMAGE, make_profile(medications=["Aspirin"]))
        assert snapshot.state is PipelineState.ERROR
        assert snapshot.error.kind is ErrorKind.GENERIC
        assert snapshot.error.stage is PipelineStage.INTERACTION_CHECK

    async def test_wording_never_claims_unreadable(self, pipeline, gateway):
        gateway.interaction_error = GatewayError("503")
        snapshot = await pipeline.submit(IMAGE, make_profile(medications=["Aspirin"]))
        assert "better lighting" not in snapshot.error.message
        assert snapshot.error.title != "Unclear Image"
        assert "Ibuprofen" in snapshot.error.message

    async def test_identification_kept(self, pipeline, gateway):
        gateway.interaction_error = GatewayError("503")
        snapshot = await pipeline.submit(IMAGE, make_profile(medications=["Aspirin"]))
        assert snapshot.identification.name == "Ibuprofen"
        assert snapshot.result is None


# --- Reset and stale runs ---


async def test_reset_from_terminal_state(pipeline):
    await pipeline.submit(IMAGE, make_profile())
    snapshot = await pipeline.reset()
    assert snapshot.state is PipelineState.IDLE
    assert snapshot.result is None
    assert snapshot.error is None
    assert snapshot.identification is None


class GatedGateway:
    """Gateway whose first identify call blocks until released."""

    def __init__(self) -> None:
        self.release_first = asyncio.Event()
        self.first_started = asyncio.Event()
        self.calls = 0
        self.interaction_calls = 0

    async def identify(self, image, language_hint="English"):
        self.calls += 1
        if self.calls == 1:
            self.first_started.set()
            await self.release_first.wait()
            return MedicineIdentification(name="Stale Medicine")
        return MedicineIdentification(name="Fresh Medicine")

    async def check_interactions(self, candidate_name, existing_names, language_hint="English"):
        self.interaction_calls += 1
        return InteractionOutcome(has_conflict=True, severity=Severity.SEVERE)


async def test_stale_run_does_not_overwrite_newer_run(connectivity):
    gateway = GatedGateway()
    pipeline = AnalysisPipeline(gateway, connectivity)
    profile = make_profile()

    first = asyncio.create_task(pipeline.submit(IMAGE, profile))
    await gateway.first_started.wait()
    assert pipeline.state is PipelineState.ANALYZING

    await pipeline.reset()
    second = await pipeline.submit(IMAGE, profile)
    assert second.state is PipelineState.RESULT
    assert second.result.name == "Fresh Medicine"

    gateway.release_first.set()
    await first

    assert pipeline.state is PipelineState.RESULT
    assert pipeline.result.name == "Fresh Medicine"
    assert pipeline.run_id == second.run_id


async def test_stale_run_after_reset_stays_idle(connectivity):
    gateway = GatedGateway()
    pipeline = AnalysisPipeline(gateway, connectivity)
    profile = make_profile(medications=["Aspirin"])

    task = asyncio.create_task(pipeline.submit(IMAGE, profile))
    await gateway.first_started.wait()
    await pipeline.reset()

    gateway.release_first.set()
    await task

    assert pipeline.state is PipelineState.IDLE
    assert pipeline.identification is None
    assert gateway.interaction_calls == 0


async def test_run_ids_increase(pipeline):
    first = await pipeline.submit(IMAGE, make_profile())
    await pipeline.reset()
    second = await pipeline.submit(IMAGE, make_profile())
    assert second.run_id > first.run_id
