"""Scan pipeline: photo -> identified medicine -> interaction check -> result.

States run ``idle -> analyzing -> checking_interactions -> result | error``.
Every submit and every reset advances a generation counter (the run id); a
gateway response that comes back for any other run id is dropped, so a reset
followed by a new submit can never be overwritten by the abandoned run.

The pipeline only computes outcomes. Saving the medicine or a reminder is
left to the caller.
"""

import logging
from typing import Awaitable, Callable

from mediremind.catalog import error_copy, get_language
from mediremind.models.analysis import (
    AnalysisResult,
    ErrorKind,
    InteractionOutcome,
    MedicineIdentification,
    PipelineError,
    PipelineSnapshot,
    PipelineStage,
    PipelineState,
)
from mediremind.models.profile import Profile
from mediremind.services.inference_gateway import InferenceGateway, MedicineUnreadableError

logger = logging.getLogger(__name__)

ConnectivityCheck = Callable[[], Awaitable[bool]]
TransitionListener = Callable[[PipelineSnapshot], Awaitable[None]]


class ProfileRequiredError(Exception):
    """A scan was submitted with no active profile."""


class PipelineBusyError(Exception):
    """A scan was submitted while the previous run has not been reset."""

    def __init__(self, state: PipelineState) -> None:
        super().__init__(f"Pipeline is {state.value}; reset before submitting again")
        self.state = state


class AnalysisPipeline:
    def __init__(
        self,
        gateway: InferenceGateway,
        connectivity: ConnectivityCheck,
        on_transition: TransitionListener | None = None,
    ) -> None:
        self._gateway = gateway
        self._connectivity = connectivity
        self._on_transition = on_transition
        self._run_id = 0
        self._state = PipelineState.IDLE
        self._identification: MedicineIdentification | None = None
        self._result: AnalysisResult | None = None
        self._error: PipelineError | None = None

    @property
    def run_id(self) -> int:
        return self._run_id

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def result(self) -> AnalysisResult | None:
        return self._result

    @property
    def identification(self) -> MedicineIdentification | None:
        return self._identification

    @property
    def error(self) -> PipelineError | None:
        return self._error

    def snapshot(self) -> PipelineSnapshot:
        return PipelineSnapshot(
            run_id=self._run_id,
            state=self._state,
            identification=self._identification,
            result=self._result,
            error=self._error,
        )

    def _is_stale(self, run_id: int) -> bool:
        if run_id != self._run_id:
            logger.info("Dropping response for run %d (current run is %d)", run_id, self._run_id)
            return True
        return False

    async def _publish(self) -> None:
        if self._on_transition is not None:
            await self._on_transition(self.snapshot())

    async def _enter(self, run_id: int, state: PipelineState) -> None:
        if self._is_stale(run_id):
            return
        logger.info("Run %d: %s -> %s", run_id, self._state.value, state.value)
        self._state = state
        await self._publish()

    async def _fail(
        self,
        run_id: int,
        kind: ErrorKind,
        stage: PipelineStage,
        language_code: str,
        medicine_name: str = "",
    ) -> PipelineSnapshot:
        if not self._is_stale(run_id):
            title, message = error_copy(kind, stage, language_code, medicine_name)
            self._error = PipelineError(kind=kind, stage=stage, title=title, message=message)
            await self._enter(run_id, PipelineState.ERROR)
        return self.snapshot()

    async def _finish(self, run_id: int, result: AnalysisResult) -> PipelineSnapshot:
        if not self._is_stale(run_id):
            self._result = result
            await self._enter(run_id, PipelineState.RESULT)
        return self.snapshot()

    async def submit(
        self,
        image: bytes,
        profile: Profile | None,
        language_code: str | None = None,
    ) -> PipelineSnapshot:
        """Run one scan to a terminal state and return the final snapshot.

        Raises ``ProfileRequiredError`` without entering any state when no
        profile is given, and ``PipelineBusyError`` unless the pipeline is idle.
        Gateway failures never raise; they end the run in ``error``.
        """
        if profile is None:
            raise ProfileRequiredError("Select or create a profile before scanning")
        if self._state is not PipelineState.IDLE:
            raise PipelineBusyError(self._state)

        self._run_id += 1
        run_id = self._run_id
        language_code = language_code or profile.preferred_language_code
        language_name = get_language(language_code)["name"]
        existing = profile.medication_names()

        if not await self._connectivity():
            logger.warning("Run %d: no network connectivity", run_id)
            return await self._fail(run_id, ErrorKind.NO_CONNECTIVITY, PipelineStage.CONNECTIVITY, language_code)
        if self._is_stale(run_id):
            return self.snapshot()

        await self._enter(run_id, PipelineState.ANALYZING)
        try:
            identification = await self._gateway.identify(image, language_name)
        except MedicineUnreadableError:
            return await self._fail(run_id, ErrorKind.UNREADABLE, PipelineStage.IDENTIFICATION, language_code)
        except Exception as exc:
            logger.error("Run %d: identification failed: %s", run_id, exc)
            return await self._fail(run_id, ErrorKind.GENERIC, PipelineStage.IDENTIFICATION, language_code)

        if self._is_stale(run_id):
            return self.snapshot()
        self._identification = identification

        if not existing:
            return await self._finish(run_id, AnalysisResult(
                name=identification.name,
                details=identification.details,
                interaction=InteractionOutcome.no_conflict(),
            ))

        await self._enter(run_id, PipelineState.CHECKING_INTERACTIONS)
        try:
            outcome = await self._gateway.check_interactions(identification.name, existing, language_name)
        except Exception as exc:
            logger.error("Run %d: interaction check failed: %s", run_id, exc)
            return await self._fail(
                run_id,
                ErrorKind.GENERIC,
                PipelineStage.INTERACTION_CHECK,
                language_code,
                medicine_name=identification.name,
            )

        return await self._finish(run_id, AnalysisResult(
            name=identification.name,
            details=identification.details,
            interaction=outcome,
        ))

    async def reset(self) -> PipelineSnapshot:
        """Return to idle from any state, abandoning the in-flight run."""
        self._run_id += 1
        self._state = PipelineState.IDLE
        self._identification = None
        self._result = None
        self._error = None
        logger.info("Pipeline reset, now at run %d", self._run_id)
        await self._publish()
        return self.snapshot()
