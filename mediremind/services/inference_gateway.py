"""Inference gateway - medicine identification and interaction checks.

Both operations go through the shared LLM client. Every failure is raised as
``GatewayError``; a label the model could not read is the narrower
``MedicineUnreadableError`` so the pipeline can word it differently.
"""

import asyncio
import logging

from pydantic import BaseModel

from mediremind.config import GATEWAY_TIMEOUT_SECONDS
from mediremind.models.analysis import InteractionOutcome, MedicineDetails, MedicineIdentification, Severity
from mediremind.services.llm import LLMClient, get_llm_client

logger = logging.getLogger(__name__)


class GatewayError(Exception):
    """Identification or interaction check failed."""


class MedicineUnreadableError(GatewayError):
    """The image could not be read as a medicine label."""


class _DetailsPayload(BaseModel):
    dosage: str = ""
    usage: str = ""
    warnings: list[str] = []
    side_effects: list[str] = []
    active_ingredients: list[str] = []


class IdentificationPayload(BaseModel):
    readable: bool
    name: str = ""
    details: _DetailsPayload = _DetailsPayload()


class InteractionPayload(BaseModel):
    """Interaction reply as the model must send it; nothing defaults to "no conflict"."""

    has_conflict: bool
    severity: Severity
    explanation: str = ""
    recommendation: str = ""


_IDENTIFY_SYSTEM = (
    "You are a pharmacist's assistant reading photos of medicine packaging. "
    "Identify the medicine shown and answer in {language}. "
    "Return ONLY a JSON object with keys: "
    '"readable" (boolean), "name" (string, brand or generic name), '
    '"details" (object with "dosage", "usage" strings and "warnings", '
    '"side_effects", "active_ingredients" string lists). '
    'If the label text cannot be read, return {{"readable": false}}.'
)

_INTERACTION_SYSTEM = (
    "You are a clinical pharmacology assistant. Assess whether a new medicine "
    "interacts with the medicines a person already takes. Answer in {language}. "
    "Return ONLY a JSON object with keys: "
    '"has_conflict" (boolean), "severity" (one of "none", "mild", "moderate", "severe"), '
    '"explanation" (string), "recommendation" (string).'
)


class InferenceGateway:
    def __init__(
        self,
        client: LLMClient | None = None,
        timeout_seconds: float = GATEWAY_TIMEOUT_SECONDS,
    ) -> None:
        self._client = client or get_llm_client()
        self._timeout = timeout_seconds

    async def _run(self, coro):
        if self._timeout and self._timeout > 0:
            return await asyncio.wait_for(coro, timeout=self._timeout)
        return await coro

    async def identify(self, image: bytes, language_hint: str = "English") -> MedicineIdentification:
        try:
            payload = await self._run(self._client.generate_json(
                system=_IDENTIFY_SYSTEM.format(language=language_hint),
                user="Identify the medicine in this photo.",
                response_model=IdentificationPayload,
                images=[image],
            ))
        except TimeoutError as exc:
            logger.error("Medicine identification timed out after %.1fs", self._timeout)
            raise GatewayError("identification timed out") from exc
        except Exception as exc:
            logger.error("Medicine identification failed: %s", exc)
            raise GatewayError(str(exc)) from exc

        if not payload.readable or not payload.name.strip():
            logger.info("Identification returned an unreadable label")
            raise MedicineUnreadableError("IMAGE_UNREADABLE")

        logger.info("Identified medicine: %s", payload.name)
        return MedicineIdentification(
            name=payload.name.strip(),
            details=MedicineDetails.model_validate(payload.details.model_dump()),
        )

    async def check_interactions(
        self,
        candidate_name: str,
        existing_names: list[str],
        language_hint: str = "English",
    ) -> InteractionOutcome:
        user = (
            f"New medicine: {candidate_name}\n"
            f"Currently taking: {', '.join(existing_names)}"
        )
        try:
            payload = await self._run(self._client.generate_json(
                system=_INTERACTION_SYSTEM.format(language=language_hint),
                user=user,
                response_model=InteractionPayload,
                max_tokens=1024,
            ))
        except TimeoutError as exc:
            logger.error("Interaction check for %s timed out after %.1fs", candidate_name, self._timeout)
            raise GatewayError("interaction check timed out") from exc
        except Exception as exc:
            logger.error("Interaction check for %s failed: %s", candidate_name, exc)
            raise GatewayError(str(exc)) from exc

        outcome = InteractionOutcome.model_validate(payload.model_dump())
        logger.info(
            "Interaction check for %s against %d medicine(s): severity=%s",
            candidate_name, len(existing_names), outcome.severity.value,
        )
        return outcome
