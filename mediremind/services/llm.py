import base64
import json
import logging
import re
from typing import TypeVar

from anthropic import AsyncAnthropic
from openai import AsyncOpenAI
from pydantic import BaseModel, ValidationError

from mediremind.config import (
    ANTHROPIC_API_KEY,
    LLM_DEFAULT_TIER,
    LLM_MODEL_FAST,
    LLM_MODEL_HIGH,
    LLM_MODEL_STANDARD,
    LLM_PROVIDER,
    OPENAI_API_KEY,
)

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


_ANTHROPIC_DEFAULTS = {
    "fast": "claude-3-5-haiku-20241022",
    "standard": "claude-sonnet-4-20250514",
    "high": "claude-sonnet-4-20250514",
}

_OPENAI_DEFAULTS = {
    "fast": "gpt-4o-mini",
    "standard": "gpt-4o",
    "high": "gpt-4o",
}

_UNREADABLE_MARKERS = ("IMAGE_UNREADABLE", "UNREADABLE")


def _strip_json(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        text = re.sub(r"^```(?:json)?\s*", "", text)
        text = re.sub(r"\s*```$", "", text)
    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end != -1 and end > start:
        return text[start:end + 1]
    return text


def sniff_media_type(data: bytes) -> str:
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if data.startswith(b"GIF87a") or data.startswith(b"GIF89a"):
        return "image/gif"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return "image/jpeg"


def _coerce_identification(data: object) -> dict:
    if isinstance(data, str):
        if data.strip().upper() in _UNREADABLE_MARKERS:
            return {"readable": False}
        raise ValueError(f"Identification reply is not JSON: {data[:80]!r}")
    if not isinstance(data, dict):
        raise ValueError(f"Identification reply is not a JSON object: {type(data).__name__}")

    name = data.get("name") or data.get("medicine_name") or ""
    if isinstance(name, str) and name.strip().upper() in _UNREADABLE_MARKERS:
        return {"readable": False}
    if "readable" not in data and not name:
        raise ValueError("Identification reply has neither readable nor name")
    details = data.get("details") if isinstance(data.get("details"), dict) else {}
    for key in ("warnings", "side_effects", "active_ingredients"):
        value = details.get(key)
        if isinstance(value, str):
            details[key] = [value] if value else []
    return {
        "readable": bool(data.get("readable", bool(name))),
        "name": str(name).strip(),
        "details": details,
    }


def _coerce_interaction(data: object) -> dict:
    if not isinstance(data, dict):
        raise ValueError(f"Interaction reply is not a JSON object: {type(data).__name__}")
    has_conflict = data.get("has_conflict", data.get("hasConflict"))
    severity = data.get("severity")
    if has_conflict is None and severity is None:
        raise ValueError("Interaction reply has neither has_conflict nor severity")

    severity = str(severity or "").strip().lower()
    if severity not in ("none", "mild", "moderate", "severe"):
        severity = "moderate" if has_conflict else "none"
    if has_conflict is None:
        has_conflict = severity != "none"
    return {
        "has_conflict": bool(has_conflict),
        "severity": severity,
        "explanation": str(data.get("explanation") or ""),
        "recommendation": str(data.get("recommendation") or ""),
    }


def _coerce_payload(data: object, response_model: type[T]) -> object:
    name = response_model.__name__
    if name == "IdentificationPayload":
        return _coerce_identification(data)
    if name == "InteractionPayload":
        return _coerce_interaction(data)
    return data


class LLMClient:
    def __init__(self) -> None:
        provider = (LLM_PROVIDER or "auto").lower()
        if provider == "auto":
            if ANTHROPIC_API_KEY:
                provider = "anthropic"
            elif OPENAI_API_KEY:
                provider = "openai"
            else:
                provider = "none"
        self.provider = provider

        self._anthropic = AsyncAnthropic(api_key=ANTHROPIC_API_KEY) if ANTHROPIC_API_KEY else None
        self._openai = AsyncOpenAI(api_key=OPENAI_API_KEY) if OPENAI_API_KEY else None

    def available(self) -> bool:
        if self.provider == "anthropic":
            return self._anthropic is not None
        if self.provider == "openai":
            return self._openai is not None
        return False

    def model_for_tier(self, tier: str | None) -> str:
        tier = (tier or LLM_DEFAULT_TIER or "standard").lower()
        if tier not in ("fast", "standard", "high"):
            tier = "standard"

        if tier == "fast" and LLM_MODEL_FAST:
            return LLM_MODEL_FAST
        if tier == "standard" and LLM_MODEL_STANDARD:
            return LLM_MODEL_STANDARD
        if tier == "high" and LLM_MODEL_HIGH:
            return LLM_MODEL_HIGH

        if self.provider == "anthropic":
            return _ANTHROPIC_DEFAULTS[tier]
        return _OPENAI_DEFAULTS[tier]

    async def generate_json(
        self,
        *,
        system: str,
        user: str,
        response_model: type[T],
        images: list[bytes] | None = None,
        max_tokens: int = 2048,
        tier: str | None = None,
    ) -> T:
        if not self.available():
            raise RuntimeError("LLM provider unavailable")

        model = self.model_for_tier(tier)
        images = images or []

        if self.provider == "anthropic":
            content: list[dict] = [
                {
                    "type": "image",
                    "source": {
                        "type": "base64",
                        "media_type": sniff_media_type(img),
                        "data": base64.b64encode(img).decode("ascii"),
                    },
                }
                for img in images
            ]
            content.append({"type": "text", "text": user})
            message = await self._anthropic.messages.create(
                model=model,
                max_tokens=max_tokens,
                system=system,
                messages=[{"role": "user", "content": content}],
            )
            raw = ""
            for block in message.content:
                if hasattr(block, "text"):
                    raw += block.text
            raw = _strip_json(raw)
            try:
                return response_model.model_validate_json(raw)
            except ValidationError:
                try:
                    payload = json.loads(raw)
                except json.JSONDecodeError:
                    payload = raw
                coerced = _coerce_payload(payload, response_model)
                return response_model.model_validate(coerced)

        user_content: list[dict] = [{"type": "text", "text": user}]
        for img in images:
            encoded = base64.b64encode(img).decode("ascii")
            user_content.append({
                "type": "image_url",
                "image_url": {"url": f"data:{sniff_media_type(img)};base64,{encoded}"},
            })
        response = await self._openai.beta.chat.completions.parse(
            model=model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user_content},
            ],
            response_format=response_model,
        )
        parsed = response.choices[0].message.parsed
        if parsed is None:
            raise RuntimeError("LLM parse returned no data")
        return parsed


_client: LLMClient | None = None


def get_llm_client() -> LLMClient:
    global _client
    if _client is None:
        _client = LLMClient()
    return _client
