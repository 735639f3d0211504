"""Languages, voices, profile colors and the localized copy the core needs.

Each language carries the voice a new profile gets by default. Error copy is
keyed by (error kind, pipeline stage) so that a failed interaction check can
never reuse the wording of an unreadable label.
"""

from mediremind.models.analysis import ErrorKind, PipelineStage

LANGUAGES = [
    {"code": "en", "name": "English", "voice": "Kore"},
    {"code": "es", "name": "Spanish", "voice": "Puck"},
    {"code": "fr", "name": "French", "voice": "Charon"},
    {"code": "ar", "name": "Arabic", "voice": "Fenrir"},
    {"code": "hi", "name": "Hindi", "voice": "Zephyr"},
    {"code": "sw", "name": "Swahili", "voice": "Aoede"},
]

AI_VOICES = [
    {"id": "Kore", "name": "Kore", "gender": "female"},
    {"id": "Puck", "name": "Puck", "gender": "male"},
    {"id": "Charon", "name": "Charon", "gender": "male"},
    {"id": "Fenrir", "name": "Fenrir", "gender": "male"},
    {"id": "Zephyr", "name": "Zephyr", "gender": "female"},
    {"id": "Aoede", "name": "Aoede", "gender": "female"},
]

PROFILE_COLORS = ["blue", "emerald", "amber", "rose", "violet", "cyan"]

DEFAULT_LANGUAGE = LANGUAGES[0]

# (kind, stage) -> (title, message)
_ERROR_COPY: dict[str, dict[tuple[ErrorKind, PipelineStage], tuple[str, str]]] = {
    "en": {
        (ErrorKind.NO_CONNECTIVITY, PipelineStage.CONNECTIVITY): (
            "No Internet",
            "Check your network connection.",
        ),
        (ErrorKind.UNREADABLE, PipelineStage.IDENTIFICATION): (
            "Unclear Image",
            "The text on the medicine is hard to read. Please try again with better lighting.",
        ),
        (ErrorKind.GENERIC, PipelineStage.IDENTIFICATION): (
            "Processing Error",
            "Analysis failed. Please try again.",
        ),
        (ErrorKind.GENERIC, PipelineStage.INTERACTION_CHECK): (
            "Interaction Check Failed",
            "We recognised {name}, but could not check it against your medicines. Please try again.",
        ),
    },
    "es": {
        (ErrorKind.NO_CONNECTIVITY, PipelineStage.CONNECTIVITY): (
            "Sin conexión",
            "Revisa tu conexión a internet.",
        ),
        (ErrorKind.UNREADABLE, PipelineStage.IDENTIFICATION): (
            "Imagen poco clara",
            "El texto del medicamento es difícil de leer. Inténtalo de nuevo con mejor iluminación.",
        ),
        (ErrorKind.GENERIC, PipelineStage.IDENTIFICATION): (
            "Error de procesamiento",
            "El análisis falló. Inténtalo de nuevo.",
        ),
        (ErrorKind.GENERIC, PipelineStage.INTERACTION_CHECK): (
            "Error al revisar interacciones",
            "Reconocimos {name}, pero no pudimos compararlo con tus medicamentos. Inténtalo de nuevo.",
        ),
    },
    "fr": {
        (ErrorKind.NO_CONNECTIVITY, PipelineStage.CONNECTIVITY): (
            "Pas d'Internet",
            "Vérifiez votre connexion réseau.",
        ),
        (ErrorKind.UNREADABLE, PipelineStage.IDENTIFICATION): (
            "Image floue",
            "Le texte du médicament est difficile à lire. Réessayez avec un meilleur éclairage.",
        ),
        (ErrorKind.GENERIC, PipelineStage.IDENTIFICATION): (
            "Erreur de traitement",
            "L'analyse a échoué. Veuillez réessayer.",
        ),
        (ErrorKind.GENERIC, PipelineStage.INTERACTION_CHECK): (
            "Échec de la vérification",
            "Nous avons reconnu {name}, mais sans pouvoir le comparer à vos médicaments. Veuillez réessayer.",
        ),
    },
}


def get_language(code: str | None) -> dict:
    for lang in LANGUAGES:
        if lang["code"] == code:
            return lang
    return DEFAULT_LANGUAGE


def default_voice_for(language_code: str) -> str:
    """Return the voice a profile gets when it picks this language."""
    for lang in LANGUAGES:
        if lang["code"] == language_code:
            return lang["voice"]
    return AI_VOICES[0]["id"]


def is_known_voice(voice_id: str) -> bool:
    return any(v["id"] == voice_id for v in AI_VOICES)


def color_for_index(index: int) -> str:
    return PROFILE_COLORS[index % len(PROFILE_COLORS)]


def error_copy(
    kind: ErrorKind,
    stage: PipelineStage,
    language_code: str | None = None,
    medicine_name: str = "",
) -> tuple[str, str]:
    """Localized (title, message) for a pipeline error, English as fallback."""
    table = _ERROR_COPY.get(language_code or "", _ERROR_COPY["en"])
    entry = table.get((kind, stage)) or _ERROR_COPY["en"].get((kind, stage))
    if entry is None:
        # Unreadable only happens at identification; other pairs use generic wording
        entry = _ERROR_COPY["en"][(ErrorKind.GENERIC, PipelineStage.IDENTIFICATION)]
    title, message = entry
    return title, message.format(name=medicine_name or "this medicine")
