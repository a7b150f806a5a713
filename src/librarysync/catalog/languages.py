"""Subtitle language codes and their display labels."""

from __future__ import annotations

DEFAULT_LANGUAGE = "eng"

LANGUAGE_LABELS: dict[str, str] = {
    "eng": "English",
    "chi": "Chinese",
    "zho": "Chinese",
    "cmn": "Mandarin Chinese",
    "spa": "Spanish",
    "fre": "French",
    "fra": "French",
    "ger": "German",
    "deu": "German",
    "jpn": "Japanese",
    "kor": "Korean",
    "tha": "Thai",
    "vie": "Vietnamese",
    "ara": "Arabic",
    "por": "Portuguese",
    "rus": "Russian",
    "ita": "Italian",
    "dut": "Dutch",
    "nld": "Dutch",
    "pol": "Polish",
    "tur": "Turkish",
    "swe": "Swedish",
    "dan": "Danish",
    "fin": "Finnish",
    "nor": "Norwegian",
    "gre": "Greek",
    "ell": "Greek",
    "cze": "Czech",
    "ces": "Czech",
    "slo": "Slovak",
    "slk": "Slovak",
    "hun": "Hungarian",
    "rum": "Romanian",
    "ron": "Romanian",
    "hin": "Hindi",
    "ind": "Indonesian",
    "may": "Malay",
    "msa": "Malay",
    "fil": "Filipino",
    "tgl": "Tagalog",
    "heb": "Hebrew",
    "ukr": "Ukrainian",
    "ben": "Bengali",
    "bur": "Burmese",
    "mya": "Burmese",
    "lao": "Lao",
    "khm": "Khmer",
}

# ISO 639-1 codes seen in subtitle names, mapped to the three-letter form
TWO_TO_THREE: dict[str, str] = {
    "en": "eng",
    "zh": "chi",
    "es": "spa",
    "fr": "fra",
    "de": "deu",
    "ja": "jpn",
    "ko": "kor",
    "th": "tha",
    "vi": "vie",
    "ar": "ara",
    "pt": "por",
    "ru": "rus",
    "it": "ita",
    "nl": "nld",
    "pl": "pol",
    "tr": "tur",
    "sv": "swe",
    "da": "dan",
    "fi": "fin",
    "no": "nor",
    "el": "ell",
    "cs": "ces",
    "sk": "slk",
    "hu": "hun",
    "ro": "ron",
    "hi": "hin",
    "id": "ind",
    "ms": "msa",
    "tl": "fil",
    "he": "heb",
    "uk": "ukr",
    "bn": "ben",
    "my": "mya",
    "lo": "lao",
    "km": "khm",
}


def normalize_language_code(code: str) -> str | None:
    """Return the three-letter code for ``code`` or ``None`` when unknown."""
    lowered = code.strip().lower()
    if len(lowered) == 2:
        lowered = TWO_TO_THREE.get(lowered, "")
    if lowered in LANGUAGE_LABELS:
        return lowered
    return None


def language_label(code: str) -> str:
    normalized = normalize_language_code(code)
    if normalized is None:
        return code.upper()
    return LANGUAGE_LABELS[normalized]
