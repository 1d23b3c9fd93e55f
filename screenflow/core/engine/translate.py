"""
Translation helpers for state text.

States are usually built once per run before the user's language is known,
so their text is written as ``LazyText`` (``_ = LazyTranslator()``,
``_("Hello")``) and resolved later through the user's ``Translator``.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class LazyText:
    """Text whose translation is deferred until a translator is available"""

    def __init__(self, msgid: str, **params: Any):
        self.msgid = msgid
        self.params = params

    def format(self, **params: Any) -> "LazyText":
        return LazyText(self.msgid, **{**self.params, **params})

    def translate(self, translator: "Translator") -> str:
        text = translator.gettext(self.msgid)
        return text.format(**self.params) if self.params else text

    def __str__(self) -> str:
        return self.msgid.format(**self.params) if self.params else self.msgid

    def __repr__(self) -> str:
        return f"LazyText({self.msgid!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, LazyText):
            return self.msgid == other.msgid and self.params == other.params
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.msgid)


class LazyTranslator:
    """Marks strings for translation: ``_ = LazyTranslator(); _("Yes")``"""

    def __call__(self, msgid: str, **params: Any) -> LazyText:
        return LazyText(msgid, **params)


class Translator:
    """
    Dictionary-backed translator.

    ``translations`` maps msgids to translated text. Gettext/Jed style
    entries (``{"yes": [null, "ja"]}``) are accepted too; the last list item
    is used. Missing msgids fall back to the msgid itself.
    """

    def __init__(self, translations: Optional[Dict[str, Any]] = None, lang: Optional[str] = None):
        self.translations = _normalize(translations or {})
        self.lang = lang

    def gettext(self, msgid: str) -> str:
        return self.translations.get(msgid) or msgid

    def __call__(self, value: Any) -> Any:
        """Translate lazy text (or a list of them); anything else passes through"""
        if isinstance(value, LazyText):
            return value.translate(self)
        if isinstance(value, list):
            return [self(v) for v in value]
        return value


def _normalize(translations: Dict[str, Any]) -> Dict[str, str]:
    result: Dict[str, str] = {}
    for msgid, value in translations.items():
        if not msgid:
            continue  # gettext header entry
        if isinstance(value, (list, tuple)):
            value = value[-1] if value else None
        if isinstance(value, str):
            result[msgid] = value
    return result
