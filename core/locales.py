"""Static ISO-639 locale catalog shared by the exporter and the XML writer."""
from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Tuple

# (locale, display name, ISO 639-3). Order matters: it breaks ties.
DEFAULT_LOCALE_TABLE: Tuple[Tuple[str, str, str], ...] = (
    ("bs_BA", "Bosanski", "bos"),
    ("ca_ES", "Català", "cat"),
    ("cs_CZ", "Čeština", "ces"),
    ("da_DK", "Dansk", "dan"),
    ("de_DE", "Deutsch", "deu"),
    ("el_GR", "ελληνικά", "ell"),
    ("en_US", "English", "eng"),
    ("es_ES", "Español (España)", "spa"),
    ("eu_ES", "Euskara", "eus"),
    ("fi_FI", "Suomi", "fin"),
    ("fr_CA", "Français (Canada)", "fra"),
    ("fr_FR", "Français (France)", "fra"),
    ("gd_GB", "Scottish Gaelic", "gla"),
    ("he_IL", "עברית", "heb"),
    ("hi_IN", "Hindi", "hin"),
    ("hr_HR", "Hrvatski", "hrv"),
    ("hu_HU", "Magyar", "hun"),
    ("hy_AM", "Armenian", "hye"),
    ("id_ID", "Bahasa Indonesia", "ind"),
    ("is_IS", "Íslenska", "isl"),
    ("it_IT", "Italiano", "ita"),
    ("ja_JP", "日本語", "jpn"),
    ("ko_KR", "한국어", "kor"),
    ("mk_MK", "македонски јазик", "mkd"),
    ("nb_NO", "Norsk Bokmål", "nor"),
    ("nl_NL", "Nederlands", "nld"),
    ("pl_PL", "Język Polski", "pol"),
    ("pt_BR", "Português (Brasil)", "por"),
    ("pt_PT", "Português (Portugal)", "por"),
    ("ro_RO", "Limba Română", "ron"),
    ("ru_RU", "Русский", "rus"),
    ("sk_SK", "Slovenčina", "slk"),
    ("sl_SI", "Slovenščina", "slv"),
    ("sr_RS@cyrillic", "Cрпски", "srp"),
    ("sr_RS@latin", "Srpski", "srp"),
    ("sv_SE", "Svenska", "swe"),
    ("tr_TR", "Türkçe", "tur"),
    ("uk_UA", "Українська", "ukr"),
    ("vi_VN", "Tiếng Việt", "vie"),
    ("zh_CN", "简体中文", "zho"),
    ("ar_IQ", "العربية", "ara"),
    ("fa_IR", "فارسی", "per"),
    ("ku_IQ", "کوردی", "ckb"),
)


class LocaleCatalog:
    """Read-only lookup over a locale table; pass a different table to substitute it in tests."""

    def __init__(self, table: Iterable[Tuple[str, str, str]] = DEFAULT_LOCALE_TABLE):
        self.table: List[Tuple[str, str, str]] = list(table)
        self._iso3: Dict[str, str] = {locale: iso3 for locale, _name, iso3 in self.table}

    def locales(self) -> List[str]:
        return [locale for locale, _name, _iso3 in self.table]

    def iso3_from_iso1(self, iso1: str) -> Optional[str]:
        for locale, _name, iso3 in self.table:
            if locale[:2] == iso1:
                return iso3
        return None

    def locale_from_iso3(
        self,
        iso3: str,
        primary_locale: Optional[str] = None,
        supported_locales: Iterable[str] = (),
    ) -> Optional[str]:
        candidates = []
        for locale, _name, code in self.table:
            if code != iso3:
                continue
            if primary_locale and locale == primary_locale:
                return locale
            candidates.append(locale)
        if not candidates:
            return None
        if len(candidates) > 1:
            for supported in supported_locales:
                if supported in candidates:
                    return supported
        return candidates[0]

    def resolve(
        self,
        language: Optional[str],
        primary_locale: Optional[str] = None,
        supported_locales: Iterable[str] = (),
    ) -> Optional[str]:
        """Turn a 2/3-letter language code or full locale into a catalog locale.

        Falls back to ``primary_locale`` when nothing matches.
        """
        language = (language or "").strip()
        if len(language) == 5:
            return language
        iso3 = None
        if len(language) == 2:
            iso3 = self.iso3_from_iso1(language)
        elif len(language) == 3:
            iso3 = language
        locale = self.locale_from_iso3(iso3, primary_locale, supported_locales) if iso3 else None
        return locale or primary_locale


DEFAULT_CATALOG = LocaleCatalog()
