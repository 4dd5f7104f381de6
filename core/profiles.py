"""Destination schema profiles: what differs between supported journal platform versions."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional

from core.errors import ConfigurationError


@dataclass(frozen=True)
class TargetProfile:
    """Per-version document shaping, expressed as data.

    Args:
        name: Profile key, also accepted on the command line.
        version: Destination version string stored in metadata.json.
        supplementary_tag: Element used when supplementary files are exported as galleys.
        galley_ref_revision: Whether galley ``submission_file_ref`` carries ``revision``.
        file_layout: ``"revision"`` (3.2) nests payloads in ``revision``; ``"file"`` (3.3+) uses ``file``.
        article_locale: Whether ``article`` carries a ``locale`` attribute.
        publication_locale: Whether ``publication`` carries a ``locale`` attribute.
        submission_progress: Value of ``article/@submission_progress``.
        locale_map: Source locale → destination locale tag.
    """

    name: str
    version: str
    supplementary_tag: str = "supplementary_file"
    galley_ref_revision: bool = True
    file_layout: str = "revision"
    article_locale: bool = False
    publication_locale: bool = True
    submission_progress: str = "0"
    locale_map: Dict[str, str] = field(default_factory=dict)

    def target_locale(self, locale: Optional[str]) -> Optional[str]:
        if not locale:
            return locale
        return self.locale_map.get(locale, locale)


OJS34_LOCALES = {
    "bs_BA": "bs",
    "ca_ES": "ca",
    "cs_CZ": "cs",
    "da_DK": "da",
    "de_DE": "de",
    "el_GR": "el",
    "en_US": "en",
    "es_ES": "es",
    "eu_ES": "eu",
    "fi_FI": "fi",
    "fr_CA": "fr_CA",
    "fr_FR": "fr_FR",
    "gd_GB": "gd",
    "he_IL": "he",
    "hi_IN": "hi",
    "hr_HR": "hr",
    "hu_HU": "hu",
    "hy_AM": "hy",
    "id_ID": "id",
    "is_IS": "is",
    "it_IT": "it",
    "ja_JP": "ja",
    "ko_KR": "ko",
    "mk_MK": "mk",
    "nb_NO": "nb",
    "nl_NL": "nl",
    "pl_PL": "pl",
    "pt_BR": "pt_BR",
    "pt_PT": "pt_PT",
    "ro_RO": "ro",
    "ru_RU": "ru",
    "sk_SK": "sk",
    "sl_SI": "sl",
    "sr_RS@cyrillic": "sr@cyrillic",
    "sr_RS@latin": "sr@latin",
    "sv_SE": "sv",
    "tr_TR": "tr",
    "uk_UA": "uk",
    "vi_VN": "vi",
    "zh_CN": "zh_CN",
    "ar_IQ": "ar",
    "fa_IR": "fa",
    "ku_IQ": "ckb",
}

PROFILES: Dict[str, TargetProfile] = {
    "stable-3_2_1": TargetProfile(name="stable-3_2_1", version="3.2.1"),
    "stable-3_3_0": TargetProfile(
        name="stable-3_3_0",
        version="3.3.0",
        supplementary_tag="article_galley",
        galley_ref_revision=False,
        file_layout="file",
        article_locale=True,
    ),
    "stable-3_4_0": TargetProfile(
        name="stable-3_4_0",
        version="3.4.0",
        supplementary_tag="article_galley",
        galley_ref_revision=False,
        file_layout="file",
        article_locale=True,
        publication_locale=False,
        submission_progress="",
        locale_map=OJS34_LOCALES,
    ),
}


def get_profile(name: str) -> TargetProfile:
    try:
        return PROFILES[name.lower()]
    except KeyError:
        raise ConfigurationError(
            f"Invalid target \"{name}\", available versions: {', '.join(sorted(PROFILES))}"
        ) from None
