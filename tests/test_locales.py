import unittest

from core.locales import DEFAULT_CATALOG, LocaleCatalog
from core.profiles import get_profile
from core.errors import ConfigurationError


class LocaleCatalogTest(unittest.TestCase):
    def test_full_tags_are_kept(self):
        self.assertEqual(DEFAULT_CATALOG.resolve("en_GB", "en_US"), "en_GB")

    def test_two_letter_code(self):
        self.assertEqual(DEFAULT_CATALOG.resolve("de", "en_US"), "de_DE")

    def test_primary_locale_wins_among_candidates(self):
        self.assertEqual(DEFAULT_CATALOG.resolve("fra", "fr_FR", ["fr_CA"]), "fr_FR")

    def test_first_supported_locale_breaks_ties(self):
        self.assertEqual(DEFAULT_CATALOG.resolve("fr", "en_US", ["en_US", "fr_FR"]), "fr_FR")

    def test_falls_back_to_first_table_candidate(self):
        self.assertEqual(DEFAULT_CATALOG.resolve("por", "en_US", ["en_US"]), "pt_BR")
        self.assertEqual(DEFAULT_CATALOG.resolve("pt", "en_US"), "pt_BR")

    def test_unknown_language_uses_primary_locale(self):
        self.assertEqual(DEFAULT_CATALOG.resolve("xx", "en_US"), "en_US")
        self.assertEqual(DEFAULT_CATALOG.resolve(None, "es_ES"), "es_ES")
        self.assertIsNone(DEFAULT_CATALOG.resolve("", None))

    def test_injected_table(self):
        catalog = LocaleCatalog([("xx_YY", "Test", "xxx"), ("xx_ZZ", "Test 2", "xxx")])
        self.assertEqual(catalog.locales(), ["xx_YY", "xx_ZZ"])
        self.assertEqual(catalog.resolve("xx", "en_US"), "xx_YY")
        self.assertEqual(catalog.resolve("xx", "en_US", ["xx_ZZ"]), "xx_ZZ")


class ProfileTest(unittest.TestCase):
    def test_locale_remapping(self):
        profile = get_profile("stable-3_4_0")
        self.assertEqual(profile.target_locale("en_US"), "en")
        self.assertEqual(profile.target_locale("pt_BR"), "pt_BR")
        self.assertEqual(get_profile("stable-3_3_0").target_locale("en_US"), "en_US")

    def test_unknown_profile(self):
        with self.assertRaises(ConfigurationError):
            get_profile("stable-2_0_0")


if __name__ == '__main__':
    unittest.main()
