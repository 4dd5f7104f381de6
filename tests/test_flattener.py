import itertools
import tempfile
import unittest

from core.errors import ConfigurationError
from core.profiles import get_profile
from pipeline.flattener import EntityFlattener, merge_sections, year_of
from storage.source import SourceRepository
from tests.dbfixtures import source_store


class MergeSectionsTest(unittest.TestCase):
    def _sections(self):
        return [
            {'id': 3, 'title': {'en_US': 'Posters'}, 'abbrev': {'en_US': 'PST'}},
            {'id': 2, 'title': {'en_US': 'General Track'}, 'abbrev': {'en_US': 'GEN-T'}},
            {'id': 1, 'title': {'en_US': 'General Track', 'fr_CA': 'Piste générale'}, 'abbrev': {'en_US': 'GT'}},
            {'id': 4, 'title': {'fr_CA': 'Posters'}},
            {'id': 5},
        ]

    def test_first_seen_is_canonical(self):
        sections, track_map = merge_sections(self._sections(), 'en_US')
        self.assertEqual([s['id'] for s in sections], [3, 2, 5])
        self.assertEqual(sections[0]['mergedIds'], [3, 4])
        self.assertEqual(sections[1]['mergedIds'], [2, 1])
        self.assertEqual(sections[1]['abbrev'], {'en_US': 'GEN-T'})
        self.assertEqual(track_map, {3: 3, 4: 3, 2: 2, 1: 2, 5: 5})

    def test_untitled_sections_get_defaults(self):
        sections, _ = merge_sections([{'id': 9}], 'en_US')
        self.assertEqual(sections[0]['title'], {'en_US': 'General'})
        self.assertEqual(sections[0]['abbrev'], {'en_US': 'GEN'})

    def test_merge_is_idempotent(self):
        once, first_map = merge_sections(self._sections(), 'en_US')
        twice, second_map = merge_sections(once, 'en_US')
        self.assertEqual(once, twice)
        self.assertEqual(first_map, second_map)

    def test_every_input_id_maps_to_a_section_with_the_same_title(self):
        for permutation in itertools.permutations(self._sections()[:4]):
            sections, track_map = merge_sections([dict(s) for s in permutation], 'en_US')
            by_id = {s['id']: s for s in sections}
            self.assertEqual(len({s['title'].get('en_US', next(iter(s['title'].values()))) for s in sections}), len(sections))
            for original in permutation:
                canonical = by_id[track_map[original['id']]]
                self.assertIn(original['id'], canonical['mergedIds'])
                expected = original['title'].get('en_US') or next(iter(original['title'].values()))
                self.assertEqual(canonical['title'].get('en_US') or next(iter(canonical['title'].values())), expected)

    def test_input_is_not_mutated(self):
        sections = self._sections()
        merge_sections(sections, 'en_US')
        self.assertNotIn('mergedIds', sections[0])


class YearTest(unittest.TestCase):
    def test_year_of(self):
        self.assertEqual(year_of('2019-05-03 00:00:00'), 2019)
        self.assertEqual(year_of('May 2018'), 2018)
        self.assertIsNone(year_of(None))
        self.assertIsNone(year_of('soon'))


class EntityFlattenerTest(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.store = source_store(self.tmp.name)
        self.source = SourceRepository(self.store)

    def tearDown(self):
        self.store.close()
        self.tmp.cleanup()

    def test_sample_conference(self):
        flattener = EntityFlattener(self.source, get_profile('stable-3_3_0'))
        metadata = flattener.build_metadata(source_version=self.source.version())
        self.assertEqual(metadata['sourceVersion'], '2.3.6.0')
        self.assertEqual(metadata['destinationVersion'], '3.3.0')
        self.assertEqual([o['urlPath'] for o in metadata['organizations']], ['sample-conf', 'empty-conf'])

        sample = metadata['organizations'][0]
        self.assertEqual(sample['name'], {'en_US': 'Sample Conference', 'fr_CA': 'Conférence exemple'})
        self.assertNotIn('title', sample)
        self.assertEqual(sample['supportedLocales'], ['en_US', 'fr_CA'])
        self.assertEqual(sample['supportedSubmissionLocales'], ['en_US', 'fr_CA'])
        self.assertEqual(sample['contactEmail'], 'chair@example.org')

        self.assertEqual([(i['id'], i['volume'], i['number'], i['year']) for i in sample['issues']], [(2, 1, 1, 2020), (1, 2, 1, 2019)])
        self.assertEqual(sample['issues'][0]['description'], {'en_US': 'Introduction 2020'})
        self.assertEqual(sample['issues'][1]['description'], {'en_US': 'Overview 2019'})
        self.assertNotIn('overview', sample['issues'][1])

        sections = sample['sections']
        self.assertEqual([s['id'] for s in sections], [3, 2])
        general = sections[1]
        self.assertEqual(general['title'], {'en_US': 'General Track'})
        self.assertEqual(general['abbrev'], {'en_US': 'GEN-T'})
        self.assertEqual(general['policy'], {'en_US': '<p>Open</p>'})
        self.assertEqual(general['mergedIds'], [2, 1])
        self.assertEqual(flattener.section_for(1, 1), 2)
        self.assertEqual(flattener.section_for(1, 3), 3)
        self.assertIsNone(flattener.section_for(1, 99))

    def test_default_section_for_conferences_without_tracks(self):
        flattener = EntityFlattener(self.source, get_profile('stable-3_3_0'))
        organizations = flattener.organizations(['empty-conf'])
        self.assertEqual(len(organizations), 1)
        self.assertEqual(organizations[0]['sections'], [{
            'id': 'general',
            'title': {'en_US': 'General'},
            'abbrev': {'en_US': 'GEN'},
            'mergedIds': [],
        }])
        self.assertEqual(organizations[0]['issues'][0]['year'], None)
        self.assertEqual(flattener.section_for(2, None), 'general')

    def test_default_section_disabled(self):
        flattener = EntityFlattener(self.source, get_profile('stable-3_3_0'), default_section=False)
        organizations = flattener.organizations(['empty-conf'])
        self.assertEqual(organizations[0]['sections'], [])
        self.assertIsNone(flattener.section_for(2, None))

    def test_missing_conference_is_fatal(self):
        flattener = EntityFlattener(self.source, get_profile('stable-3_3_0'))
        with self.assertRaises(ConfigurationError) as ctx:
            flattener.build_metadata(['sample-conf', 'nope'])
        self.assertIn('nope', str(ctx.exception))

    def test_locales_are_remapped_for_the_target(self):
        flattener = EntityFlattener(self.source, get_profile('stable-3_4_0'))
        sample = flattener.organizations(['sample-conf'])[0]
        self.assertEqual(sample['primaryLocale'], 'en')
        self.assertEqual(sample['supportedLocales'], ['en', 'fr_CA'])
        self.assertEqual(sample['sections'][1]['title'], {'en': 'General Track'})


if __name__ == '__main__':
    unittest.main()
