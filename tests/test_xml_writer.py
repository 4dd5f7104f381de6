import base64
import unittest

from lxml import etree

from core.placeholders import find_tokens, substitute
from core.profiles import get_profile
from storage.source import Author, Galley, Paper, PaperFile, SupplementaryFile
from writers.xml_writer import PKP_NS, PaperXmlWriter, format_date, merge_coverage, split_keywords

NS = {'p': PKP_NS}


def _file(file_id, name, content=b'data', revision=1, **kwargs):
    return PaperFile(
        file_id=file_id,
        revision=revision,
        file_name=f"10-{file_id}-{revision}.{name.rsplit('.', 1)[-1]}",
        original_file_name=name,
        file_type=kwargs.pop('file_type', 'application/octet-stream'),
        file_size=len(content),
        type='public',
        viewable=True,
        date_uploaded='2019-04-02 10:00:00',
        date_modified='2019-04-03 11:00:00',
        content=content,
        **kwargs,
    )


def sample_paper():
    return Paper(
        paper_id=10,
        conference_id=1,
        sched_conf_id=1,
        track_id=1,
        language='en',
        date_submitted='2019-04-01 10:00:00',
        date_published='2019-06-01 00:00:00',
        pages='1-10',
        settings={
            'title': {'en_US': 'Sample paper', 'fr_CA': 'Article'},
            'abstract': {'en_US': '<p>Abstract</p>'},
            'discipline': {'en_US': 'Physics; Chemistry', 'fr_CA': ' ; '},
            'subject': {'fr_CA': 'optique, lasers'},
            'coverageGeo': {'en_US': 'Canada'},
            'coverageChron': {'en_US': ' 2019 ', 'fr_CA': 'XXe'},
            'coverageSample': {'en_US': ''},
        },
        authors=[
            Author(100, 1, 'Ada', 'M', 'Lovelace', 'Analytical Society', 'GB', 'ada@example.org', None,
                   biography={'en_US': 'Mathematician'}, primary_contact=True),
            Author(101, 2, 'Alan', None, 'Turing', None, 'GB', 'alan@example.org', None, primary_contact=True),
        ],
        files=[
            _file(500, 'paper.pdf', revision=2),
            _file(501, 'paper.html'),
            _file(502, 'style.css'),
            _file(503, 'figure.png', content=b''),
            _file(504, 'data.csv'),
        ],
        galleys=[
            Galley(600, 500, 'en_US', 'PDF', 1),
            Galley(601, 501, None, None, 2, html_galley=True, style_file_id=502, image_file_ids=[503]),
        ],
        supplementary_files=[
            SupplementaryFile(700, 504, 'Data Set', 'fr', '2019-04-02', 1,
                              settings={'title': {'en_US': 'Raw data'}, 'creator': {'en_US': 'Ada Lovelace'}}),
        ],
    )


def render(paper, target='stable-3_3_0', **kwargs):
    kwargs.setdefault('primary_locale', 'en_US')
    kwargs.setdefault('supported_locales', ['en_US', 'fr_CA'])
    writer = PaperXmlWriter(paper, get_profile(target), **kwargs)
    data = writer.render()
    return data, etree.fromstring(data)


class HelpersTest(unittest.TestCase):
    def test_format_date(self):
        self.assertEqual(format_date('2019-04-01 10:00:00'), '2019-04-01')
        self.assertEqual(format_date(None), '')

    def test_split_keywords(self):
        self.assertEqual(split_keywords('a, b;c ;; '), ['a', 'b', 'c'])

    def test_merge_coverage(self):
        coverage = merge_coverage(sample_paper().settings)
        self.assertEqual(coverage, {'en_US': 'Canada,2019', 'fr_CA': 'XXe'})


class PaperXmlWriterTest(unittest.TestCase):
    def test_article_attributes(self):
        _, root = render(sample_paper(), has_section=True)
        self.assertEqual(root.tag, f'{{{PKP_NS}}}article')
        self.assertEqual(root.get('{http://www.w3.org/2001/XMLSchema-instance}schemaLocation'), 'http://pkp.sfu.ca native.xsd')
        self.assertEqual(root.get('date_submitted'), '2019-04-01')
        self.assertEqual(root.get('status'), '3')
        self.assertEqual(root.get('submission_progress'), '0')
        self.assertEqual(root.get('stage'), 'production')
        self.assertEqual(root.get('current_publication_id'), '10')
        self.assertEqual(root.get('locale'), 'en_US')
        self.assertEqual(root.findtext('p:pages', namespaces=NS), '1-10')

    def test_dependent_files_are_never_submission_files(self):
        _, root = render(sample_paper())
        submission = [n.get('id') for n in root.findall('p:submission_file[@stage="submission"]', NS)]
        dependent = [n.get('id') for n in root.findall('p:submission_file[@stage="dependent"]', NS)]
        self.assertEqual(submission, ['500', '501', '504'])
        self.assertEqual(dependent, ['502', '503'])
        for node in root.findall('p:submission_file[@stage="dependent"]', NS):
            ref = node.find('p:submission_file_ref', NS)
            self.assertEqual(ref.get('id'), '501')
            self.assertIsNone(ref.get('revision'))
        style = root.find('p:submission_file[@id="502"]', NS)
        self.assertEqual(style.get('genre'), '{[#GENRE_NAME_STYLE#]}')
        image = root.find('p:submission_file[@id="503"]', NS)
        self.assertEqual(image.get('genre'), '{[#GENRE_NAME_IMAGE#]}')

    def test_dependent_files_in_revision_layout(self):
        _, root = render(sample_paper(), target='stable-3_2_1')
        dependent = root.findall('p:submission_file[@stage="dependent"]', NS)
        self.assertEqual([n.get('id') for n in dependent], ['502', '503'])
        ref = dependent[0].find('p:revision/p:submission_file_ref', NS)
        self.assertEqual((ref.get('id'), ref.get('revision')), ('501', '1'))
        self.assertIsNone(root.get('locale'))

    def test_empty_files_are_embedded_as_placeholder_content(self):
        _, root = render(sample_paper())
        image = root.find('p:submission_file[@id="503"]/p:file', NS)
        self.assertEqual(base64.b64decode(image.findtext('p:embed', namespaces=NS)), b'Empty')
        self.assertEqual(image.get('filesize'), '5')
        self.assertEqual(image.get('extension'), 'png')

    def test_supplementary_file_metadata(self):
        _, root = render(sample_paper())
        supp = root.find('p:submission_file[@id="504"]', NS)
        self.assertEqual(supp.get('genre'), '{[#GENRE_NAME_DATASET#]}')
        self.assertEqual(supp.get('language'), 'fr_CA')
        self.assertEqual(supp.get('date_created'), '2019-04-02')
        self.assertEqual(supp.findtext('p:creator', namespaces=NS), 'Ada Lovelace')

        _, root = render(sample_paper(), target='stable-3_2_1')
        supp = root.find('p:submission_file[@id="504"]', NS)
        self.assertEqual(supp.find('p:revision', NS).get('genre'), '{[#GENRE_NAME_DATASET#]}')
        self.assertEqual(supp.findtext('p:language', namespaces=NS), 'fr_CA')

    def test_publication(self):
        _, root = render(sample_paper(), has_section=True)
        publication = root.find('p:publication', NS)
        self.assertEqual(publication.get('locale'), 'en_US')
        self.assertEqual(publication.get('section_ref'), '{[#SECTION_ABBREVIATION#]}')
        self.assertEqual(publication.get('primary_contact_id'), '101')
        self.assertEqual(publication.get('date_published'), '2019-06-01')
        self.assertEqual(publication.find('p:id', NS).get('advice'), 'ignore')
        titles = {n.get('locale'): n.text for n in publication.findall('p:title', NS)}
        self.assertEqual(titles, {'en_US': 'Sample paper', 'fr_CA': 'Article'})
        coverage = {n.get('locale'): n.text for n in publication.findall('p:coverage', NS)}
        self.assertEqual(coverage, {'en_US': 'Canada,2019', 'fr_CA': 'XXe'})

        disciplines = publication.findall('p:disciplines', NS)
        self.assertEqual(len(disciplines), 1)
        self.assertEqual([n.text for n in disciplines[0]], ['Physics', 'Chemistry'])
        subjects = publication.find('p:subjects', NS)
        self.assertEqual(subjects.get('locale'), 'fr_CA')
        self.assertEqual([n.text for n in subjects], ['optique', 'lasers'])

        issue = publication.find('p:issue_identification', NS)
        self.assertEqual([n.text for n in issue], ['{[#ISSUE_VOLUME#]}', '{[#ISSUE_NUMBER#]}', '{[#ISSUE_YEAR#]}'])

    def test_no_section_reference_without_section(self):
        _, root = render(sample_paper(), has_section=False)
        self.assertIsNone(root.find('p:publication', NS).get('section_ref'))

    def test_authors(self):
        _, root = render(sample_paper())
        authors = root.findall('p:publication/p:authors/p:author', NS)
        self.assertEqual([a.get('seq') for a in authors], ['1', '2'])
        self.assertEqual(authors[0].get('user_group_ref'), '{[#ROLE_NAME_AUTHOR#]}')
        self.assertEqual(authors[0].get('primary_contact'), 'true')
        self.assertEqual(authors[0].findtext('p:givenname', namespaces=NS), 'Ada M')
        self.assertEqual(authors[0].findtext('p:biography', namespaces=NS), 'Mathematician')
        self.assertIsNone(authors[1].find('p:affiliation', NS))
        self.assertIsNone(authors[1].find('p:url', NS))

    def test_last_flagged_primary_contact_wins(self):
        paper = sample_paper()
        for author in paper.authors:
            author.primary_contact = True
        _, root = render(paper)
        self.assertEqual(root.find('p:publication', NS).get('primary_contact_id'), '101')
        authors = root.findall('p:publication/p:authors/p:author', NS)
        self.assertEqual([a.get('primary_contact') for a in authors], ['true', 'true'])

    def test_no_primary_contact(self):
        paper = sample_paper()
        for author in paper.authors:
            author.primary_contact = False
        _, root = render(paper)
        self.assertIsNone(root.find('p:publication', NS).get('primary_contact_id'))

    def test_galleys(self):
        _, root = render(sample_paper())
        galleys = root.findall('p:publication/p:article_galley', NS)
        self.assertEqual(len(galleys), 2)
        self.assertEqual(galleys[0].findtext('p:name', namespaces=NS), 'PDF')
        self.assertEqual(galleys[1].findtext('p:name', namespaces=NS), 'HTML')
        self.assertEqual(galleys[1].get('locale'), 'en_US')
        self.assertEqual(galleys[0].find('p:submission_file_ref', NS).get('id'), '500')

        _, root = render(sample_paper(), target='stable-3_2_1', supplementary_as_galley=True)
        supplementary = root.find('p:publication/p:supplementary_file', NS)
        self.assertEqual(supplementary.findtext('p:name', namespaces=NS), 'Raw data')
        self.assertEqual(supplementary.find('p:submission_file_ref', NS).get('revision'), '1')
        galley = root.find('p:publication/p:article_galley', NS)
        self.assertEqual(galley.find('p:submission_file_ref', NS).get('revision'), '2')

    def test_version_profiles(self):
        _, root = render(sample_paper(), target='stable-3_4_0')
        self.assertEqual(root.get('locale'), 'en')
        self.assertEqual(root.get('submission_progress'), '')
        publication = root.find('p:publication', NS)
        self.assertIsNone(publication.get('locale'))
        self.assertEqual({n.get('locale') for n in publication.findall('p:title', NS)}, {'en', 'fr_CA'})

    def test_language_resolution(self):
        paper = sample_paper()
        paper.language = 'fra'
        _, root = render(paper, primary_locale='en_US', supported_locales=['fr_FR'])
        self.assertEqual(root.get('locale'), 'fr_FR')
        paper.language = None
        _, root = render(paper, primary_locale='es_ES')
        self.assertEqual(root.get('locale'), 'es_ES')

    def test_placeholders_left_for_import(self):
        data, _ = render(sample_paper(), has_section=True)
        tokens = set(find_tokens(data.decode('utf-8')))
        self.assertTrue({'ROLE_NAME_AUTHOR', 'SECTION_ABBREVIATION', 'ISSUE_VOLUME', 'ISSUE_NUMBER', 'ISSUE_YEAR',
                         'GENRE_NAME_SUBMISSION', 'GENRE_NAME_STYLE', 'GENRE_NAME_IMAGE', 'GENRE_NAME_DATASET'} <= tokens)

    def test_token_like_field_content_survives_substitution(self):
        paper = sample_paper()
        paper.settings['title'] = {'en_US': 'Study of {[#ISSUE_YEAR#]} markers'}
        data, root = render(paper)
        self.assertNotIn('ISSUE_YEAR', find_tokens(root.findtext('p:publication/p:title', namespaces=NS)))

        document = substitute(data.decode('utf-8'), {'ISSUE_YEAR': 2019, 'ISSUE_VOLUME': 1, 'ISSUE_NUMBER': 2})
        publication = etree.fromstring(document.encode('utf-8')).find('p:publication', NS)
        self.assertEqual(publication.findtext('p:title', namespaces=NS), 'Study of {[#ISSUE_YEAR#]} markers')
        self.assertEqual(publication.findtext('p:issue_identification/p:year', namespaces=NS), '2019')

    def test_file_reader_is_used_when_content_is_not_loaded(self):
        paper = sample_paper()
        paper.files = [_file(500, 'paper.pdf', revision=2)]
        paper.files[0].content = None
        paper.galleys = paper.galleys[:1]
        paper.supplementary_files = []
        calls = []

        def reader(owner, paper_file):
            calls.append((owner.paper_id, paper_file.file_id))
            return b'PDF!'

        _, root = render(paper, file_reader=reader)
        self.assertEqual(calls, [(10, 500)])
        embed = root.findtext('p:submission_file/p:file/p:embed', namespaces=NS)
        self.assertEqual(base64.b64decode(embed), b'PDF!')


if __name__ == '__main__':
    unittest.main()
