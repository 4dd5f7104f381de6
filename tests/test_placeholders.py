import unittest

from core.placeholders import (
    ISSUE_YEAR,
    escape_literals,
    genre_for_supplementary_type,
    genre_token,
    required_tokens,
    substitute,
    token,
)


class PlaceholderTest(unittest.TestCase):
    def test_emitted_tokens_are_not_escaped(self):
        self.assertEqual(escape_literals(token(ISSUE_YEAR)), '{[#ISSUE_YEAR#]}')
        self.assertEqual(escape_literals(genre_token('IMAGE')), '{[#GENRE_NAME_IMAGE#]}')

    def test_literal_openers_are_restored(self):
        escaped = escape_literals('a {[#ISSUE_YEAR#]} b {[#')
        self.assertEqual(substitute(escaped, {ISSUE_YEAR: 2019}), 'a {[#ISSUE_YEAR#]} b {[#')
        self.assertEqual(substitute(token(ISSUE_YEAR) + ' ' + escaped, {ISSUE_YEAR: 2019}), '2019 a {[#ISSUE_YEAR#]} b {[#')

    def test_substitute_escapes_values(self):
        self.assertEqual(substitute('<a g="{[#X#]}"/>', {'X': 'R&D "text"'}), '<a g="R&amp;D &quot;text&quot;"/>')
        self.assertEqual(substitute('{[#MISSING#]}|', {}), '|')

    def test_required_tokens(self):
        text = '{[#GENRE_NAME_IMAGE#]}{[#ISSUE_YEAR#]}{[#ROLE_NAME_AUTHOR#]}{[#GENRE_NAME_IMAGE#]}{[#LITERAL_OPEN#]}'
        self.assertEqual(required_tokens(text), ['GENRE_NAME_IMAGE', 'ROLE_NAME_AUTHOR'])

    def test_supplementary_genres(self):
        self.assertEqual(genre_for_supplementary_type(' Data Set '), 'DATASET')
        self.assertEqual(genre_for_supplementary_type(None), 'OTHER')


if __name__ == '__main__':
    unittest.main()
