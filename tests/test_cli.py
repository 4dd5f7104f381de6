import logging
import tempfile
import unittest
from pathlib import Path
from unittest import mock

import yaml

from app.cli import EXIT_CONFIGURATION, EXIT_OK, build_parser, main
from tests.dbfixtures import destination_store, source_store


class CliTest(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.base = Path(self.tmp.name)
        self.source = source_store(self.base)
        self.destination = destination_store(self.base)
        self.files_dir = self.base / 'files'
        self.files_dir.mkdir()
        self.output = self.base / 'export'
        self.command_file = self.base / 'import.sh'
        self.config_path = self.base / 'config.yaml'
        self.config_path.write_text(yaml.safe_dump({
            'source': {
                'database_url': f"sqlite:///{self.base / 'source.db'}",
                'files_dir': str(self.files_dir),
                'file_path_template': '{paper_id}/{file_name}',
                'expected_version': '2.3.6.0',
            },
            'destination': {
                'database_url': f"sqlite:///{self.base / 'destination.db'}",
                'ojs_path': '/srv/ojs',
                'username': 'admin',
            },
            'export': {'target': 'stable-3_3_0'},
            'import': {'force_level': 0},
            'logging': {'level': 'WARNING', 'min_log_level_console': 'WARNING', 'enable_progress_bar': False},
        }), encoding='utf-8')
        patcher = mock.patch('app.cli._ensure_utf8_console')
        patcher.start()
        self.addCleanup(patcher.stop)

    def tearDown(self):
        logging.getLogger().handlers.clear()
        self.source.close()
        self.destination.close()
        self.tmp.cleanup()

    def _main(self, *argv):
        return main(['--config', str(self.config_path), '--no-progress', *argv])

    def test_export_then_import(self):
        self.assertEqual(self._main('export', '-o', str(self.output)), EXIT_OK)
        self.assertEqual(len(list((self.output / 'papers').iterdir())), 3)

        # journals, issues and sections are missing at the default force level
        self.assertEqual(self._main('import', '-i', str(self.output), '-e', str(self.command_file)), EXIT_CONFIGURATION)
        self.assertFalse(self.command_file.exists())

        code = self._main('import', '-i', str(self.output), '-f', '5', '-e', str(self.command_file))
        self.assertEqual(code, EXIT_OK)
        lines = self.command_file.read_text(encoding='utf-8').splitlines()
        self.assertEqual(len(lines), 3)
        self.assertTrue(all('NativeImportExportPlugin import' in line for line in lines))
        self.assertEqual(len(list((self.output / 'processed-papers').iterdir())), 3)

    def test_existing_output_is_a_configuration_error(self):
        self.output.mkdir()
        self.assertEqual(self._main('export', '-o', str(self.output)), EXIT_CONFIGURATION)
        self.assertEqual(self._main('export', '-o', str(self.output), '--force'), EXIT_OK)

    def test_missing_config_file(self):
        code = main(['--config', str(self.base / 'nope.yaml'), 'export', '-o', str(self.output)])
        self.assertEqual(code, EXIT_CONFIGURATION)

    def test_parser(self):
        args = build_parser().parse_args(['import', '-i', 'out', '-f', '3', '-u', 'editor'])
        self.assertEqual((args.input, args.force_level, args.username), ('out', 3, 'editor'))
        args = build_parser().parse_args(['export', '-o', 'out', '--no-default-section', 'a', 'b'])
        self.assertEqual((args.default_section, args.conferences), (False, ['a', 'b']))
        with self.assertRaises(SystemExit):
            build_parser().parse_args(['import', '-i', 'out', '-f', '9'])


if __name__ == '__main__':
    unittest.main()
