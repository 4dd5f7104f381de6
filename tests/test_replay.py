import shlex
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from core.errors import ReplayError
from pipeline.replay import (
    CommandFileInvoker,
    InvocationResult,
    ReplayVerifier,
    ShellImportInvoker,
    build_import_command,
)


class BuildImportCommandTest(unittest.TestCase):
    def test_command_arguments(self):
        command = build_import_command('/usr/bin/php8.1 -n', '/srv/ojs', '/tmp/out dir/1-1-2-10.xml', 'sample-conf', 'admin')
        self.assertEqual(command[:4], ['/usr/bin/php8.1', '-n', '-d', 'memory_limit=-1'])
        self.assertEqual(Path(command[4]), Path('/srv/ojs/tools/importExport.php'))
        self.assertEqual(command[5:], ['NativeImportExportPlugin', 'import', '/tmp/out dir/1-1-2-10.xml', 'sample-conf', 'admin'])

    def test_default_interpreter(self):
        self.assertEqual(build_import_command('', '/srv/ojs', 'a.xml', 'j', 'u')[0], 'php')


class ReplayVerifierTest(unittest.TestCase):
    def setUp(self):
        self.verifier = ReplayVerifier()

    def test_success(self):
        self.verifier.verify(5, 6, InvocationResult('php ...', 'Import successful', 0))

    def test_error_marker_fails_even_if_a_publication_appeared(self):
        with self.assertRaises(ReplayError) as ctx:
            self.verifier.verify(5, 6, InvocationResult('php ...', 'PHP Fatal error: out of memory', 0))
        self.assertIn('Fatal error', str(ctx.exception))

    def test_unchanged_counter_fails(self):
        with self.assertRaises(ReplayError):
            self.verifier.verify(5, 5, InvocationResult('php ...', '', 0))

    def test_exit_code_alone_is_not_a_failure(self):
        with self.assertLogs('pipeline.replay', level='WARNING'):
            self.verifier.verify(5, 7, InvocationResult('php ...', '', 255))

    def test_custom_markers(self):
        verifier = ReplayVerifier(['Boom', ''])
        self.assertEqual(verifier.error_marker('a Boom b'), 'Boom')
        self.assertIsNone(verifier.error_marker('Fatal error'))
        self.assertIsNone(verifier.error_marker(None))


class InvokerTest(unittest.TestCase):
    def test_command_file_appends_lines(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / 'import.sh'
            invoker = CommandFileInvoker(path)
            first = invoker.invoke(['php', 'a b.xml'])
            invoker.invoke(['php', 'c.xml'])
            self.assertTrue(first.deferred)
            self.assertIsNone(first.exit_code)
            lines = path.read_text(encoding='utf-8').splitlines()
            self.assertEqual(lines, ["php 'a b.xml'", 'php c.xml'])
            self.assertEqual(shlex.split(lines[0]), ['php', 'a b.xml'])

    def test_shell_invoker_captures_output(self):
        completed = mock.Mock(stdout='done', returncode=3)
        with mock.patch('pipeline.replay.subprocess.run', return_value=completed) as run:
            result = ShellImportInvoker().invoke(['php', 'x.xml'])
        self.assertEqual(run.call_args[0][0], ['php', 'x.xml'])
        self.assertEqual((result.output, result.exit_code, result.deferred), ('done', 3, False))

    def test_shell_invoker_missing_interpreter(self):
        with mock.patch('pipeline.replay.subprocess.run', side_effect=FileNotFoundError('php')):
            with self.assertRaises(ReplayError):
                ShellImportInvoker().invoke(['php', 'x.xml'])


if __name__ == '__main__':
    unittest.main()
