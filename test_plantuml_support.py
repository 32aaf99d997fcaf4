#!/usr/bin/env python3
"""
Tests for PlantUML URL encoding and the local jar renderer.
"""

import base64
import unittest
import tempfile
import shutil
import zlib
from pathlib import Path
from unittest import mock

import plantuml_support
from plantuml_support import DiagramRenderError, PlantUmlJarRenderer


def decode_diagram(encoded: str) -> str:
    table = bytes.maketrans(plantuml_support._PLANTUML_ALPHABET, plantuml_support._STANDARD_ALPHABET)
    data = base64.b64decode(encoded.encode('ascii').translate(table))
    return zlib.decompressobj(-15).decompress(data).decode('utf-8')


class TestServerUrl(unittest.TestCase):
    """Test PlantUML server addressing."""

    SOURCE = '@startuml\nAlice -> Bob: Hello\n@enduml'

    def test_encoding_uses_url_alphabet(self):
        """The encoded source only uses PlantUML's URL safe characters."""
        encoded = plantuml_support.encode_diagram(self.SOURCE)
        self.assertTrue(encoded)
        self.assertEqual(len(encoded) % 4, 0)
        self.assertTrue(set(encoded) <= set(plantuml_support._PLANTUML_ALPHABET.decode('ascii')))
        self.assertEqual(decode_diagram(encoded), self.SOURCE)

    def test_server_url(self):
        """The format is part of the path."""
        url = plantuml_support.server_url(self.SOURCE, 'png', 'http://localhost:8080/plantuml/')
        self.assertTrue(url.startswith('http://localhost:8080/plantuml/png/'))
        self.assertEqual(decode_diagram(url.rsplit('/', 1)[1]), self.SOURCE)

    def test_find_version(self):
        """'latest' resolves to the newest bundled jar, unknown versions to None."""
        latest = plantuml_support.find_version('latest')
        self.assertTrue(latest['is_latest'])
        self.assertEqual(plantuml_support.find_version(latest['version']), latest)
        self.assertIsNone(plantuml_support.find_version('0.0.1'))


class TestJarRenderer(unittest.IsolatedAsyncioTestCase):
    """Test the plantuml.jar invocation with a stubbed process."""

    def setUp(self):
        self.test_dir = tempfile.mkdtemp()
        self.test_path = Path(self.test_dir)
        self.source = self.test_path / 'flow.puml'
        self.source.write_text('@startuml\nA -> B\n@enduml')
        self.dest = self.test_path / 'flow.svg'

    def tearDown(self):
        shutil.rmtree(self.test_dir)

    def stub_process(self, returncode, stderr=b''):
        process = mock.Mock(returncode=returncode)
        process.communicate = mock.AsyncMock(return_value=(b'', stderr))
        return mock.patch('asyncio.create_subprocess_exec', mock.AsyncMock(return_value=process))

    async def test_render_command(self):
        """The source is piped to java with format, charset and include path."""
        renderer = PlantUmlJarRenderer(Path('/opt/plantuml.jar'))
        with self.stub_process(0) as exec_mock:
            await renderer.render(self.source, 'svg', 'UTF-8', self.test_path, self.dest)

        args = exec_mock.call_args.args
        self.assertEqual(args[0], 'java')
        self.assertIn('-tsvg', args)
        self.assertIn(f'-Dplantuml.include.path={self.test_path}', args)
        self.assertEqual(args[args.index('-charset') + 1], 'UTF-8')
        self.assertEqual(args[args.index('-jar') + 1], '/opt/plantuml.jar')
        self.assertTrue(self.dest.exists())

    async def test_render_failure(self):
        """A failing process raises with its error output."""
        renderer = PlantUmlJarRenderer(Path('/opt/plantuml.jar'))
        with self.stub_process(1, b'Syntax Error?'):
            with self.assertRaises(DiagramRenderError) as ctx:
                await renderer.render(self.source, 'png', 'UTF-8', self.test_path, self.dest)
        self.assertIn('Syntax Error?', str(ctx.exception))


if __name__ == '__main__':
    unittest.main(verbosity=2)
