"""
PlantUML helpers: server URL encoding, bundled jar versions and the local renderer.
"""

import asyncio
import base64
import zlib
from pathlib import Path
from typing import Dict, List, Optional

# PlantUML's base64 variant, in the same bit order as the standard alphabet
_STANDARD_ALPHABET = b'ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/'
_PLANTUML_ALPHABET = b'0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz-_'
_TRANSLATION = bytes.maketrans(_STANDARD_ALPHABET, _PLANTUML_ALPHABET)

DEFAULT_SERVER_URL = 'https://www.plantuml.com/plantuml'

PLANTUML_VERSIONS: List[Dict] = [
    {'version': '1.2020.7', 'jar': 'plantuml-1.2020.7.jar', 'is_latest': False},
    {'version': '1.2020.19', 'jar': 'plantuml-1.2020.19.jar', 'is_latest': False},
    {'version': '1.2021.7', 'jar': 'plantuml-1.2021.7.jar', 'is_latest': False},
    {'version': '1.2022.7', 'jar': 'plantuml-1.2022.7.jar', 'is_latest': True},
]


class DiagramRenderError(RuntimeError):
    """Raised when the PlantUML process fails to produce an image."""


def encode_diagram(source: str) -> str:
    """Deflate the diagram source and encode it with PlantUML's URL alphabet."""
    compressor = zlib.compressobj(9, zlib.DEFLATED, -15)
    data = compressor.compress(source.encode('utf-8')) + compressor.flush()
    # plantuml encodes a trailing partial group as if padded with zero bytes
    if len(data) % 3:
        data += b'\0' * (3 - len(data) % 3)
    return base64.b64encode(data).translate(_TRANSLATION).decode('ascii')


def server_url(source: str, diagram_format: str, base_url: str = DEFAULT_SERVER_URL) -> str:
    return f"{base_url.rstrip('/')}/{diagram_format}/{encode_diagram(source)}"


def find_version(version: str) -> Optional[Dict]:
    """Look up a supported jar; 'latest' picks the newest bundled one."""
    if version == 'latest':
        return next((v for v in PLANTUML_VERSIONS if v['is_latest']), None)
    return next((v for v in PLANTUML_VERSIONS if v['version'] == version), None)


class PlantUmlJarRenderer:
    """Renders diagrams with a local plantuml.jar, one process per diagram."""

    def __init__(self, jar_path: Path, java: str = 'java'):
        self.jar_path = Path(jar_path)
        self.java = java

    async def render(self, source_path: Path, diagram_format: str, charset: str,
                     include_dir: Path, dest_path: Path):
        source = await asyncio.to_thread(Path(source_path).read_bytes)
        with open(dest_path, 'wb') as out:
            process = await asyncio.create_subprocess_exec(
                self.java,
                '-Djava.awt.headless=true',
                f'-Dplantuml.include.path={include_dir}',
                '-jar', str(self.jar_path),
                '-pipe',
                f'-t{diagram_format}',
                '-charset', charset,
                stdin=asyncio.subprocess.PIPE,
                stdout=out,
                stderr=asyncio.subprocess.PIPE,
            )
            _, stderr = await process.communicate(source)

        if process.returncode != 0:
            message = stderr.decode('utf-8', errors='replace').strip()
            raise DiagramRenderError(f"PlantUML failed for {source_path}: {message}")
