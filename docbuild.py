#!/usr/bin/env python3
"""
Documentation builder for folder trees of Markdown and PlantUML files.

Generates per-folder Markdown pages, a docsify website, a complete Markdown
document and PDF renderings from the same source tree.
"""

import os
import sys
import argparse
import asyncio
import base64
import importlib.util
import json
import posixpath
import re
import shutil
import time
from pathlib import Path
from typing import Callable, Dict, List, NamedTuple, Optional, Tuple
from urllib.parse import quote

import markdown
import requests
from playwright.async_api import async_playwright

import docsify_template
import plantuml_support
from plantuml_support import DiagramRenderError, PlantUmlJarRenderer


MD_EXTENSION = '.md'
DIAGRAM_EXTENSION = '.puml'
PRIVATE_PREFIX = '_'
CONFIG_FILE = '.docbuild.json'

# ditaa is only rendered as png by plantuml
DITAA_PATTERN = re.compile(r'@startditaa', re.IGNORECASE)
DIAGRAM_REFERENCE = re.compile(r'(!\[[^\]]*\]\()([^)]+?\.puml)([^)]*)(\))')

PDF_OPTIONS = {
    'scale': 1,
    'display_header_footer': False,
    'print_background': True,
    'landscape': False,
    'page_ranges': '',
    'format': 'A4',
    'margin': {
        'top': '1.5cm',
        'right': '1cm',
        'bottom': '1cm',
        'left': '1cm',
    },
}

DEFAULTS = {
    'ROOT_FOLDER': 'src',
    'DIST_FOLDER': 'docs',
    'PROJECT_NAME': 'Documentation',
    'HOMEPAGE_NAME': 'Overview',
    'REPO_NAME': '',
    'GENERATE_MD': True,
    'GENERATE_PDF': False,
    'GENERATE_WEBSITE': True,
    'GENERATE_COMPLETE_MD_FILE': False,
    'GENERATE_COMPLETE_PDF_FILE': False,
    'GENERATE_LOCAL_IMAGES': False,
    'DIAGRAM_FORMAT': 'svg',
    'CHARSET': 'UTF-8',
    'EMBED_DIAGRAM': False,
    'INCLUDE_LINK_TO_DIAGRAM': False,
    'INCLUDE_BREADCRUMBS': True,
    'INCLUDE_TABLE_OF_CONTENTS': True,
    'INCLUDE_NAVIGATION': False,
    'DIAGRAMS_ON_TOP': False,
    'MD_FILE_NAME': 'README',
    'WEB_FILE_NAME': 'HOME',
    'WEB_THEME': '//unpkg.com/docsify/lib/themes/vue.css',
    'PDF_CSS': '',
    'PLANTUML_VERSION': 'latest',
    'PLANTUML_SERVER_URL': plantuml_support.DEFAULT_SERVER_URL,
    'PLANTUML_HOME': '',
    'DOCSIFY_TEMPLATE': '',
    'MAX_CONCURRENCY': 0,
}

OPTION_HELP = {
    'ROOT_FOLDER': 'Source folder with the documentation tree',
    'DIST_FOLDER': 'Destination folder (emptied before every build)',
    'PROJECT_NAME': 'Project name, used for the complete documents and the website',
    'HOMEPAGE_NAME': 'Display name of the root folder',
    'REPO_NAME': 'Source control link shown on the website',
    'GENERATE_MD': 'Generate one Markdown page per folder',
    'GENERATE_PDF': 'Generate one PDF per folder',
    'GENERATE_WEBSITE': 'Generate a docsify website',
    'GENERATE_COMPLETE_MD_FILE': 'Generate a single Markdown document',
    'GENERATE_COMPLETE_PDF_FILE': 'Generate a single PDF document',
    'GENERATE_LOCAL_IMAGES': 'Render diagrams locally with plantuml.jar',
    'DIAGRAM_FORMAT': 'Diagram image format (svg, png...)',
    'CHARSET': 'Charset of the diagram sources',
    'EMBED_DIAGRAM': 'Embed diagrams as base64 data',
    'INCLUDE_LINK_TO_DIAGRAM': 'Add a link to each diagram image',
    'INCLUDE_BREADCRUMBS': 'Show the folder path under each title',
    'INCLUDE_TABLE_OF_CONTENTS': 'Add a table of contents to each page',
    'INCLUDE_NAVIGATION': 'Add parent and child folder links to each page',
    'DIAGRAMS_ON_TOP': 'Place diagrams before the Markdown text',
    'MD_FILE_NAME': 'File name of the per-folder Markdown/PDF pages',
    'WEB_FILE_NAME': 'File name of the per-folder website pages',
    'WEB_THEME': 'Stylesheet of the website',
    'PDF_CSS': 'Stylesheet used when printing PDFs',
    'PLANTUML_VERSION': 'Version of the bundled plantuml.jar',
    'PLANTUML_SERVER_URL': 'PlantUML server used when images are not generated locally',
    'PLANTUML_HOME': 'Folder holding the plantuml jars',
    'DOCSIFY_TEMPLATE': 'Python file with a render(config) function for index.html',
    'MAX_CONCURRENCY': 'Cap on concurrent operations per phase (0 = unbounded)',
}


class BuildError(Exception):
    """Base class for errors that abort a build."""


class ConfigurationError(BuildError):
    pass


class RemoteFetchError(BuildError):
    def __init__(self, url: str, status_code: int):
        super().__init__(f"Failed to load page {url}, status code: {status_code}")
        self.url = url
        self.status_code = status_code


class DiagramFile(NamedTuple):
    name: str
    content: str


class PdfResult(NamedTuple):
    path: Path
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class Options:
    """Build settings, keyed by the upper-case option names."""

    def __init__(self, **overrides):
        unknown = sorted(set(overrides) - set(DEFAULTS))
        if unknown:
            raise ConfigurationError(f"Unknown options: {', '.join(unknown)}")
        values = dict(DEFAULTS)
        values.update(overrides)
        for key, value in values.items():
            setattr(self, key, value)

    @classmethod
    def load(cls, config_file: Optional[str] = None, **overrides) -> 'Options':
        """Layer defaults, a JSON config file and explicit overrides."""
        values = {}
        if config_file is None and Path(CONFIG_FILE).is_file():
            config_file = CONFIG_FILE
        if config_file:
            with open(config_file, 'r', encoding='utf-8') as f:
                try:
                    values = json.load(f)
                except json.JSONDecodeError as e:
                    raise ConfigurationError(f"Invalid config file {config_file}: {e}") from e
            if not isinstance(values, dict):
                raise ConfigurationError(f"{config_file} must contain a JSON object")
        values.update(overrides)
        return cls(**values)


class Node:
    """One source folder with its Markdown and diagram contents."""

    def __init__(self, path: Path, rel_path: str, name: str, depth: int,
                 parent_path: Optional[Path] = None, private: bool = False):
        self.path = path
        self.rel_path = rel_path
        self.url_path = encode_uri_path(rel_path)
        self.name = name
        self.depth = depth
        self.parent_path = parent_path
        # set for private folders and everything below them
        self.private = private
        self.markdown_contents: List[str] = []
        self.diagram_files: List[DiagramFile] = []
        self.child_folder_names: List[str] = []

    @property
    def is_root(self) -> bool:
        return self.parent_path is None

    @property
    def parent_rel_path(self) -> str:
        return posixpath.dirname(self.rel_path)

    def __repr__(self):
        return f"Node({self.rel_path or '.'!r}, depth={self.depth})"


def documented_nodes(tree: List[Node]) -> List[Node]:
    return [node for node in tree if not node.private]


def get_folder_name(folder: Path, root: Path, homepage_name: str) -> str:
    return homepage_name if Path(folder) == Path(root) else Path(folder).name


def encode_uri_component(value: str) -> str:
    return quote(value, safe="-_.!~*'()")


def encode_uri_path(path: str) -> str:
    """Percent-encode every segment of a slash separated path."""
    return '/'.join(encode_uri_component(part) for part in str(path).replace('\\', '/').split('/'))


def relative_link(depth: int, *parts: str) -> str:
    """Link from a page at the given depth to a path relative to the output root."""
    joined = posixpath.join('.', '../' * (depth - 1), *[p for p in parts if p])
    return encode_uri_path(posixpath.normpath(joined))


def anchor(title: str) -> str:
    return encode_uri_path(title).replace('%20', '-')


def diagram_format_for(content: str, default_format: str) -> str:
    if DITAA_PATTERN.search(content or ''):
        return 'png'
    return default_format


def get_mime(diagram_format: str) -> str:
    if diagram_format == 'svg':
        return 'image/svg+xml'
    return f'image/{diagram_format}'


def http_get(url: str, timeout: float = 30) -> bytes:
    response = requests.get(url, timeout=timeout)
    if not 200 <= response.status_code <= 299:
        raise RemoteFetchError(url, response.status_code)
    return response.content


def make_directory(path: Path):
    Path(path).mkdir(parents=True, exist_ok=True)


def empty_directory(path: Path):
    """Remove everything inside path, creating it when missing."""
    path = Path(path)
    if path.is_dir():
        for child in path.iterdir():
            if child.is_dir() and not child.is_symlink():
                shutil.rmtree(child)
            else:
                child.unlink()
    make_directory(path)


def copy_file(source: Path, dest: Path):
    make_directory(Path(dest).parent)
    shutil.copyfile(source, dest)


def write_file(path: Path, content: str):
    Path(path).write_text(content, encoding='utf-8')


def remove_file(path: Path):
    Path(path).unlink(missing_ok=True)


def load_template(template_path: str) -> Callable[[Dict], str]:
    """Load the render(config) function of a custom website template."""
    path = Path(template_path).resolve()
    if not path.is_file():
        raise ConfigurationError(f"Website template {template_path} not found")
    spec = importlib.util.spec_from_file_location('docsify_custom_template', path)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    render = getattr(module, 'render', None)
    if not callable(render):
        raise ConfigurationError(f"Website template {template_path} has no render(config) function")
    return render


def print_progress(unit: str) -> Callable[[int, int], None]:
    def report(count: int, total: int):
        sys.stdout.write(f"processed {count}/{total} {unit}\r")
        sys.stdout.flush()
    return report


class PlaywrightPdfConverter:
    """Prints Markdown documents to PDF with headless Chromium."""

    def __init__(self):
        self._playwright = None
        self._browser = None
        self._lock = None
        self.md = markdown.Markdown(extensions=[
            'extra',  # tables, fenced code blocks, etc.
            'codehilite',
            'toc',
            'sane_lists',
            'md_in_html',
        ])

    async def _ensure_browser(self):
        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            if self._browser is None:
                self._playwright = await async_playwright().start()
                self._browser = await self._playwright.chromium.launch(headless=True)
        return self._browser

    def _stylesheet_html(self, stylesheet: str) -> str:
        if not stylesheet:
            return ''
        css_file = Path(stylesheet)
        if css_file.is_file():
            return f'<style>\n{css_file.read_text(encoding="utf-8")}\n</style>'
        return f'<link rel="stylesheet" href="{stylesheet}">'

    def render_html(self, text: str, stylesheet: str = '', base_dir: Optional[Path] = None) -> str:
        """Convert markdown to the standalone HTML page that gets printed."""
        self.md.reset()
        body = self.md.convert(text)
        base = f'<base href="{Path(base_dir).resolve().as_uri()}/">' if base_dir else ''
        return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    {base}
    {self._stylesheet_html(stylesheet)}
</head>
<body class="markdown-body">
{body}
</body>
</html>"""

    async def convert(self, source_path: Path, dest_path: Path, stylesheet: str = '',
                      base_dir: Optional[Path] = None):
        text = await asyncio.to_thread(Path(source_path).read_text, encoding='utf-8')
        html_path = Path(source_path).with_suffix('.html')
        await asyncio.to_thread(write_file, html_path, self.render_html(text, stylesheet, base_dir))
        try:
            browser = await self._ensure_browser()
            page = await browser.new_page()
            try:
                await page.goto(html_path.resolve().as_uri())
                await page.wait_for_load_state('networkidle')
                await page.pdf(path=str(dest_path), **PDF_OPTIONS)
            finally:
                await page.close()
        finally:
            await asyncio.to_thread(remove_file, html_path)

    async def close(self):
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None


class DocumentationBuilder:
    """Walks the source tree once and runs the enabled output modes against it."""

    def __init__(self, options: Options, renderer=None, pdf_converter=None,
                 fetch: Optional[Callable[[str], bytes]] = None,
                 template: Optional[Callable[[Dict], str]] = None):
        self.options = options
        self.root = Path(options.ROOT_FOLDER)
        self.dist = Path(options.DIST_FOLDER)
        self.renderer = renderer
        self.pdf_converter = pdf_converter
        self.fetch = fetch or http_get
        self.template = template
        self._owns_pdf_converter = False

    def _dist_dir(self, node: Node) -> Path:
        return self.dist / node.rel_path

    async def _gather(self, coroutines):
        """Run a phase concurrently, keeping results in submission order."""
        coroutines = list(coroutines)
        limit = self.options.MAX_CONCURRENCY
        if not limit:
            return await asyncio.gather(*coroutines)

        semaphore = asyncio.Semaphore(limit)

        async def run(coroutine):
            async with semaphore:
                return await coroutine

        return await asyncio.gather(*(run(c) for c in coroutines))

    def validate(self):
        """Reject unusable settings before anything is touched on disk."""
        opts = self.options
        if opts.GENERATE_LOCAL_IMAGES and not plantuml_support.find_version(opts.PLANTUML_VERSION):
            raise ConfigurationError(f"PlantUML version {opts.PLANTUML_VERSION} not supported")

        if not self.root.exists():
            raise FileNotFoundError(f"Root folder {self.root} does not exist")
        if not self.root.is_dir():
            raise NotADirectoryError(f"Root folder {self.root} is not a directory")

        root = self.root.resolve()
        dist = self.dist.resolve()
        if dist == root or dist in root.parents:
            raise ConfigurationError(
                f"DIST_FOLDER {opts.DIST_FOLDER} must not contain ROOT_FOLDER {opts.ROOT_FOLDER}")

    def _default_renderer(self) -> PlantUmlJarRenderer:
        version = plantuml_support.find_version(self.options.PLANTUML_VERSION)
        if not version:
            raise ConfigurationError(f"PlantUML version {self.options.PLANTUML_VERSION} not supported")
        home = Path(self.options.PLANTUML_HOME or Path(__file__).resolve().parent / 'vendor')
        return PlantUmlJarRenderer(home / version['jar'])

    def _get_pdf_converter(self):
        if self.pdf_converter is None:
            self.pdf_converter = PlaywrightPdfConverter()
            self._owns_pdf_converter = True
        return self.pdf_converter

    def _resolve_template(self) -> Callable[[Dict], str]:
        if self.template is None:
            if self.options.DOCSIFY_TEMPLATE:
                self.template = load_template(self.options.DOCSIFY_TEMPLATE)
            else:
                self.template = docsify_template.render
        return self.template

    async def generate_tree(self) -> List[Node]:
        """Walk ROOT_FOLDER into a pre-ordered list of nodes, mirroring it into DIST_FOLDER."""
        if not self.root.exists():
            raise FileNotFoundError(f"Root folder {self.root} does not exist")
        if not self.root.is_dir():
            raise NotADirectoryError(f"Root folder {self.root} is not a directory")

        tree: List[Node] = []
        await self._walk(self.root, None, 1, tree, False)
        return tree

    async def _walk(self, folder: Path, parent: Optional[Path], depth: int, tree: List[Node],
                    private: bool):
        opts = self.options
        rel_path = folder.relative_to(self.root).as_posix()
        if rel_path == '.':
            rel_path = ''

        node = Node(folder, rel_path, get_folder_name(folder, self.root, opts.HOMEPAGE_NAME),
                    depth, parent, private)
        tree.append(node)

        entries = sorted(await asyncio.to_thread(os.listdir, folder))
        mirror = (opts.GENERATE_WEBSITE or opts.GENERATE_MD or opts.GENERATE_PDF
                  or opts.GENERATE_LOCAL_IMAGES)

        for entry in entries:
            child = folder / entry
            if not child.is_dir():
                continue
            # private folders are still walked for mirroring and copying, never documented
            child_private = private or entry.startswith(PRIVATE_PREFIX)
            if not child_private:
                node.child_folder_names.append(entry)
            if mirror:
                await asyncio.to_thread(make_directory, self.dist / rel_path / entry)
            await self._walk(child, folder, depth + 1, tree, child_private)

        files = [e for e in entries if (folder / e).is_file()]
        documented = [] if private else [f for f in files if not f.startswith(PRIVATE_PREFIX)]

        for md_file in documented:
            if Path(md_file).suffix.lower() == MD_EXTENSION:
                content = await asyncio.to_thread((folder / md_file).read_text, encoding='utf-8')
                node.markdown_contents.append(content)

        for diagram_file in documented:
            if Path(diagram_file).suffix.lower() == DIAGRAM_EXTENSION:
                content = await asyncio.to_thread((folder / diagram_file).read_text, encoding='utf-8')
                node.diagram_files.append(DiagramFile(diagram_file, content))
        node.diagram_files.sort(key=lambda d: d.name)

        other_files = [
            f for f in files
            if f.startswith(PRIVATE_PREFIX)
            or Path(f).suffix.lower() not in (MD_EXTENSION, DIAGRAM_EXTENSION)
        ]
        for other_file in other_files:
            if opts.GENERATE_MD or opts.GENERATE_PDF or opts.GENERATE_WEBSITE:
                await asyncio.to_thread(copy_file, folder / other_file,
                                        self.dist / rel_path / other_file)
            if opts.GENERATE_COMPLETE_PDF_FILE or opts.GENERATE_COMPLETE_MD_FILE:
                await asyncio.to_thread(copy_file, folder / other_file, self.dist / other_file)

    async def generate_images(self, tree: List[Node],
                              on_image_generated: Optional[Callable[[int, int], None]] = None):
        """Render every diagram to DIST_FOLDER, one at a time."""
        if self.renderer is None:
            self.renderer = self._default_renderer()

        total = sum(len(node.diagram_files) for node in tree)
        processed = 0
        for node in tree:
            for diagram in node.diagram_files:
                diagram_format = diagram_format_for(diagram.content, self.options.DIAGRAM_FORMAT)
                dest = self._dist_dir(node) / f"{Path(diagram.name).stem}.{diagram_format}"
                await asyncio.to_thread(make_directory, dest.parent)
                await self.renderer.render(node.path / diagram.name, diagram_format,
                                           self.options.CHARSET, node.path, dest)
                processed += 1
                if on_image_generated:
                    on_image_generated(processed, total)

    async def process_diagram(self, node: Node, name: str, content: str, exclude_dir: bool) -> str:
        """Markdown for one diagram: an image link, or the embedded image with a download link."""
        opts = self.options
        diagram_format = diagram_format_for(content, opts.DIAGRAM_FORMAT)
        image_name = f"{name}.{diagram_format}"

        url_with_folder = '/'.join(p for p in (node.url_path, encode_uri_component(image_name)) if p)
        url = encode_uri_component(image_name) if exclude_dir else url_with_folder

        if not opts.GENERATE_LOCAL_IMAGES:
            url = url_with_folder = plantuml_support.server_url(
                content, diagram_format, opts.PLANTUML_SERVER_URL)

        if opts.EMBED_DIAGRAM:
            if opts.GENERATE_LOCAL_IMAGES:
                image_path = self._dist_dir(node) / image_name
                data = await asyncio.to_thread(image_path.read_bytes)
            else:
                data = await asyncio.to_thread(self.fetch, url)
            encoded = base64.b64encode(data).decode('ascii')
            return (f"\n![{name}](data:{get_mime(diagram_format)};base64,{encoded})  \n"
                    f"[Download {name} diagram]({url} ':ignore')")

        result = f"![diagram]({url})  \n"
        if opts.INCLUDE_LINK_TO_DIAGRAM:
            result += f"[Go to {name} diagram]({url_with_folder} ':ignore')"
        return result

    async def replace_diagrams_in_md(self, node: Node, content: str,
                                     exclude_dir: bool) -> Tuple[str, List[str]]:
        """Swap inline diagram references for rendered diagrams, in source order.

        Returns the new text and the names of the diagram files it used.
        """
        matches = list(DIAGRAM_REFERENCE.finditer(content))
        if not matches:
            return content, []

        async def resolve(match):
            reference = match.group(2).strip()
            source = await asyncio.to_thread((node.path / reference).read_text, encoding='utf-8')
            return await self.process_diagram(node, Path(reference).stem, source, exclude_dir)

        replaced = [posixpath.normpath(m.group(2).strip()) for m in matches]
        fragments = iter(await self._gather(resolve(m) for m in matches))
        return DIAGRAM_REFERENCE.sub(lambda _: next(fragments), content), replaced

    async def render_node(self, node: Node, exclude_dir: bool) -> str:
        """Markdown files of a node followed by (or preceded by) its unreferenced diagrams."""
        text = ''.join('\n\n' + content for content in node.markdown_contents)
        text, replaced = await self.replace_diagrams_in_md(node, text, exclude_dir)

        remaining = [d for d in node.diagram_files if d.name not in replaced]
        fragments = await self._gather(
            self.process_diagram(node, Path(d.name).stem, d.content, exclude_dir)
            for d in remaining
        )
        images = ''.join('\n\n' + fragment for fragment in fragments)

        return images + text if self.options.DIAGRAMS_ON_TOP else text + images

    def _breadcrumbs(self, node: Node) -> str:
        if self.options.INCLUDE_BREADCRUMBS and not node.is_root:
            return f"\n\n`/{node.rel_path}`"
        return ''

    def _table_of_contents(self, tree: List[Node], current: Node) -> str:
        md_file = f"{self.options.MD_FILE_NAME}.md"
        lines = []
        for item in documented_nodes(tree):
            label = f"**{item.name}**" if item.path == current.path else item.name
            link = relative_link(current.depth, item.rel_path, md_file)
            lines.append(f"{'  ' * (item.depth - 1)}* [{label}]({link})\n")
        return ''.join(lines)

    def _navigation(self, node: Node) -> str:
        opts = self.options
        md_file = f"{opts.MD_FILE_NAME}.md"
        md = ''
        if not node.is_root:
            parent_name = get_folder_name(node.parent_path, self.root, opts.HOMEPAGE_NAME)
            md += f"\n\n[{parent_name} (up)]({relative_link(node.depth, node.parent_rel_path, md_file)})"
        for child in node.child_folder_names:
            md += f"\n\n- [{child}]({relative_link(node.depth, node.rel_path, child, md_file)})"
        return md + '\n\n---'

    def _complete_table_of_contents(self, tree: List[Node]) -> str:
        return ''.join(f"{'  ' * (item.depth - 1)}* [{item.name}](#{anchor(item.name)})\n"
                       for item in documented_nodes(tree))

    async def generate_md(self, tree: List[Node],
                          on_progress: Optional[Callable[[int, int], None]] = None):
        """Write one Markdown page with navigation per folder."""
        opts = self.options
        pages = documented_nodes(tree)
        processed = 0
        total = len(pages)

        async def write_page(node: Node):
            nonlocal processed
            md = f"# {node.name}"
            md += self._breadcrumbs(node)
            if opts.INCLUDE_TABLE_OF_CONTENTS:
                md += f"\n\n{self._table_of_contents(tree, node)}\n---"
            if opts.INCLUDE_NAVIGATION:
                md += self._navigation(node)
            md += await self.render_node(node, True)

            dest = self._dist_dir(node) / f"{opts.MD_FILE_NAME}.md"
            await asyncio.to_thread(make_directory, dest.parent)
            await asyncio.to_thread(write_file, dest, md)
            processed += 1
            if on_progress:
                on_progress(processed, total)

        await self._gather(write_page(node) for node in pages)

    async def _print_pdf(self, source: Path, dest: Path) -> PdfResult:
        try:
            await self._get_pdf_converter().convert(
                source, dest, stylesheet=self.options.PDF_CSS, base_dir=self.dist)
        except Exception as e:
            # a failed document is left unconverted, the build goes on
            print(f"Error converting {source} to PDF: {e}", file=sys.stderr)
            return PdfResult(dest, e)
        finally:
            await asyncio.to_thread(remove_file, source)
        return PdfResult(dest)

    async def generate_pdf(self, tree: List[Node],
                           on_progress: Optional[Callable[[int, int], None]] = None) -> List[PdfResult]:
        """Print one PDF per folder."""
        opts = self.options
        pages = documented_nodes(tree)
        processed = 0
        total = len(pages)

        async def print_page(node: Node) -> PdfResult:
            nonlocal processed
            md = f"# {node.name}"
            md += self._breadcrumbs(node)
            md += await self.render_node(node, False)

            folder = self._dist_dir(node)
            temp_file = folder / f"{opts.MD_FILE_NAME}_TEMP.md"
            await asyncio.to_thread(make_directory, folder)
            await asyncio.to_thread(write_file, temp_file, md)
            result = await self._print_pdf(temp_file, folder / f"{opts.MD_FILE_NAME}.pdf")

            processed += 1
            if on_progress:
                on_progress(processed, total)
            return result

        return await self._gather(print_page(node) for node in pages)

    async def _complete_document(self, tree: List[Node], link_to_top: bool) -> str:
        opts = self.options
        md = f"# {opts.PROJECT_NAME}"
        md += f"\n\n{self._complete_table_of_contents(tree)}\n---"

        documented = documented_nodes(tree)
        sections = await self._gather(self.render_node(node, False) for node in documented)
        for node, section in zip(documented, sections):
            md += f"\n\n## {node.name}"
            md += self._breadcrumbs(node)
            if link_to_top and not node.is_root:
                md += f"\n\n[{opts.HOMEPAGE_NAME}](#{anchor(opts.PROJECT_NAME)})"
            md += section
        return md

    async def generate_complete_md(self, tree: List[Node],
                                   on_progress: Optional[Callable[[int, int], None]] = None):
        """Write every folder into a single PROJECT_NAME.md."""
        md = await self._complete_document(tree, link_to_top=True)
        await asyncio.to_thread(make_directory, self.dist)
        await asyncio.to_thread(write_file, self.dist / f"{self.options.PROJECT_NAME}.md", md)
        if on_progress:
            on_progress(1, 1)

    async def generate_complete_pdf(self, tree: List[Node],
                                    on_progress: Optional[Callable[[int, int], None]] = None) -> PdfResult:
        """Print every folder into a single PROJECT_NAME.pdf."""
        opts = self.options
        md = await self._complete_document(tree, link_to_top=False)

        temp_file = self.dist / f"{opts.PROJECT_NAME}_TEMP.md"
        await asyncio.to_thread(make_directory, self.dist)
        await asyncio.to_thread(write_file, temp_file, md)
        result = await self._print_pdf(temp_file, self.dist / f"{opts.PROJECT_NAME}.pdf")
        if on_progress:
            on_progress(1, 1)
        return result

    async def generate_website(self, tree: List[Node],
                               on_progress: Optional[Callable[[int, int], None]] = None):
        """Write the docsify pages, sidebar and homepage."""
        opts = self.options
        template = self._resolve_template()
        web_file = f"{opts.WEB_FILE_NAME}.md"
        pages = documented_nodes(tree)
        processed = 0
        total = len(pages)

        sidebar = ''.join(
            f"{'  ' * (node.depth - 1)}* [{node.name}]"
            f"({encode_uri_path(posixpath.join(node.rel_path, opts.WEB_FILE_NAME))})\n"
            for node in pages
        )

        async def write_page(node: Node):
            nonlocal processed
            md = f"# {node.name}"
            md += await self.render_node(node, True)
            dest = self._dist_dir(node) / web_file
            await asyncio.to_thread(make_directory, dest.parent)
            await asyncio.to_thread(write_file, dest, md)
            processed += 1
            if on_progress:
                on_progress(processed, total)

        homepage = template({
            'name': opts.PROJECT_NAME,
            'repo': opts.REPO_NAME,
            'loadSidebar': True,
            'auto2top': True,
            'homepage': web_file,
            'plantuml': {
                'skin': 'classic',
            },
            'stylesheet': opts.WEB_THEME,
        })

        await asyncio.to_thread(make_directory, self.dist)
        await self._gather([
            *(write_page(node) for node in pages),
            asyncio.to_thread(write_file, self.dist / 'index.html', homepage),
            # github pages preparation
            asyncio.to_thread(write_file, self.dist / '.nojekyll', ''),
            asyncio.to_thread(write_file, self.dist / '_sidebar.md', sidebar),
        ])

    async def build(self):
        """Full build: empty DIST_FOLDER, walk the tree and run every enabled output."""
        opts = self.options
        start_time = time.time()

        self.validate()
        if opts.GENERATE_LOCAL_IMAGES and self.renderer is None:
            self.renderer = self._default_renderer()
        if opts.GENERATE_WEBSITE:
            self._resolve_template()

        await asyncio.to_thread(empty_directory, self.dist)

        print(f"\nbuilding documentation in ./{opts.DIST_FOLDER}")
        tree = await self.generate_tree()
        print(f"parsed {len(tree)} folders")

        try:
            if opts.GENERATE_LOCAL_IMAGES:
                print("generating images")
                await self.generate_images(tree, print_progress('images'))
                print()
            if opts.GENERATE_MD:
                print("generating markdown files")
                await self.generate_md(tree, print_progress('files'))
                print()
            if opts.GENERATE_WEBSITE:
                print("generating docsify site")
                await self.generate_website(tree, print_progress('files'))
                print()
            if opts.GENERATE_COMPLETE_MD_FILE:
                print("generating complete markdown file")
                await self.generate_complete_md(tree, print_progress('files'))
                print()
            if opts.GENERATE_COMPLETE_PDF_FILE:
                print("generating complete pdf file")
                await self.generate_complete_pdf(tree, print_progress('files'))
                print()
            if opts.GENERATE_PDF:
                print("generating pdf files")
                await self.generate_pdf(tree, print_progress('files'))
                print()
        finally:
            if self._owns_pdf_converter:
                await self.pdf_converter.close()

        print(f"built in {time.time() - start_time:.2f} seconds")
        return tree


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Build documentation from a folder tree of Markdown and PlantUML files')
    parser.add_argument('--config', help=f'JSON file with options (default: {CONFIG_FILE} if present)')
    for key, default in DEFAULTS.items():
        flag = '--' + key.lower().replace('_', '-')
        help_text = f"{OPTION_HELP[key]} (default: {default!r})"
        if isinstance(default, bool):
            parser.add_argument(flag, dest=key, action=argparse.BooleanOptionalAction,
                                default=None, help=help_text)
        elif isinstance(default, int):
            parser.add_argument(flag, dest=key, type=int, default=None, help=help_text)
        else:
            parser.add_argument(flag, dest=key, default=None, help=help_text)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    overrides = {key: value for key, value in vars(args).items()
                 if key in DEFAULTS and value is not None}

    try:
        options = Options.load(args.config, **overrides)
        asyncio.run(DocumentationBuilder(options).build())
    except (BuildError, DiagramRenderError, OSError, requests.RequestException) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
