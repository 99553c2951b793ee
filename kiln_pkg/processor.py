"""
Content processing pipeline: turns one content file into metadata and an
HTML fragment.

Markdown files are parsed for YAML front matter and rendered with mistune.
Page components (HTML/Jinja files living in the content tree) go through
the same metadata stages but keep an empty fragment: they are rendered as
templates themselves.
"""

import os
import re
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

import mistune
import yaml

from .errors import ContentProcessingError
from .paths import resolve, relative_to_root
from .pipeline import Stage, StagePipeline

MARKDOWN_EXTENSIONS = ('.md', '.markdown')
DEFAULT_TEMPLATE = 'default.html'
EXTRACT_CHAR_LIMIT = 250

REGEX_HEADING = re.compile(r'^\s{0,3}#{1,6}\s+(.+?)\s*#*\s*$', re.MULTILINE)
REGEX_MD_IMAGE = re.compile(r'!\[([^\]]*)\]\([^)]*\)')
REGEX_MD_LINK = re.compile(r'\[([^\]]*)\]\([^)]*\)')
REGEX_HTML_TAG = re.compile(r'<[^>]+>')
REGEX_MD_SYMBOLS = re.compile(r'[*_`>#~|]')
REGEX_CONSEC_SPACE = re.compile(r'\s+')
REGEX_TRAILING_NON_ALPHA_NUMERICS = re.compile(r'[^A-Za-z0-9]+$')

thread_local = threading.local()


@dataclass
class ContentFile:
    """The context passed from stage to stage for one content file."""
    path: str
    content_root: str
    raw: str = ''
    body: str = ''
    html: str = ''
    kind: str = 'markdown'
    info: Optional[os.stat_result] = None
    layouts: Dict[str, str] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ProcessedContent:
    metadata: Dict[str, Any]
    html: str
    kind: str = 'markdown'


def create_markdown_parser():
    """Create a Mistune markdown parser with a custom renderer."""
    class CustomRenderer(mistune.HTMLRenderer):
        def __init__(self):
            super().__init__(escape=False)

        def block_code(self, code, info=None):
            escaped_code = mistune.escape(code)
            return '<pre style="white-space: pre-wrap;"><code>{}</code></pre>'.format(escaped_code)

    return mistune.create_markdown(
        renderer=CustomRenderer(),
        plugins=['table', 'task_lists', 'strikethrough']
    )


def markdown_to_html(text):
    """Render markdown with a parser owned by the current thread."""
    if not hasattr(thread_local, 'markdown_parser'):
        thread_local.markdown_parser = create_markdown_parser()
    return thread_local.markdown_parser(text)


def generate_description(body, limit=EXTRACT_CHAR_LIMIT):
    """Build a plain-text description from a markdown body."""
    text = REGEX_HEADING.sub('', body)
    text = REGEX_MD_IMAGE.sub(r'\1', text)
    text = REGEX_MD_LINK.sub(r'\1', text)
    text = REGEX_HTML_TAG.sub('', text)
    text = REGEX_MD_SYMBOLS.sub('', text)
    text = REGEX_CONSEC_SPACE.sub(' ', text).strip()
    if len(text) > limit:
        text = REGEX_TRAILING_NON_ALPHA_NUMERICS.sub('', text[:limit]) + '...'
    return text


# Standard stages

def parse_front_matter(ctx):
    """Split a leading YAML block into metadata['frontmatter'] and the body."""
    front_matter = {}
    body = ctx.raw
    if ctx.raw.startswith('---'):
        parts = ctx.raw.split('---', 2)
        if len(parts) >= 3:
            front_matter = yaml.safe_load(parts[1]) or {}
            if not isinstance(front_matter, dict):
                raise ValueError(f"front matter must be a mapping, got {type(front_matter).__name__}")
            body = parts[2].strip()
    ctx.metadata['frontmatter'] = front_matter
    ctx.body = body
    return ctx


def set_draft(ctx):
    ctx.metadata['draft'] = bool(ctx.metadata.get('frontmatter', {}).get('draft'))
    return ctx


def set_paths(ctx):
    info = resolve(ctx.path, ctx.content_root, ctx.metadata.get('frontmatter'))
    ctx.metadata['initial_path'] = info.id
    ctx.metadata['rel_path'] = info.rel_path
    ctx.metadata['output_path'] = info.output_path
    ctx.metadata['file_name'] = info.file_name
    return ctx


def set_file_info(ctx):
    if ctx.info is not None:
        ctx.metadata['modified'] = datetime.fromtimestamp(ctx.info.st_mtime)
        # st_birthtime only exists on some platforms
        created = getattr(ctx.info, 'st_birthtime', ctx.info.st_ctime)
        ctx.metadata['created'] = datetime.fromtimestamp(created)
    return ctx


def set_template(ctx):
    """
    Choose the template: explicit front matter value, else the layout mapped
    to the top-level content directory, else the '_' layout, else the default.
    """
    front_matter = ctx.metadata.get('frontmatter', {})
    template = front_matter.get('template')
    if not template:
        rel_path = ctx.metadata.get('rel_path') or relative_to_root(ctx.path, ctx.content_root)
        top_dir = rel_path.split('/')[0].lower() if '/' in rel_path else '_'
        template = ctx.layouts.get(top_dir) or ctx.layouts.get('_') or DEFAULT_TEMPLATE
    ctx.metadata['template'] = template

    if ctx.kind == 'page':
        ctx.metadata['component'] = 'content/' + relative_to_root(ctx.path, ctx.content_root)
    return ctx


def set_seo(ctx):
    front_matter = ctx.metadata.get('frontmatter', {})

    title = front_matter.get('title')
    if not title:
        heading = REGEX_HEADING.search(ctx.body) if ctx.kind == 'markdown' else None
        title = heading.group(1) if heading else ctx.metadata.get('file_name', '')
    ctx.metadata['title'] = str(title)

    description = front_matter.get('description') or front_matter.get('excerpt')
    if not description and ctx.kind == 'markdown':
        description = generate_description(ctx.body)
    ctx.metadata['description'] = description or ''
    return ctx


def render_markdown(ctx):
    if ctx.kind == 'markdown':
        ctx.html = markdown_to_html(ctx.body)
    return ctx


STANDARD_STAGES = [
    Stage('parse_front_matter', 100, parse_front_matter),
    Stage('set_draft', 50, set_draft),
    Stage('set_paths', 50, set_paths),
    Stage('set_file_info', 50, set_file_info),
    Stage('set_template', 50, set_template),
    Stage('set_seo', 50, set_seo),
    # must run after everything that could change the markdown body
    Stage('render_markdown', -100, render_markdown),
]


class ContentProcessor:
    """Runs content files through the standard and custom processing stages."""

    def __init__(self, content_root, plugins=None, layouts=None):
        self.content_root = str(content_root)
        self.layouts = {str(k).lower(): v for k, v in (layouts or {}).items()}
        self.pipeline = StagePipeline(STANDARD_STAGES, plugins)
        self.logger = logging.getLogger('Kiln.ContentProcessor')

    def read(self, file_path):
        """Create the stage context for a file on disk."""
        with open(file_path, 'r', encoding='utf-8') as f:
            raw = f.read()
        kind = 'markdown' if os.path.splitext(str(file_path))[1].lower() in MARKDOWN_EXTENSIONS else 'page'
        return ContentFile(
            path=str(file_path),
            content_root=self.content_root,
            raw=raw,
            kind=kind,
            info=os.stat(file_path),
            layouts=self.layouts,
        )

    def process(self, file_path) -> ProcessedContent:
        """
        Process one file.

        Raises:
            ContentProcessingError: naming the file and the stage that failed
        """
        try:
            ctx = self.read(file_path)
        except (IOError, OSError, UnicodeDecodeError) as e:
            raise ContentProcessingError(file_path, 'read', e) from e

        current = {'stage': None}

        def track(stage):
            current['stage'] = stage.name

        try:
            ctx = self.pipeline.run(ctx, on_stage=track)
        except Exception as e:
            raise ContentProcessingError(file_path, current['stage'], e) from e

        self.logger.debug(f"Processed {file_path} through {len(self.pipeline.stages)} stages")
        return ProcessedContent(metadata=ctx.metadata, html=ctx.html, kind=ctx.kind)

