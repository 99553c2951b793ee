"""
HTML post-processing: link and image rewriting on the rendered page.

Stages run from the highest priority to the lowest, like the content
processor. The standard chain parses the HTML into a BeautifulSoup tree at
priority 100 and serializes it back at priority 0, so custom stages with a
priority in between work on ctx.tree, while stages above 100 or below 0
work on ctx.html.
"""

import os
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from bs4 import BeautifulSoup

from .dynamic import DYNAMIC_SUFFIX, name_from_dynamic_slug
from .errors import ContentProcessingError
from .images import ImageEntry, ImageMap, get_image_info, is_image, tiny_path
from .paths import (
    REGEX_EXTERNAL_LINK,
    REGEX_URI_SCHEME,
    resolve_href,
    strip_extension,
    swap_extension,
)
from .pipeline import Stage, StagePipeline

logger = logging.getLogger('Kiln.PostProcessor')


@dataclass
class PostContext:
    html: str
    rel_path: str
    content_root: str
    node_meta: Dict[str, Any] = field(default_factory=dict)
    image_map: Optional[ImageMap] = None
    link_index: Dict[str, str] = field(default_factory=dict)
    exclude_class: str = 'cover'
    image_formats: tuple = ('avif', 'webp')
    blur_up: bool = False
    image_info: Any = get_image_info
    tree: Any = None


def build_link_index(node_meta) -> Dict[str, str]:
    """
    Map every way a content file can be linked to its output path.

    Keys are relative paths without a leading slash, with and without
    their extension, e.g. 'blog/index.md' and 'blog/index'.
    """
    index = {}
    for entry in (node_meta or {}).values():
        rel_path = entry.rel_path.lstrip('/')
        if not rel_path:
            continue
        index.setdefault(rel_path, entry.output_path)
        index.setdefault(strip_extension(rel_path), entry.output_path)
    return index


def split_href(href):
    """'a.md?x=1#top' -> ('a.md', '?x=1#top')"""
    cut = len(href)
    for marker in ('?', '#'):
        position = href.find(marker)
        if position != -1:
            cut = min(cut, position)
    return href[:cut], href[cut:]


def rewrite_href(href, rel_path, link_index):
    """
    Return the rewritten href of a local link, or None when the href is
    left alone (empty, fragment only, or a scheme such as mailto:).
    """
    if not href or href.startswith('#') or REGEX_EXTERNAL_LINK.match(href):
        return None
    if REGEX_URI_SCHEME.match(href):
        return None

    path, suffix = split_href(href)
    if not path:
        return None

    resolved = resolve_href(path, rel_path)
    if resolved.endswith(DYNAMIC_SUFFIX):
        return '/' + name_from_dynamic_slug(resolved) + '.html' + suffix
    for candidate in (resolved, resolved.lstrip('/'), strip_extension(resolved)):
        if candidate in link_index:
            return link_index[candidate] + suffix
    return '/' + swap_extension(resolved, '.html') + suffix


# Standard stages

def parse_html(ctx):
    ctx.tree = BeautifulSoup(ctx.html, 'html.parser')
    return ctx


def rewrite_links(ctx):
    for anchor in ctx.tree.find_all('a', href=True):
        href = anchor['href'].strip()
        if REGEX_EXTERNAL_LINK.match(href):
            anchor['target'] = '_blank'
            continue
        new_href = rewrite_href(href, ctx.rel_path, ctx.link_index)
        if new_href is not None:
            anchor['href'] = new_href
    return ctx


def _image_entry(ctx, source_key, src):
    def create():
        info = ctx.image_info(source_key)
        width, height = info if info else (None, None)
        return ImageEntry(src=src, sizes={'full': src, 'tiny': tiny_path(src)}, width=width, height=height)

    if ctx.image_map is None:
        return create()
    return ctx.image_map.get_or_create(source_key, create)


def rewrite_images(ctx):
    """
    Replace local <img> elements with a <picture> offering the alternate formats.

    Only raster images Pillow can transform are replaced; others such as
    .svg keep their <img> and are published as plain content files.
    """
    for img in ctx.tree.find_all('img'):
        classes = img.get('class') or []
        if ctx.exclude_class and ctx.exclude_class in classes:
            continue
        original_src = (img.get('src') or '').strip()
        if not original_src or REGEX_EXTERNAL_LINK.match(original_src) or REGEX_URI_SCHEME.match(original_src):
            continue

        path, _ = split_href(original_src)
        if not is_image(path):
            continue
        resolved = resolve_href(path, ctx.rel_path)
        if not resolved:
            continue
        source_key = os.path.abspath(os.path.join(ctx.content_root, resolved))
        entry = _image_entry(ctx, source_key, '/' + resolved)

        picture = ctx.tree.new_tag('picture')
        if classes:
            picture['class'] = classes
        for image_format in ctx.image_formats:
            picture.append(ctx.tree.new_tag('source', attrs={
                'type': f"image/{image_format}",
                'srcset': swap_extension(entry.sizes['full'], '.' + image_format),
            }))

        fallback = ctx.tree.new_tag('img')
        fallback['src'] = entry.src
        fallback['alt'] = img.get('alt', '')
        if classes:
            fallback['class'] = classes
        width = img.get('width') or entry.width
        height = img.get('height') or entry.height
        if width:
            fallback['width'] = str(width)
        if height:
            fallback['height'] = str(height)
        if ctx.blur_up:
            fallback['src'] = entry.sizes['tiny']
            fallback['data-lazy-src'] = entry.src
        fallback['loading'] = 'lazy'
        picture.append(fallback)

        img.replace_with(picture)
    return ctx


def serialize_html(ctx):
    ctx.html = str(ctx.tree)
    return ctx


STANDARD_STAGES = [
    Stage('parse_html', 100, parse_html),
    Stage('rewrite_links', 50, rewrite_links),
    Stage('rewrite_images', 50, rewrite_images),
    Stage('serialize_html', 0, serialize_html),
]


class PostProcessor:
    """Runs rendered HTML through the standard and custom post-processing stages."""

    def __init__(self, content_root, plugins=None, exclude_class='cover', image_formats=('avif', 'webp'),
                 blur_up=False, image_info=None):
        self.content_root = os.path.abspath(str(content_root))
        self.exclude_class = exclude_class
        self.image_formats = tuple(image_formats or ())
        self.blur_up = blur_up
        self.image_info = image_info or get_image_info
        self.pipeline = StagePipeline(STANDARD_STAGES, plugins)

    def process(self, html, rel_path, node_meta=None, image_map=None, link_index=None) -> str:
        """
        Rewrite the links and images of one rendered page.

        Args:
            html: Rendered HTML of the page
            rel_path: Path of the page's source relative to the content root
            node_meta: Map of node id to NodeMetaEntry for link lookup
            image_map: Shared ImageMap, filled as a side effect
            link_index: Precomputed build_link_index(node_meta), if available

        Raises:
            ContentProcessingError: naming the page and the stage that failed
        """
        if link_index is None:
            link_index = build_link_index(node_meta)
        ctx = PostContext(
            html=html,
            rel_path=rel_path,
            content_root=self.content_root,
            node_meta=node_meta or {},
            image_map=image_map,
            link_index=link_index,
            exclude_class=self.exclude_class,
            image_formats=self.image_formats,
            blur_up=self.blur_up,
            image_info=self.image_info,
        )

        current = {'stage': None}

        def track(stage):
            current['stage'] = stage.name

        try:
            ctx = self.pipeline.run(ctx, on_stage=track)
        except Exception as e:
            raise ContentProcessingError(rel_path, current['stage'], e) from e
        logger.debug(f"Post-processed {rel_path}")
        return ctx.html
