"""
Dynamic page generation: pagination and taxonomy pages derived from the
metadata of the real content nodes.

Generated pages are described by SyntheticPage objects. Each one carries a
slug (its identity and output path without extension), the template that
renders it, and the props injected into that template.

Links between generated pages use the '<slug>.dynamic' form, e.g.
<a href="/blog/page-2.dynamic">; the post-processor rewrites them to the
final '.html' path.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .paths import REGEX_INVALID_PATH_CHARS

DYNAMIC_SUFFIX = '.dynamic'

logger = logging.getLogger('Kiln.DynamicPages')


@dataclass
class SyntheticPage:
    slug: str
    template: Optional[str]
    props: Dict[str, Any] = field(default_factory=dict)

    @property
    def id(self):
        return dynamic_slug(self.slug)

    @property
    def output_path(self):
        return '/' + self.slug.lstrip('/') + '.html'


def dynamic_slug(name):
    """Format a page name as a slug recognised by the link rewriter."""
    return f"{name}{DYNAMIC_SUFFIX}"


def name_from_dynamic_slug(slug):
    return re.sub(r'\.dynamic$', '', slug)


def term_slug(name):
    """Slug for a taxonomy term: spaces become dashes, invalid path characters are dropped."""
    return REGEX_INVALID_PATH_CHARS.sub('', re.sub(r'\s', '-', str(name)))


def paginate_nodes(nodes, per_page=10, slugify=str, template=None) -> List[SyntheticPage]:
    """
    Split nodes into pages of at most per_page nodes.

    Each page gets the props nodes, page_number (starting at 0), num_pages
    and page_slugs, the latter listing the '.dynamic' slugs of every page.
    The order of nodes is kept as given.
    """
    if per_page < 1:
        raise ValueError(f"per_page must be at least 1, got {per_page}")

    chunks = [nodes[i:i + per_page] for i in range(0, len(nodes), per_page)]
    page_slugs = [dynamic_slug(slugify(i)) for i in range(len(chunks))]

    return [
        SyntheticPage(
            slug=slugify(i),
            template=template,
            props={
                'nodes': chunk,
                'page_number': i,
                'num_pages': len(chunks),
                'page_slugs': page_slugs,
            },
        )
        for i, chunk in enumerate(chunks)
    ]


def build_term_map(nodes, get_terms: Callable[[Any], List[str]], slugify=term_slug):
    """
    Group nodes by the terms get_terms returns for them.

    e.g. for tags, nodes [{tags: [a, b]}, {tags: [b]}] give
    {'a': {'slug': ..., 'nodes': [n0]}, 'b': {'slug': ..., 'nodes': [n0, n1]}}

    Nodes without terms are left out; a default term such as
    'uncategorized' must come from get_terms itself.
    """
    terms = {}
    for node in nodes:
        for term in get_terms(node) or []:
            if term not in terms:
                terms[term] = {'slug': dynamic_slug(slugify(term)), 'nodes': []}
            terms[term]['nodes'].append(node)
    return terms


def create_taxonomy_pages(nodes, get_terms, slugify, taxonomy_slug, template=None, taxonomy_template=None):
    """
    Create one page per term, plus a taxonomy home page when taxonomy_template is set.

    Term pages get the props nodes, taxonomy, term and taxonomy_home. The home
    page gets the whole taxonomy and comes first in the returned list.
    """
    taxonomy = build_term_map(nodes, get_terms, slugify)

    pages = []
    if taxonomy_template:
        pages.append(SyntheticPage(slug=taxonomy_slug, template=taxonomy_template, props={'taxonomy': taxonomy}))

    for term, entry in taxonomy.items():
        pages.append(SyntheticPage(
            slug=name_from_dynamic_slug(entry['slug']),
            template=template,
            props={
                'nodes': entry['nodes'],
                'taxonomy': taxonomy,
                'term': term,
                'taxonomy_home': dynamic_slug(taxonomy_slug),
            },
        ))
    return pages


def _node_date(node):
    metadata = node.get('metadata') if isinstance(node, dict) else getattr(node, 'metadata', None)
    front_matter = (metadata or {}).get('frontmatter') or {}
    date = front_matter.get('date') or (metadata or {}).get('date')
    # raw values compared as strings, missing dates as ''
    return str(date) if date else ''


def sort_by_node_date(nodes):
    """
    Newest first. Dates compare as strings, so only ISO-8601 dates sort
    correctly; nodes with equal keys keep their input order.
    """
    return sorted(nodes, key=_node_date, reverse=True)


def summarize(entry):
    """The lightweight view of a node handed to generated pages."""
    metadata = entry.metadata or {}
    return {
        'title': metadata.get('title', ''),
        'description': metadata.get('description', ''),
        'rel_path': entry.rel_path,
        'output_path': entry.output_path,
        'metadata': metadata,
    }


def default_dynamic_pages(entries, settings=None):
    """
    Blog feed, category and tag pages for the nodes under the blog directory.
    """
    settings = settings or {}
    blog_slug = str(settings.get('blog_slug') or 'blog').strip('/')
    per_page = int(settings.get('per_page') or 10)

    posts = [
        summarize(entry) for entry in entries
        if entry.rel_path.startswith(f"{blog_slug}/") and entry.output_path != f"/{blog_slug}/index.html"
    ]
    posts = sort_by_node_date(posts)

    feed_pages = paginate_nodes(
        posts,
        per_page=per_page,
        slugify=lambda i: f"{blog_slug}/index" if i == 0 else f"{blog_slug}/page-{i + 1}",
        template='feed.html',
    )

    def get_category(node):
        category = node['metadata'].get('frontmatter', {}).get('category')
        return [str(category).lower() if category else 'uncategorized']

    def get_tags(node):
        tags = node['metadata'].get('frontmatter', {}).get('tags') or []
        if isinstance(tags, str):
            tags = [tags]
        return [str(tag).lower() for tag in tags]

    category_pages = create_taxonomy_pages(
        posts,
        get_terms=get_category,
        slugify=lambda name: f"{blog_slug}/categories/{term_slug(name)}",
        taxonomy_slug=f"{blog_slug}/categories/index",
        template='term.html',
        taxonomy_template='taxonomy.html',
    )
    tag_pages = create_taxonomy_pages(
        posts,
        get_terms=get_tags,
        slugify=lambda name: f"{blog_slug}/tags/{term_slug(name)}",
        taxonomy_slug=f"{blog_slug}/tags/index",
        template='term.html',
        taxonomy_template='taxonomy.html',
    )
    if not posts:
        return []
    return feed_pages + category_pages + tag_pages


class DynamicPageGenerator:
    """Produces the synthetic pages of a build, through a configured hook or the defaults."""

    def __init__(self, hook=None, settings=None):
        self.hook = hook
        self.settings = settings or {}

    def generate(self, entries) -> List[SyntheticPage]:
        if self.hook:
            pages = self.hook(list(entries)) or []
        else:
            pages = default_dynamic_pages(entries, self.settings)

        valid = []
        for page in pages:
            if isinstance(page, SyntheticPage):
                valid.append(page)
            elif isinstance(page, dict) and page.get('slug'):
                valid.append(SyntheticPage(slug=page['slug'], template=page.get('template'),
                                           props=page.get('props') or {}))
            else:
                logger.warning(f"Ignoring dynamic page without a slug: {page!r}")
        return valid
