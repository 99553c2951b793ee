"""
Template rendering with Jinja2.

A template feeds three parts of the final document: its 'head' block goes
into <head>, its 'styles' block into the page <style> element, and its
'body' block (or the whole template when it has none) into <body>.
"""

import os
import logging
from dataclasses import dataclass

import csscompressor
from jinja2 import BaseLoader, ChoiceLoader, Environment, FileSystemLoader, PrefixLoader, TemplateNotFound

from .bundler import file_digest
from .paths import to_posix

PACKAGE_TEMPLATES_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'templates')

logger = logging.getLogger('Kiln.Renderer')


@dataclass
class RenderResult:
    html: str
    css: str = ''
    head: str = ''


def strip_front_matter(source):
    if source.startswith('---'):
        parts = source.split('---', 2)
        if len(parts) >= 3:
            return parts[2].lstrip('\n')
    return source


class ContentComponentLoader(BaseLoader):
    """Loads page components from the content tree, without their front matter."""

    def __init__(self, content_dir):
        self.content_dir = os.path.abspath(str(content_dir))

    def get_source(self, environment, template):
        path = os.path.join(self.content_dir, *template.split('/'))
        if not os.path.isfile(path):
            raise TemplateNotFound(template)

        mtime = os.path.getmtime(path)
        with open(path, 'r', encoding='utf-8') as f:
            source = strip_front_matter(f.read())

        def uptodate():
            try:
                return os.path.getmtime(path) == mtime
            except OSError:
                return False

        return source, path, uptodate

    def list_templates(self):
        found = []
        for root, _, files in os.walk(self.content_dir):
            for name in files:
                if name.endswith('.html'):
                    found.append(to_posix(os.path.relpath(os.path.join(root, name), self.content_dir)))
        return sorted(found)


class JinjaRenderer:
    """
    Renders templates from the site's template directory, falling back to
    the packaged templates. Page components are addressed as 'content/<path>'.
    """

    def __init__(self, templates_dir=None, content_dir=None):
        loaders = []
        self.template_dirs = []
        if content_dir:
            loaders.append(PrefixLoader({'content': ContentComponentLoader(content_dir)}))
        if templates_dir and os.path.isdir(templates_dir):
            loaders.append(FileSystemLoader(templates_dir))
            self.template_dirs.append(os.path.abspath(templates_dir))
        loaders.append(FileSystemLoader(PACKAGE_TEMPLATES_DIR))
        self.template_dirs.append(PACKAGE_TEMPLATES_DIR)
        self.env = Environment(loader=ChoiceLoader(loaders))

    def fingerprint(self):
        """Sorted (path, md5) pairs of every file in the template directories."""
        found = []
        for directory in self.template_dirs:
            if not os.path.isdir(directory):
                continue
            for root, _, files in os.walk(directory):
                for name in files:
                    path = os.path.join(root, name)
                    found.append((to_posix(path), file_digest(path)))
        return tuple(sorted(found))

    def render(self, template_id, props) -> RenderResult:
        """
        Render a template with props.

        Raises:
            jinja2.TemplateNotFound: if the template does not exist
            jinja2.TemplateError: if rendering fails
        """
        template = self.env.get_template(template_id)
        logger.debug(f"Rendering template {template_id}")
        context = template.new_context(dict(props))
        # a full render registers the blocks inherited through {% extends %}
        full = ''.join(template.root_render_func(context))

        def block(name):
            stack = context.blocks.get(name)
            if not stack:
                return None
            return ''.join(stack[0](context))

        body = block('body')
        return RenderResult(
            html=full if body is None else body,
            css=(block('styles') or '').strip(),
            head=(block('head') or '').strip(),
        )


def generate_html_file_content(head='', styles='', html='', minify=False):
    """Wrap a rendered page in the HTML document shell."""
    if minify and styles:
        styles = csscompressor.compress(styles)
    return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    {head}
    <style>
        {styles}
    </style>
</head>
<body>
    {html}
</body>
</html>
"""
