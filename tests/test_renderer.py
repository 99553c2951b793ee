"""Tests for Jinja rendering and the document shell."""

import os
import pytest
from jinja2 import TemplateNotFound

from kiln_pkg.renderer import JinjaRenderer, generate_html_file_content, strip_front_matter


class TestJinjaRenderer:
    """Test cases for JinjaRenderer."""

    def test_blocks_feed_head_css_and_html(self, mock_templates_dir):
        result = JinjaRenderer(mock_templates_dir).render('default.html', {
            'metadata': {'title': 'Hello'},
            'content': '<p>Body</p>',
        })

        assert result.head == '<title>Hello</title>'
        assert result.css == 'body { color: black; }'
        assert result.html == '<article><p>Body</p></article>'

    def test_inherited_blocks(self, mock_templates_dir):
        with open(os.path.join(mock_templates_dir, 'child.html'), 'w') as f:
            f.write('{% extends "default.html" %}{% block body %}<main>{{ content }}</main>{% endblock %}')

        result = JinjaRenderer(mock_templates_dir).render('child.html', {'metadata': {'title': 'T'}, 'content': 'x'})

        assert result.html == '<main>x</main>'
        assert result.head == '<title>T</title>'
        assert result.css == 'body { color: black; }'

    def test_template_without_blocks(self, mock_templates_dir):
        with open(os.path.join(mock_templates_dir, 'plain.html'), 'w') as f:
            f.write('<p>{{ greeting }}</p>')

        result = JinjaRenderer(mock_templates_dir).render('plain.html', {'greeting': 'hi'})

        assert result.html == '<p>hi</p>'
        assert result.head == ''
        assert result.css == ''

    def test_falls_back_to_packaged_templates(self, temp_dir):
        result = JinjaRenderer(os.path.join(temp_dir, 'missing')).render('feed.html', {
            'nodes': [{'title': 'Post', 'output_path': '/blog/post.html', 'description': ''}],
            'page_number': 0,
            'num_pages': 1,
            'page_slugs': ['blog/index.dynamic'],
            'site': {},
        })

        assert 'href="/blog/post.html"' in result.html

    def test_page_component_from_content(self, temp_dir, mock_templates_dir):
        content_dir = os.path.join(temp_dir, 'content')
        os.makedirs(content_dir)
        with open(os.path.join(content_dir, 'contact.html'), 'w') as f:
            f.write('---\ntitle: Contact\n---\n<h1>{{ metadata.title }}</h1>')

        result = JinjaRenderer(mock_templates_dir, content_dir).render(
            'content/contact.html', {'metadata': {'title': 'Contact'}})

        assert result.html.strip() == '<h1>Contact</h1>'

    def test_missing_template(self, mock_templates_dir):
        with pytest.raises(TemplateNotFound):
            JinjaRenderer(mock_templates_dir).render('nope.html', {})

    def test_fingerprint_follows_template_edits(self, mock_templates_dir):
        renderer = JinjaRenderer(mock_templates_dir)
        before = renderer.fingerprint()

        with open(os.path.join(mock_templates_dir, 'default.html'), 'w') as f:
            f.write('{{ content }}')

        assert renderer.fingerprint() != before
        assert any(path.endswith('feed.html') for path, _ in before)


class TestDocumentShell:
    """Test cases for generate_html_file_content()."""

    def test_shell(self):
        html = generate_html_file_content('<title>T</title>', 'p { color: red; }', '<p>x</p>')

        assert html.startswith('<!DOCTYPE html>')
        assert '<title>T</title>' in html
        assert 'p { color: red; }' in html
        assert '<body>\n    <p>x</p>' in html

    def test_minified_styles(self):
        html = generate_html_file_content('', 'p {\n    color: red;\n}\n', '', minify=True)

        assert 'p{color:red}' in html

    def test_strip_front_matter(self):
        assert strip_front_matter('---\na: 1\n---\n<p></p>') == '<p></p>'
        assert strip_front_matter('<p></p>') == '<p></p>'
