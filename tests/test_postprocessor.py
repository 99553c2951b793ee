"""Tests for HTML post-processing."""

import os
import pytest
from bs4 import BeautifulSoup
from PIL import Image

from kiln_pkg.errors import ContentProcessingError
from kiln_pkg.images import ImageMap
from kiln_pkg.nodes import NodeMetaEntry
from kiln_pkg.postprocessor import PostProcessor, build_link_index, rewrite_href


@pytest.fixture
def node_meta():
    return {
        '/abs/content/blog/index.md': NodeMetaEntry(metadata={}, output_path='/blog/index.html', rel_path='blog/index.md'),
        '/abs/content/about.md': NodeMetaEntry(metadata={}, output_path='/about-us.html', rel_path='about.md'),
    }


class TestLinkRewriting:
    """Test cases for anchor rewriting."""

    def test_relative_link_to_known_node(self, temp_dir, node_meta):
        html = PostProcessor(temp_dir).process('<a href="../index.md">Blog</a>', 'blog/posts/a.md', node_meta)

        assert BeautifulSoup(html, 'html.parser').a['href'] == '/blog/index.html'

    def test_rooted_link_uses_custom_output_path(self, temp_dir, node_meta):
        html = PostProcessor(temp_dir).process('<a href="/about.md#team">About</a>', 'blog/posts/a.md', node_meta)

        assert BeautifulSoup(html, 'html.parser').a['href'] == '/about-us.html#team'

    def test_unknown_link_gets_html_extension(self, temp_dir, node_meta):
        html = PostProcessor(temp_dir).process('<a href="other.md?x=1">Other</a>', 'blog/posts/a.md', node_meta)

        assert BeautifulSoup(html, 'html.parser').a['href'] == '/blog/posts/other.html?x=1'

    def test_external_link_opens_new_tab(self, temp_dir, node_meta):
        html = PostProcessor(temp_dir).process('<a href="https://example.com/x.md">Ext</a>', 'a.md', node_meta)
        anchor = BeautifulSoup(html, 'html.parser').a

        assert anchor['href'] == 'https://example.com/x.md'
        assert anchor['target'] == '_blank'

    def test_untouched_links(self, temp_dir, node_meta):
        index = build_link_index(node_meta)

        assert rewrite_href('#top', 'a.md', index) is None
        assert rewrite_href('mailto:me@example.com', 'a.md', index) is None
        assert rewrite_href('', 'a.md', index) is None

    def test_dynamic_slug_link(self, temp_dir):
        assert rewrite_href('/blog/tags/node.js.dynamic', 'a.md', {}) == '/blog/tags/node.js.html'

    def test_link_index_keys(self, node_meta):
        index = build_link_index(node_meta)

        assert index['blog/index.md'] == '/blog/index.html'
        assert index['blog/index'] == '/blog/index.html'


class TestImageRewriting:
    """Test cases for image rewriting."""

    def make_content_image(self, content_dir, rel_path, size=(40, 20)):
        path = os.path.join(content_dir, *rel_path.split('/'))
        os.makedirs(os.path.dirname(path), exist_ok=True)
        Image.new('RGB', size, color='green').save(path)
        return path

    def test_picture_replaces_img(self, temp_dir):
        source = self.make_content_image(temp_dir, 'images/cat.jpg')
        image_map = ImageMap()
        processor = PostProcessor(temp_dir, image_formats=('avif', 'webp'))

        html = processor.process('<img src="../images/cat.jpg" alt="A cat" class="wide">', 'blog/a.md',
                                 image_map=image_map)
        soup = BeautifulSoup(html, 'html.parser')

        picture = soup.picture
        assert picture['class'] == ['wide']
        sources = picture.find_all('source')
        assert [s['type'] for s in sources] == ['image/avif', 'image/webp']
        assert [s['srcset'] for s in sources] == ['/images/cat.avif', '/images/cat.webp']
        img = picture.img
        assert img['src'] == '/images/cat.jpg'
        assert img['alt'] == 'A cat'
        assert img['width'] == '40'
        assert img['height'] == '20'
        assert img['loading'] == 'lazy'

        entry = image_map.get(os.path.abspath(source))
        assert entry.sizes == {'full': '/images/cat.jpg', 'tiny': '/images/cat__tiny.jpg'}

    def test_one_entry_per_image(self, temp_dir):
        self.make_content_image(temp_dir, 'images/cat.jpg')
        image_map = ImageMap()
        processor = PostProcessor(temp_dir)

        processor.process('<img src="/images/cat.jpg">', 'a.md', image_map=image_map)
        processor.process('<img src="../images/cat.jpg"><img src="/images/cat.jpg">', 'blog/b.md',
                          image_map=image_map)

        assert len(image_map) == 1

    def test_excluded_and_external_images_untouched(self, temp_dir):
        html = PostProcessor(temp_dir).process(
            '<img class="cover" src="/x.jpg"><img src="https://cdn.example.com/y.jpg">', 'a.md',
            image_map=ImageMap())
        soup = BeautifulSoup(html, 'html.parser')

        assert soup.picture is None
        assert len(soup.find_all('img')) == 2

    def test_vector_images_untouched(self, temp_dir):
        image_map = ImageMap()
        html = PostProcessor(temp_dir).process('<img src="logo.svg" alt="Logo">', 'a.md', image_map=image_map)
        soup = BeautifulSoup(html, 'html.parser')

        assert soup.picture is None
        assert soup.img['src'] == 'logo.svg'
        assert len(image_map) == 0

    def test_blur_up(self, temp_dir):
        self.make_content_image(temp_dir, 'cat.png')
        html = PostProcessor(temp_dir, blur_up=True).process('<img src="cat.png">', 'a.md', image_map=ImageMap())
        img = BeautifulSoup(html, 'html.parser').img

        assert img['src'] == '/cat__tiny.png'
        assert img['data-lazy-src'] == '/cat.png'

    def test_missing_image_keeps_no_dimensions(self, temp_dir):
        html = PostProcessor(temp_dir).process('<img src="gone.png">', 'a.md', image_map=ImageMap())
        img = BeautifulSoup(html, 'html.parser').img

        assert img['src'] == '/gone.png'
        assert not img.has_attr('width')

    def test_custom_image_info(self, temp_dir):
        seen = []

        def image_info(path):
            seen.append(path)
            return (300, 200)

        html = PostProcessor(temp_dir, image_info=image_info).process('<img src="virtual.png">', 'a.md')
        img = BeautifulSoup(html, 'html.parser').img

        assert seen == [os.path.join(os.path.abspath(temp_dir), 'virtual.png')]
        assert img['width'] == '300'
        assert img['height'] == '200'


class TestCustomStages:
    """Test cases for custom post-processing stages."""

    def test_tree_and_string_stages(self, temp_dir):
        def mark_paragraphs(ctx):
            for p in ctx.tree.find_all('p'):
                p['class'] = 'marked'
            return ctx

        def add_comment(ctx):
            ctx.html += '<!-- done -->'
            return ctx

        processor = PostProcessor(temp_dir, plugins=[
            {'use': mark_paragraphs, 'priority': 10},
            {'use': add_comment, 'priority': -10},
        ])
        html = processor.process('<p>Hi</p>', 'a.md')

        assert '<p class="marked">Hi</p>' in html
        assert html.endswith('<!-- done -->')

    def test_failing_stage_is_wrapped(self, temp_dir):
        def explode(ctx):
            raise RuntimeError('bad tree')

        processor = PostProcessor(temp_dir, plugins=[{'use': explode, 'priority': 20, 'name': 'explode'}])

        with pytest.raises(ContentProcessingError, match='explode'):
            processor.process('<p>Hi</p>', 'a.md')
