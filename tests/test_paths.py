"""Tests for path and identity resolution."""

import os
import pytest

from kiln_pkg.paths import resolve, resolve_href, strip_extension, swap_extension, front_matter_path


class TestResolve:
    """Test cases for resolve()."""

    def test_default_output_path(self, temp_dir):
        root = os.path.join(temp_dir, 'content')
        info = resolve(os.path.join(root, 'blog', 'My-Post.md'), root)

        assert info.rel_path == 'blog/My-Post.md'
        assert info.output_path == '/blog/my-post.html'
        assert info.file_name == 'My-Post'
        assert info.id == os.path.join(root, 'blog', 'My-Post.md')

    def test_resolve_is_deterministic(self, temp_dir):
        root = os.path.join(temp_dir, 'content')
        source = os.path.join(root, 'docs', 'guide.markdown')

        assert resolve(source, root).output_path == resolve(source, root).output_path

    def test_front_matter_path_override(self, temp_dir):
        root = os.path.join(temp_dir, 'content')
        info = resolve(os.path.join(root, 'deep', 'nested', 'file.md'), root, {'path': 'foo/bar'})

        assert info.output_path == '/foo/bar.html'

    def test_override_is_normalized(self, temp_dir):
        root = os.path.join(temp_dir, 'content')
        source = os.path.join(root, 'a.md')

        assert resolve(source, root, {'permalink': './Foo/Bar Baz.html'}).output_path == '/Foo/BarBaz.html'
        assert resolve(source, root, {'slug': '/about'}).output_path == '/about.html'

    def test_override_key_order(self):
        assert front_matter_path({'slug': 'b', 'permalink': 'a'}) == 'a'
        assert front_matter_path({'route': 'r'}) == 'r'
        assert front_matter_path(None) == ''

    def test_invalid_characters_stripped(self, temp_dir):
        root = os.path.join(temp_dir, 'content')
        info = resolve(os.path.join(root, 'hello world!.md'), root)

        assert info.rel_path == 'helloworld.md'
        assert info.output_path == '/helloworld.html'


class TestHelpers:
    """Test cases for the extension and href helpers."""

    def test_strip_extension(self):
        assert strip_extension('a/b.tar.gz') == 'a/b'
        assert strip_extension('a.b/c') == 'a.b/c'

    def test_swap_extension(self):
        assert swap_extension('a/b.md', '.html') == 'a/b.html'
        assert swap_extension('a/b', '.html') == 'a/b'

    def test_resolve_relative_href(self):
        assert resolve_href('../index.md', 'blog/posts/a.md') == 'blog/index.md'
        assert resolve_href('b.md', 'blog/posts/a.md') == 'blog/posts/b.md'

    def test_resolve_rooted_href(self):
        assert resolve_href('/about.md', 'blog/posts/a.md') == 'about.md'

    def test_resolve_href_never_leaves_root(self):
        assert resolve_href('../../../x.md', 'a.md') == 'x.md'
