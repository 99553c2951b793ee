"""Test configuration and fixtures for Kiln tests."""

import pytest
import tempfile
import shutil
import os
from pathlib import Path
from PIL import Image

import sys
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    temp_dir = tempfile.mkdtemp()
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def mock_content_dir(temp_dir):
    """Create a content tree with a blog, a page, a draft and an image."""
    content_dir = Path(temp_dir) / 'content'
    posts_dir = content_dir / 'blog' / 'posts'
    posts_dir.mkdir(parents=True)
    (content_dir / 'images').mkdir()

    (content_dir / 'about.md').write_text("""---
title: About
---

# About Page

See [the first post](blog/posts/first.md) and [mail me](mailto:me@example.com).
""")

    (posts_dir / 'first.md').write_text("""---
title: First Post
date: 2023-01-01
category: Tech
tags: [Python, web]
---

# First Post

Back to [the blog](../index.md).

![A red square](../../images/red.png)
""")

    (posts_dir / 'second.md').write_text("""---
title: Second Post
date: 2023-02-01
tags: [python]
---

Second post body with an [external link](https://example.com).
""")

    (posts_dir / 'secret.md').write_text("""---
title: Secret
date: 2023-03-01
draft: true
tags: [hidden]
---

Not ready yet.
""")

    img = Image.new('RGB', (64, 32), color='red')
    img.save(content_dir / 'images' / 'red.png', 'PNG')
    (content_dir / 'notes.txt').write_text('plain file')

    return str(content_dir)


@pytest.fixture
def mock_templates_dir(temp_dir):
    """Create a templates directory with a base layout."""
    templates_dir = Path(temp_dir) / 'templates'
    templates_dir.mkdir()

    (templates_dir / 'default.html').write_text("""{% block head %}<title>{{ metadata.title }}</title>{% endblock %}
{% block styles %}body { color: black; }{% endblock %}
{% block body %}<article>{{ content }}</article>{% endblock %}""")

    return str(templates_dir)


@pytest.fixture
def mock_static_dir(temp_dir):
    static_dir = Path(temp_dir) / 'static'
    (static_dir / 'css').mkdir(parents=True)
    (static_dir / 'css' / 'site.css').write_text("body {\n    color: red;\n}\n")
    (static_dir / 'app.js').write_text("function add(a, b) {\n    return a + b;\n}\n")
    return str(static_dir)


@pytest.fixture
def site_settings(temp_dir, mock_content_dir, mock_templates_dir, mock_static_dir):
    """Settings for a builder working entirely inside temp_dir."""
    return {
        'content': mock_content_dir,
        'templates': mock_templates_dir,
        'static': mock_static_dir,
        'build': os.path.join(temp_dir, 'build'),
        'public': os.path.join(temp_dir, 'public'),
        'image_formats': ['webp'],
        'workers': 4,
    }


@pytest.fixture
def make_image(temp_dir):
    """Write an RGB image of the given size and return its path."""
    def _make(name='photo.png', size=(100, 80), color='blue'):
        path = os.path.join(temp_dir, name)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        Image.new('RGB', size, color=color).save(path)
        return path
    return _make
