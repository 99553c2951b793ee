"""Tests for the image transform cache."""

import os
import time
import pytest
from unittest.mock import patch
from PIL import Image

from kiln_pkg import images
from kiln_pkg.images import (
    ImageMap,
    ImageTransformCache,
    copy_if_newer,
    get_image_info,
    is_newer,
    tiny_path,
)


def age(path, seconds):
    """Move a file's mtime into the past."""
    stamp = time.time() - seconds
    os.utime(path, (stamp, stamp))


class TestHelpers:
    """Test cases for image helpers."""

    def test_tiny_path(self):
        assert tiny_path('/images/cat.jpg') == '/images/cat__tiny.jpg'
        assert tiny_path('/images/cat') == '/images/cat__tiny'

    def test_get_image_info(self, make_image):
        assert get_image_info(make_image(size=(30, 12))) == (30, 12)

    def test_get_image_info_unreadable(self, temp_dir):
        path = os.path.join(temp_dir, 'fake.png')
        with open(path, 'w') as f:
            f.write('not an image')

        assert get_image_info(path) is None

    def test_is_newer(self, temp_dir):
        src = os.path.join(temp_dir, 'src.txt')
        dest = os.path.join(temp_dir, 'dest.txt')
        for path in (src, dest):
            with open(path, 'w') as f:
                f.write('x')

        age(src, 100)
        assert is_newer(dest, src)
        age(dest, 200)
        assert not is_newer(dest, src)
        assert not is_newer(os.path.join(temp_dir, 'missing'), src)
        assert is_newer(dest, os.path.join(temp_dir, 'missing'))

    def test_image_map_get_or_create(self):
        image_map = ImageMap()
        calls = []

        def factory():
            calls.append(1)
            return 'entry'

        assert image_map.get_or_create('a', factory) == 'entry'
        assert image_map.get_or_create('a', factory) == 'entry'
        assert len(calls) == 1


class TestImageTransformCache:
    """Test cases for ImageTransformCache."""

    def test_writes_bounded_and_tiny_variants(self, make_image, temp_dir):
        source = make_image('src/big.png', size=(400, 200))
        output = os.path.join(temp_dir, 'out', 'nested', 'big.png')
        cache = ImageTransformCache(max_size=(100, 100), tiny_size=(10, 10), formats=[])

        assert cache.ensure_variant(source, output)

        with Image.open(output) as img:
            assert img.size == (100, 50)
        with Image.open(tiny_path(output)) as img:
            assert img.size == (10, 5)
        assert cache.processed_count == 1

    def test_never_enlarges(self, make_image, temp_dir):
        source = make_image('small.png', size=(20, 10))
        output = os.path.join(temp_dir, 'out', 'small.png')

        ImageTransformCache(max_size=(2000, 1200), formats=[]).ensure_variant(source, output)

        with Image.open(output) as img:
            assert img.size == (20, 10)

    def test_newer_output_means_zero_writes(self, make_image, temp_dir):
        source = make_image('photo.png')
        output = os.path.join(temp_dir, 'out', 'photo.png')
        cache = ImageTransformCache(formats=[])
        age(source, 100)
        cache.ensure_variant(source, output)

        with patch('kiln_pkg.images._save') as save, patch('kiln_pkg.images.os.makedirs') as makedirs:
            assert cache.ensure_variant(source, output) is False

        save.assert_not_called()
        makedirs.assert_not_called()

    def test_changed_source_is_rewritten(self, make_image, temp_dir):
        source = make_image('photo.png', size=(50, 50))
        output = os.path.join(temp_dir, 'out', 'photo.png')
        cache = ImageTransformCache(formats=[])
        age(source, 100)
        cache.ensure_variant(source, output)
        age(output, 200)

        assert cache.ensure_variant(source, output)

    def test_failed_variant_does_not_block_the_other(self, make_image, temp_dir):
        source = make_image('photo.png')
        output = os.path.join(temp_dir, 'out', 'photo.png')
        cache = ImageTransformCache(formats=[])
        real_save = images._save

        def flaky_save(img, dest):
            if dest == output:
                raise OSError('disk full')
            real_save(img, dest)

        with patch('kiln_pkg.images._save', side_effect=flaky_save):
            assert cache.ensure_variant(source, output)

        assert not os.path.exists(output)
        assert os.path.exists(tiny_path(output))

    def test_unreadable_source_is_reported(self, temp_dir):
        source = os.path.join(temp_dir, 'broken.png')
        with open(source, 'w') as f:
            f.write('garbage')
        age(source, 100)

        cache = ImageTransformCache(formats=[])

        assert cache.ensure_variant(source, os.path.join(temp_dir, 'out', 'broken.png')) is False
        assert cache.processed_count == 0

    def test_transform_image_writes_alternates(self, make_image, temp_dir):
        source = make_image('photo.png')
        dest = os.path.join(temp_dir, 'out', 'photo.png')
        cache = ImageTransformCache(formats=['webp'])

        cache.transform_image(source, dest)

        assert os.path.exists(dest)
        assert os.path.exists(os.path.join(temp_dir, 'out', 'photo.webp'))

    def test_unsupported_format_is_dropped(self):
        assert ImageTransformCache(formats=['webp', 'nope']).formats == ['webp']


class TestCopyIfNewer:
    """Test cases for copy_if_newer()."""

    def test_copies_then_skips(self, temp_dir):
        source = os.path.join(temp_dir, 'notes.txt')
        dest = os.path.join(temp_dir, 'public', 'notes.txt')
        with open(source, 'w') as f:
            f.write('hello')
        age(source, 100)

        assert copy_if_newer(source, dest)
        assert open(dest).read() == 'hello'
        assert copy_if_newer(source, dest) is False
