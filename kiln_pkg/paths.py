"""
Path and identity resolution for content files.

Every content file gets a stable id, a path relative to the content root,
a public output path and a base file name. Resolution is pure: the same
inputs always give the same output path, which the incremental build
relies on when it compares node metadata between builds.
"""

import os
import re
import posixpath
from dataclasses import dataclass
from typing import Any, Dict, Optional

# matches the final extension(s), including the dot, e.g. .html, .md, .tar.gz
REGEX_EXTENSION = re.compile(r'(\.[^./]+)+$')
# matches anything that is not alphanumeric, _, -, / or .
REGEX_INVALID_PATH_CHARS = re.compile(r'[^A-Za-z0-9_\-/.]')
# matches a leading / or ./
REGEX_CURR_DIR = re.compile(r'^\.?/')
# matches a leading ./ or ../
REGEX_REL_DIR = re.compile(r'^\.?\./')
# matches http://, https://, file://, //, etc.
REGEX_EXTERNAL_LINK = re.compile(r'^[A-Za-z0-9]*:?//')
# matches scheme-only links such as mailto: or tel:
REGEX_URI_SCHEME = re.compile(r'^[A-Za-z][A-Za-z0-9+.\-]*:')

FRONT_MATTER_PATH_KEYS = ('permalink', 'path', 'route', 'slug')


@dataclass(frozen=True)
class PathInfo:
    id: str
    rel_path: str
    output_path: str
    file_name: str


def strip_extension(path: str) -> str:
    """Remove the trailing extension(s) from a path."""
    return REGEX_EXTENSION.sub('', path)


def swap_extension(path: str, extension: str) -> str:
    """Replace the trailing extension(s) of a path, leaving extensionless paths alone."""
    if not REGEX_EXTENSION.search(path):
        return path
    return REGEX_EXTENSION.sub(extension, path)


def strip_invalid_chars(path: str) -> str:
    return REGEX_INVALID_PATH_CHARS.sub('', path)


def to_posix(path) -> str:
    return str(path).replace(os.sep, '/')


def relative_to_root(source_path, content_root) -> str:
    """Posix path of source_path relative to content_root."""
    rel = os.path.relpath(os.path.abspath(source_path), os.path.abspath(content_root))
    return to_posix(rel)


def front_matter_path(front_matter: Optional[Dict[str, Any]]) -> str:
    """Return the first custom path found in the front matter, or ''."""
    if not isinstance(front_matter, dict):
        return ''
    for key in FRONT_MATTER_PATH_KEYS:
        value = front_matter.get(key)
        if value:
            return str(value)
    return ''


def resolve(source_path, content_root, front_matter: Optional[Dict[str, Any]] = None) -> PathInfo:
    """
    Resolve the identity and output path of a content file.

    Args:
        source_path: Path of the content file
        content_root: Root directory of the content tree
        front_matter: Optional parsed front matter; permalink, path, route
            or slug override the output path

    Returns:
        PathInfo with id, rel_path, output_path and file_name
    """
    rel_path = strip_invalid_chars(relative_to_root(source_path, content_root))

    custom_path = front_matter_path(front_matter)
    if custom_path:
        output_base = strip_invalid_chars(strip_extension(REGEX_CURR_DIR.sub('', custom_path)))
    else:
        output_base = strip_extension(rel_path).lower()

    file_name = strip_extension(posixpath.basename(rel_path))

    return PathInfo(
        id=str(source_path),
        rel_path=rel_path,
        output_path=f"/{output_base}.html",
        file_name=file_name,
    )


def resolve_href(href: str, rel_path: str) -> str:
    """
    Resolve a local href against the directory of the node at rel_path.

    Hrefs starting with / are taken from the content root. The result has
    no leading slash, e.g. '../index.md' in 'blog/posts/a.md' gives 'blog/index.md'.
    """
    if href.startswith('/'):
        joined = href.lstrip('/')
    else:
        joined = posixpath.join(posixpath.dirname(rel_path), href)
    normalized = posixpath.normpath(joined)
    if normalized == '.':
        return ''
    # never climb above the content root
    while normalized.startswith('../'):
        normalized = normalized[3:]
    return '' if normalized == '..' else normalized
