"""
Content bundler: finds the entry files of the content tree and fingerprints them.

Each entry's output file name carries an md5 digest of its bytes, so a
changed file gets a new compiled id and the node model treats it as
changed. Digests are cached between builds and reused while a file's
mtime and size stay the same.
"""

import os
import glob
import hashlib
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .errors import BundleError
from .paths import to_posix

logger = logging.getLogger('Kiln.Bundler')


@dataclass
class BundleEntry:
    id: str
    output_file: str
    is_entry: bool = True


@dataclass
class ModuleHandle:
    source_path: str
    kind: str


@dataclass
class BundleResult:
    entries: List[BundleEntry] = field(default_factory=list)
    cache: Dict[str, Tuple[int, int, str]] = field(default_factory=dict)
    registry: Dict[str, ModuleHandle] = field(default_factory=dict)


def file_digest(path) -> str:
    md5 = hashlib.md5()
    with open(path, 'rb') as f:
        for chunk in iter(lambda: f.read(65536), b''):
            md5.update(chunk)
    return md5.hexdigest()


def fingerprint_name(path, digest) -> str:
    """content/blog/a.md + digest -> a-<digest[:8]>.md"""
    stem, ext = os.path.splitext(os.path.basename(path))
    return f"{stem}-{digest[:8]}{ext}"


class ContentBundler:
    def __init__(self, content_dir):
        self.content_dir = os.path.abspath(str(content_dir))

    def find_entries(self, entry_globs) -> List[str]:
        found = set()
        for pattern in entry_globs:
            for path in glob.glob(os.path.join(self.content_dir, pattern), recursive=True):
                if os.path.isfile(path):
                    found.add(os.path.abspath(path))
        return sorted(found)

    def bundle(self, entry_globs, cache: Optional[Dict[str, Tuple[int, int, str]]] = None) -> BundleResult:
        """
        Fingerprint every file matching entry_globs under the content directory.

        Args:
            entry_globs: Glob patterns relative to the content directory
            cache: The cache returned by the previous bundle, if any

        Returns:
            BundleResult with one entry per file, the new cache and a registry
            of entry id to ModuleHandle

        Raises:
            BundleError: when no file matches
        """
        cache = cache or {}
        paths = self.find_entries(entry_globs)
        if not paths:
            raise BundleError(f"No content entries match {list(entry_globs)} in {self.content_dir}")

        result = BundleResult()
        reused = 0
        for path in paths:
            stat = os.stat(path)
            cached = cache.get(path)
            if cached and cached[0] == stat.st_mtime_ns and cached[1] == stat.st_size:
                digest = cached[2]
                reused += 1
            else:
                digest = file_digest(path)
            result.cache[path] = (stat.st_mtime_ns, stat.st_size, digest)
            result.entries.append(BundleEntry(id=path, output_file=fingerprint_name(path, digest)))

            kind = 'markdown' if path.lower().endswith(('.md', '.markdown')) else 'page'
            result.registry[path] = ModuleHandle(source_path=to_posix(path), kind=kind)

        logger.debug(f"Bundled {len(result.entries)} entries ({reused} digests reused)")
        return result
