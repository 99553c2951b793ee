"""
Publishing extras: sitemap, web manifest and static assets.
"""

import os
import json
import shutil
import logging

import csscompressor
import rjsmin

logger = logging.getLogger('Kiln.Publish')


def site_url_base(site_url):
    return str(site_url or '').strip().rstrip('/')


def generate_sitemap(output_paths, site_url, public_dir):
    """
    Write sitemap.txt with one absolute URL per output path.

    When public_dir already holds a robots.txt, a 'Sitemap:' line pointing
    at the new file is appended to it.

    Returns:
        Path of the written sitemap, or None without a site URL
    """
    base = site_url_base(site_url)
    if not base:
        logger.warning("Skipping sitemap: no site_url in site_metadata.")
        return None

    logger.info("Generating sitemap")
    urls = [f"{base}/{path.strip().lstrip('/')}" for path in output_paths if path and path.strip()]
    sitemap_path = os.path.join(public_dir, 'sitemap.txt')
    os.makedirs(public_dir, exist_ok=True)
    with open(sitemap_path, 'w', encoding='utf-8') as f:
        f.write('\n'.join(urls))

    robots_path = os.path.join(public_dir, 'robots.txt')
    if os.path.exists(robots_path):
        sitemap_line = f"Sitemap: {base}/sitemap.txt"
        with open(robots_path, 'r', encoding='utf-8') as f:
            robots = f.read()
        if sitemap_line not in robots:
            with open(robots_path, 'a', encoding='utf-8') as f:
                if robots and not robots.endswith('\n'):
                    f.write('\n')
                f.write(sitemap_line + '\n')
    return sitemap_path


MANIFEST_FIELDS = ('name', 'short_name', 'description', 'icons', 'theme_color', 'background_color', 'display')


def generate_manifest(site_metadata, public_dir):
    """Write site.webmanifest from the manifest fields of the site metadata."""
    logger.info("Generating web manifest")
    site_metadata = site_metadata or {}
    manifest = {key: site_metadata.get(key) for key in MANIFEST_FIELDS}
    manifest_path = os.path.join(public_dir, 'site.webmanifest')
    os.makedirs(public_dir, exist_ok=True)
    with open(manifest_path, 'w', encoding='utf-8') as f:
        json.dump(manifest, f)
    return manifest_path


def minify_file(path):
    """Minify a .css or .js file in place. Other files are left alone."""
    if path.endswith('.min.css') or path.endswith('.min.js'):
        return False
    if path.endswith('.css'):
        minifier = csscompressor.compress
    elif path.endswith('.js'):
        minifier = rjsmin.jsmin
    else:
        return False

    try:
        with open(path, 'r', encoding='utf-8') as f:
            content = f.read()
        with open(path, 'w', encoding='utf-8') as f:
            f.write(minifier(content))
        logger.debug(f"Minified {path}")
        return True
    except (IOError, OSError, PermissionError, UnicodeDecodeError) as e:
        logger.error(f"Failed to minify {path}: {e}")
        return False


def copy_static(static_dir, public_static_dir, minify=False):
    """
    Replace public_static_dir with a fresh copy of static_dir.

    Returns:
        Number of files copied
    """
    if os.path.exists(public_static_dir):
        shutil.rmtree(public_static_dir)
    if not static_dir or not os.path.isdir(static_dir):
        logger.debug(f"No static directory at {static_dir}")
        return 0

    shutil.copytree(static_dir, public_static_dir)
    copied = 0
    for root, _, files in os.walk(public_static_dir):
        for name in files:
            copied += 1
            if minify:
                minify_file(os.path.join(root, name))
    logger.debug(f"Copied {copied} static files to {public_static_dir}")
    return copied


def list_content_files(root):
    """Every file under root, as absolute paths, in a stable order."""
    found = []
    for directory, dirs, files in os.walk(root):
        dirs.sort()
        for name in sorted(files):
            found.append(os.path.abspath(os.path.join(directory, name)))
    return found
