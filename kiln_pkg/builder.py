"""
Site builder: runs one build of the site and keeps the state that makes
the next build incremental.

Phases run one after another; the units of work inside a phase (one per
node or per file) run concurrently, and every unit is waited for before
the next phase starts:

    bundle -> reconcile -> import -> dynamic pages -> render -> publish
           -> referenced images -> content files -> static -> sitemap/manifest

A unit that fails is reported and its node dropped from the node model, so
the next build tries it again from scratch.
"""

import os
import copy
import logging

from .batch import settle
from .bundler import BundleResult, ContentBundler
from .dynamic import DynamicPageGenerator
from .errors import BundleError, KilnError, PluginConfigError
from .images import ImageMap, ImageTransformCache, copy_if_newer, is_image
from .nodes import NodeModel
from .paths import relative_to_root
from .pipeline import resolve_callable
from .postprocessor import PostProcessor, build_link_index
from .processor import ContentProcessor
from .publish import copy_static, generate_manifest, generate_sitemap, list_content_files
from .renderer import JinjaRenderer, generate_html_file_content
from .reporting import BuildReport
from .settings import KilnSettings


class SiteBuilder:
    """Builds the site described by a settings dict, one build per call to build()."""

    def __init__(self, settings=None, renderer=None, bundler=None):
        self.settings = dict(KilnSettings.DEFAULT_SETTINGS)
        self.settings.update(settings or {})
        self.logger = logging.getLogger('Kiln.Builder')

        self.content_dir = os.path.abspath(self.settings['content'])
        self.static_dir = os.path.abspath(self.settings['static']) if self.settings.get('static') else None
        self.build_dir = os.path.abspath(self.settings['build'])
        self.public_dir = os.path.abspath(self.settings['public'])
        self.site_metadata = dict(self.settings.get('site_metadata') or {})
        self.workers = self.settings.get('workers')

        self.processor = ContentProcessor(
            self.content_dir,
            plugins=self.settings.get('processing_plugins'),
            layouts=self.settings.get('layouts'),
        )
        self.image_cache = ImageTransformCache(
            max_size=self.settings.get('max_image_size') or (2000, 1200),
            tiny_size=self.settings.get('tiny_image_size') or (10, 10),
            formats=self.settings.get('image_formats'),
        )
        self.post_processor = PostProcessor(
            self.content_dir,
            plugins=self.settings.get('post_processing_plugins'),
            exclude_class=self.settings.get('image_exclude_class'),
            image_formats=self.image_cache.formats,
            blur_up=bool(self.settings.get('blur_up')),
        )
        self.renderer = renderer or JinjaRenderer(self.settings.get('templates'), self.content_dir)
        self.bundler = bundler or ContentBundler(self.content_dir)
        self.dynamic_pages = DynamicPageGenerator(self._hook('create_dynamic_pages'), self.settings)
        self.derive_props = self._hook('derive_props')

        # state carried from one build to the next
        self.model = NodeModel(self.build_dir, self.public_dir)
        self.image_map = ImageMap()
        self.bundle_cache = None
        self.previous_node_meta = None
        self.previous_site_metadata = None
        self.previous_templates = None
        # set when a generated page failed, so the next build generates it again
        self.regenerate_dynamic = False

    def _hook(self, key):
        use = self.settings.get(key)
        if not use:
            return None
        try:
            return resolve_callable(use)
        except PluginConfigError as e:
            self.logger.warning(f"Ignoring {key}: {e}")
            return None

    def _fail(self, report, node_id, error, phase):
        node = self.model.get(node_id)
        path = (node.source_path if node else None) or node_id
        self.logger.error(f"Error in {phase} of {path}: {error}")
        if node is not None and node.is_synthetic:
            self.regenerate_dynamic = True
        self.model.remove(node_id)
        report.fail(path, error)

    def build(self) -> BuildReport:
        """
        Run one build.

        Returns:
            The BuildReport of this build

        Raises:
            FileNotFoundError: if the content directory does not exist
        """
        if not os.path.isdir(self.content_dir):
            raise FileNotFoundError(f"Content directory {self.content_dir} does not exist")

        report = BuildReport()
        self.image_map.clear()
        self.image_cache.reset_count()

        with report.time_phase('bundle'):
            bundle = self.bundle_phase()
        with report.time_phase('reconcile'):
            report.reconciled = self.model.reconcile(bundle.entries)
        with report.time_phase('import'):
            self.import_phase(report)

        node_meta = self.model.node_meta()
        meta_unchanged = (self.previous_node_meta is not None and node_meta == self.previous_node_meta
                          and not self.regenerate_dynamic)
        site_unchanged = self.site_metadata == self.previous_site_metadata
        templates = self.template_fingerprint()
        templates_unchanged = templates == self.previous_templates
        global_unchanged = meta_unchanged and site_unchanged and templates_unchanged
        self.regenerate_dynamic = False

        if not templates_unchanged and self.previous_templates is not None:
            self.logger.debug("Templates changed, rendering every node again")
            self.model.invalidate_renders()

        with report.time_phase('dynamic'):
            if not meta_unchanged:
                self.dynamic_phase(node_meta)
                # links on every page may point at nodes that moved
                with self.model.lock:
                    for node in self.model.publishable_nodes():
                        node.needs_publish = True

        with report.time_phase('render'):
            self.render_phase(node_meta, global_unchanged, report)
        with report.time_phase('publish'):
            self.publish_phase(node_meta, report)
        with report.time_phase('images'):
            self.image_phase()
        with report.time_phase('content_files'):
            self.content_files_phase({entry.id for entry in bundle.entries})
        with report.time_phase('static'):
            self.static_phase()
        self.extras_phase()

        report.images_processed = self.image_cache.processed_count
        report.current = len([node for node in self.model.publishable_nodes()
                              if node.is_rendered and os.path.exists(self.model.public_path(node))])
        if bundle.cache:
            self.bundle_cache = bundle.cache
        self.previous_node_meta = node_meta
        self.previous_site_metadata = copy.deepcopy(self.site_metadata)
        self.previous_templates = templates

        report.finish(self.logger)
        return report

    def template_fingerprint(self):
        """Digests of every template the renderer can load, to detect template edits between builds."""
        fingerprint = getattr(self.renderer, 'fingerprint', None)
        return fingerprint() if fingerprint else None

    # Phases

    def bundle_phase(self) -> BundleResult:
        try:
            return self.bundler.bundle(self.settings['entry_globs'], cache=self.bundle_cache)
        except (BundleError, OSError) as e:
            self.logger.warning(f"Bundling produced no entries: {e}")
            return BundleResult()

    def import_node(self, node_id):
        node = self.model.get(node_id)
        if node is None:
            return None
        processed = self.processor.process(node.source_path)
        metadata = processed.metadata
        with self.model.lock:
            node.metadata = metadata
            node.rendered_fragment = processed.html
            node.output_path = metadata['output_path']
            node.rel_path = metadata['rel_path']
            node.template = metadata.get('component') or metadata.get('template')
            node.is_excluded = bool(metadata.get('draft')) and not self.settings.get('render_drafts')
            node.needs_publish = True
        if node.is_excluded:
            self.logger.debug(f"Excluding draft {node.source_path}")
        return node_id

    def import_phase(self, report):
        pending = [node.id for node in self.model.real_nodes() if not node.metadata]
        for result in settle(self.import_node, pending, self.workers):
            if not result.ok:
                self._fail(report, result.key, result.error, 'import')

    def dynamic_phase(self, node_meta):
        removed = self.model.remove_synthetic()
        try:
            pages = self.dynamic_pages.generate(node_meta.values())
        except Exception as e:
            self.logger.error(f"Error creating dynamic pages: {e}")
            pages = []

        taken = {entry.output_path for entry in node_meta.values()}
        for page in pages:
            if page.output_path in taken:
                self.logger.warning(f"Dynamic page {page.slug} clashes with an existing page, skipping it")
                continue
            taken.add(page.output_path)
            self.model.add_synthetic(page)
        self.logger.debug(f"Replaced {removed} dynamic pages with {len(pages)}")

    def build_props(self, node, node_meta):
        node_data = {'id': node.id, 'output_path': node.output_path, 'rel_path': node.rel_path}
        derived = {}
        if self.derive_props:
            derived = self.derive_props(node_meta, node_data) or {}
        props = {
            'node': node_data,
            'site': self.site_metadata,
            'metadata': node.metadata,
            'content': node.rendered_fragment,
        }
        props.update(derived)
        props.update(node.additional_props or {})
        return props

    def render_node(self, node_id, node_meta, global_unchanged) -> bool:
        """Render one node to the build directory. Returns True when a file was written."""
        node = self.model.get(node_id)
        if node is None or self.model.can_skip_props(node, global_unchanged):
            return False

        props = self.build_props(node, node_meta)
        if self.model.should_skip_render(node, props, global_unchanged):
            return False
        if not node.template:
            raise KilnError(f"No template for {node.id}")

        result = self.renderer.render(node.template, props)
        html = generate_html_file_content(result.head, result.css, result.html,
                                          minify=bool(self.settings.get('minify')))

        rendered_path = self.model.rendered_path(node)
        os.makedirs(os.path.dirname(rendered_path), exist_ok=True)
        with open(rendered_path, 'w', encoding='utf-8') as f:
            f.write(html)

        with self.model.lock:
            node.last_render_props = copy.deepcopy(props)
            node.is_rendered = True
            node.needs_publish = True
        self.logger.debug(f"Rendered {node.id} to {rendered_path}")
        return True

    def render_phase(self, node_meta, global_unchanged, report=None) -> int:
        """
        Render every publishable node that is not up to date.

        Returns:
            Number of rendered files written
        """
        report = report or BuildReport()
        node_ids = [node.id for node in self.model.publishable_nodes()]
        written = 0
        results = settle(lambda node_id: self.render_node(node_id, node_meta, global_unchanged),
                         node_ids, self.workers)
        for result in results:
            if not result.ok:
                self._fail(report, result.key, result.error, 'render')
            elif result.value:
                written += 1
        return written

    def publish_node(self, node_id, node_meta, link_index) -> bool:
        node = self.model.get(node_id)
        if node is None:
            return False
        rendered_path = self.model.rendered_path(node)
        with open(rendered_path, 'r', encoding='utf-8') as f:
            html = f.read()

        html = self.post_processor.process(html, node.rel_path, node_meta, self.image_map, link_index)

        public_path = self.model.public_path(node)
        os.makedirs(os.path.dirname(public_path), exist_ok=True)
        with open(public_path, 'w', encoding='utf-8') as f:
            f.write(html)
        with self.model.lock:
            node.needs_publish = False
        return True

    def publish_phase(self, node_meta, report) -> int:
        link_index = build_link_index(node_meta)
        node_ids = [
            node.id for node in self.model.publishable_nodes()
            if node.is_rendered and (node.needs_publish or not os.path.exists(self.model.public_path(node)))
        ]
        results = settle(lambda node_id: self.publish_node(node_id, node_meta, link_index), node_ids, self.workers)
        for result in results:
            if not result.ok:
                self._fail(report, result.key, result.error, 'publish')
            elif result.value:
                report.add_published()
        return report.published

    def public_file_path(self, rel_path):
        return os.path.join(self.public_dir, *rel_path.lstrip('/').split('/'))

    def image_phase(self):
        """Write the variants of every image the published pages reference."""
        def transform(item):
            source, entry = item
            if not os.path.isfile(source):
                self.logger.warning(f"Referenced image not found: {source}")
                return False
            dest = self.public_file_path(entry.src)
            if self.image_cache.transform_image(source, dest):
                return True
            if not os.path.exists(dest):
                # Pillow could not read it, publish the file as it is
                return copy_if_newer(source, dest)
            return False

        for result in settle(transform, self.image_map.items(), self.workers):
            if not result.ok:
                self.logger.error(f"Error writing image variants of {result.key[0]}: {result.error}")

    def content_files_phase(self, entry_ids):
        """Transform or copy the content files that are neither pages nor already handled images."""
        handled = set(entry_ids) | {source for source, _ in self.image_map.items()}
        files = [path for path in list_content_files(self.content_dir) if path not in handled]

        def publish_file(path):
            dest = self.public_file_path(relative_to_root(path, self.content_dir))
            if is_image(path):
                return self.image_cache.transform_image(path, dest)
            return copy_if_newer(path, dest)

        for result in settle(publish_file, files, self.workers):
            if not result.ok:
                self.logger.error(f"Error publishing content file {result.key}: {result.error}")

    def static_phase(self):
        try:
            copy_static(self.static_dir, os.path.join(self.public_dir, 'static'), bool(self.settings.get('minify')))
        except (IOError, OSError) as e:
            self.logger.error(f"Error copying static files: {e}")

    def extras_phase(self):
        try:
            if self.settings.get('generate_sitemap'):
                paths = [node.output_path for node in self.model.publishable_nodes() if node.is_rendered]
                generate_sitemap(sorted(paths), self.site_metadata.get('site_url'), self.public_dir)
            if self.settings.get('generate_manifest'):
                generate_manifest(self.site_metadata, self.public_dir)
        except (IOError, OSError) as e:
            self.logger.error(f"Error writing sitemap or manifest: {e}")
