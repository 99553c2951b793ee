"""
Node model: the pages of the site and their state across builds.

A node is created for every bundled content entry (a real node) and for
every generated page (a synthetic node). The model keeps them between
builds so that unchanged nodes can skip rendering and publishing.
"""

import os
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

logger = logging.getLogger('Kiln.NodeModel')


@dataclass
class NodeMetaEntry:
    """The part of a node other nodes may see: for links and generated pages."""
    metadata: Dict[str, Any]
    output_path: str
    rel_path: str


@dataclass
class ContentNode:
    id: str
    source_path: Optional[str] = None
    output_path: str = ''
    rel_path: str = ''
    is_synthetic: bool = False
    compiled_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    rendered_fragment: str = ''
    template: Optional[str] = None
    additional_props: Dict[str, Any] = field(default_factory=dict)
    is_rendered: bool = False
    last_render_props: Optional[Dict[str, Any]] = None
    needs_publish: bool = False
    # drafts stay known so they are not re-imported, but are never published
    is_excluded: bool = False


class NodeModel:
    """Owns the node map. Every mutation of the map holds the model's lock."""

    def __init__(self, build_dir, public_dir):
        self.build_dir = str(build_dir)
        self.public_dir = str(public_dir)
        self.nodes: Dict[str, ContentNode] = {}
        self.lock = threading.RLock()

    def rendered_path(self, node) -> str:
        return os.path.join(self.build_dir, 'rendered', node.output_path.lstrip('/'))

    def public_path(self, node) -> str:
        return os.path.join(self.public_dir, node.output_path.lstrip('/'))

    def get(self, node_id) -> Optional[ContentNode]:
        with self.lock:
            return self.nodes.get(node_id)

    def real_nodes(self):
        with self.lock:
            return [node for node in self.nodes.values() if not node.is_synthetic]

    def synthetic_nodes(self):
        with self.lock:
            return [node for node in self.nodes.values() if node.is_synthetic]

    def publishable_nodes(self):
        with self.lock:
            return [node for node in self.nodes.values() if not node.is_excluded and node.output_path]

    def reconcile(self, entries) -> Dict[str, int]:
        """
        Bring the real nodes in line with the bundled entries.

        Entries that vanished are removed with their artifacts. An entry
        whose compiled id changed is removed and created again; one whose
        compiled id is the same is left alone.

        Returns:
            Counts of added, changed, removed and unchanged nodes
        """
        counts = {'added': 0, 'changed': 0, 'removed': 0, 'unchanged': 0}
        entries = [entry for entry in entries if entry.is_entry]
        entry_ids = {entry.id for entry in entries}

        with self.lock:
            for node in self.real_nodes():
                if node.id not in entry_ids:
                    self.remove(node.id)
                    counts['removed'] += 1

            for entry in entries:
                existing = self.nodes.get(entry.id)
                if existing is not None and existing.compiled_id == entry.output_file:
                    counts['unchanged'] += 1
                    continue
                if existing is not None:
                    self.remove(entry.id)
                    counts['changed'] += 1
                else:
                    counts['added'] += 1
                self.nodes[entry.id] = ContentNode(
                    id=entry.id,
                    source_path=entry.id,
                    compiled_id=entry.output_file,
                    needs_publish=True,
                )

        logger.debug(f"Reconciled nodes: {counts}")
        return counts

    def remove(self, node_id) -> bool:
        """
        Drop a node and delete its rendered and published files.

        Artifacts are deleted best-effort: failures are logged and never
        raised. Returns False when the node was unknown.
        """
        with self.lock:
            node = self.nodes.get(node_id)
            if node is None:
                return False
            # anything still holding the node sees it as stale
            node.is_rendered = False
            node.last_render_props = None
            del self.nodes[node_id]

        if node.output_path:
            for path in (self.rendered_path(node), self.public_path(node)):
                try:
                    if os.path.exists(path):
                        os.remove(path)
                        logger.debug(f"Removed {path}")
                except (IOError, OSError, PermissionError) as e:
                    logger.error(f"Failed to remove {path}: {e}")
        return True

    def add_synthetic(self, page) -> ContentNode:
        node = ContentNode(
            id=page.id,
            output_path=page.output_path,
            rel_path=page.slug.lstrip('/') + '.html',
            is_synthetic=True,
            template=page.template,
            additional_props=page.props,
            metadata={'title': page.slug, 'template': page.template},
            needs_publish=True,
        )
        with self.lock:
            self.nodes[node.id] = node
        return node

    def remove_synthetic(self) -> int:
        removed = 0
        for node in self.synthetic_nodes():
            if self.remove(node.id):
                removed += 1
        return removed

    def invalidate_renders(self):
        """Forget the last render props of every node, so the next render phase writes them all."""
        with self.lock:
            for node in self.nodes.values():
                node.last_render_props = None

    def node_meta(self) -> Dict[str, NodeMetaEntry]:
        """Snapshot of the publishable real nodes, keyed by node id."""
        with self.lock:
            return {
                node.id: NodeMetaEntry(
                    metadata=dict(node.metadata),
                    output_path=node.output_path,
                    rel_path=node.rel_path,
                )
                for node in self.nodes.values()
                if not node.is_synthetic and not node.is_excluded and node.output_path
            }

    @staticmethod
    def can_skip_props(node, global_meta_unchanged) -> bool:
        """First tier: nothing global changed and the node is rendered, so its props need not be rebuilt."""
        return bool(node.is_rendered and global_meta_unchanged)

    @staticmethod
    def should_skip_render(node, new_props, global_meta_unchanged) -> bool:
        """
        True when the node's file on disk is still current.

        Either nothing global changed, or the node's own props are the same
        as for its last render.
        """
        if NodeModel.can_skip_props(node, global_meta_unchanged):
            return True
        return bool(node.is_rendered and new_props == node.last_render_props)
