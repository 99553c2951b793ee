"""
Priority-ordered stage chains shared by the content processor and the
HTML post-processor.

A stage is a named callable with an integer priority. Stages run from the
highest priority to the lowest; stages with equal priority keep the order
in which they were declared (standard stages first, then custom ones).
"""

import importlib
import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional

from .errors import PluginConfigError

logger = logging.getLogger('Kiln.Pipeline')


@dataclass(frozen=True)
class Stage:
    name: str
    priority: int
    apply: Callable[[Any], Any]


def resolve_callable(use):
    """
    Turn a plugin 'use' value into a callable.

    Accepts a callable or an import path written as 'package.module:attr'.
    """
    if callable(use):
        return use
    if not isinstance(use, str) or ':' not in use:
        raise PluginConfigError(f"Plugin 'use' must be a callable or 'module:attr' path, got {use!r}")

    module_name, _, attr_path = use.partition(':')
    try:
        target = importlib.import_module(module_name)
        for attr in attr_path.split('.'):
            target = getattr(target, attr)
    except (ImportError, AttributeError) as e:
        raise PluginConfigError(f"Cannot import plugin {use!r}: {e}") from e

    if not callable(target):
        raise PluginConfigError(f"Plugin {use!r} is not callable")
    return target


def to_stage(definition) -> Stage:
    """Validate one plugin definition and return it as a Stage."""
    if isinstance(definition, Stage):
        return definition
    if not isinstance(definition, dict):
        raise PluginConfigError(f"Plugin definition must be a mapping, got {type(definition).__name__}")

    if 'priority' not in definition:
        raise PluginConfigError(f"Plugin {definition.get('use')!r} has no priority")
    priority = definition['priority']
    if isinstance(priority, bool) or not isinstance(priority, int):
        raise PluginConfigError(f"Plugin {definition.get('use')!r} has a non-integer priority: {priority!r}")

    apply = resolve_callable(definition.get('use'))
    name = definition.get('name') or getattr(apply, '__name__', repr(apply))
    return Stage(name=name, priority=priority, apply=apply)


def build_stages(standard: Iterable[Stage], custom: Optional[Iterable[Any]] = None) -> List[Stage]:
    """
    Merge standard stages with custom plugin definitions.

    Invalid custom definitions are dropped with a warning so that pipeline
    construction always succeeds.
    """
    stages = list(standard)
    for definition in custom or []:
        try:
            stages.append(to_stage(definition))
        except PluginConfigError as e:
            logger.warning(f"Ignoring plugin: {e}")

    # sorted() is stable, so equal priorities keep declaration order
    return sorted(stages, key=lambda stage: -stage.priority)


class StagePipeline:
    """Runs a context object through an ordered list of stages."""

    def __init__(self, standard, custom=None):
        self.stages = build_stages(standard, custom)

    @property
    def stage_names(self):
        return [stage.name for stage in self.stages]

    def run(self, ctx, on_stage=None):
        """
        Apply every stage to ctx and return the final context.

        on_stage, if given, is called with each stage before it runs; it lets
        callers report which stage was active when an error happened.
        """
        for stage in self.stages:
            if on_stage:
                on_stage(stage)
            result = stage.apply(ctx)
            if result is not None:
                ctx = result
        return ctx
