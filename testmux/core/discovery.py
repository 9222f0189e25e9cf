"""Category resolution and the test-file environment contract.

Maps input paths onto the fixed set of category roots, asks the
discovery port for matching files, and publishes the build categories'
relative file names for the build tool's bundling step.
"""

import logging
import os
from collections.abc import MutableMapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from .errors import DiscoveryError
from .models import BuildConfig, CategoryKind, RunCategory
from .ports import DiscoveryPort

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CategoryDefinition:
    """Static description of a run category before discovery."""

    category_id: str
    kind: CategoryKind
    root: Path
    pattern: str
    command: tuple[str, ...]
    build: BuildConfig | None = None

    def owns(self, path: Path) -> bool:
        """True if path is the category root or lies beneath it."""
        root = self.root.resolve()
        candidate = path.resolve()
        return candidate == root or root in candidate.parents


class CategoryResolver:
    """Resolves input paths into RunCategory instances."""

    def __init__(
        self, definitions: Sequence[CategoryDefinition], discovery: DiscoveryPort
    ):
        ids = [definition.category_id for definition in definitions]
        if len(set(ids)) != len(ids):
            raise ValueError(f"duplicate category ids: {ids}")
        self.definitions = tuple(definitions)
        self.discovery = discovery

    def category_for(self, path: Path) -> CategoryDefinition:
        """Find the category whose root contains path.

        Raises:
            DiscoveryError: If no category root contains the path.
        """
        for definition in self.definitions:
            if definition.owns(path):
                return definition
        roots = ", ".join(str(d.root) for d in self.definitions)
        raise DiscoveryError(f"{path} is not under any test root ({roots})")

    def resolve(self, paths: Sequence[str | Path] | None = None) -> list[RunCategory]:
        """Build every category, with files selected by the input paths.

        Args:
            paths: Files or directories to run. Defaults to all category roots.

        Returns:
            One RunCategory per definition, in definition order. Categories
            no path selected have an empty file list.

        Raises:
            DiscoveryError: If any path lies outside every category root.
        """
        inputs = [Path(p) for p in paths] if paths else [d.root for d in self.definitions]

        selected: dict[str, list[Path]] = {d.category_id: [] for d in self.definitions}
        for path in inputs:
            definition = self.category_for(path)
            found = self.discovery.discover(path, definition.pattern)
            logger.debug(f"{path}: {len(found)} {definition.category_id} files")
            selected[definition.category_id].extend(found)

        categories = [
            RunCategory(
                category_id=d.category_id,
                kind=d.kind,
                root=d.root,
                files=tuple(selected[d.category_id]),
                command=d.command,
                build=d.build,
            )
            for d in self.definitions
        ]
        for category in categories:
            logger.info(f"Discovered {len(category.files)} {category.category_id} files")
        return categories


def relative_test_files(categories: Sequence[RunCategory]) -> list[str]:
    """Names of the build categories' files relative to their roots."""
    names: list[str] = []
    for category in categories:
        if category.kind is not CategoryKind.BUILD:
            continue
        root = category.root.resolve()
        for path in category.files:
            try:
                names.append(path.resolve().relative_to(root).as_posix())
            except ValueError:
                names.append(path.as_posix())
    return names


def publish_test_files(
    categories: Sequence[RunCategory],
    env_var: str,
    delimiter: str = ",",
    environ: MutableMapping[str, str] | None = None,
) -> str:
    """Publish the build categories' file list to one environment variable.

    Returns:
        The published value.
    """
    target = os.environ if environ is None else environ
    value = delimiter.join(relative_test_files(categories))
    target[env_var] = value
    logger.debug(f"{env_var}={value}")
    return value
