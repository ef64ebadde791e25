"""
Transitive include dependency graph.

For every source the builder computes the closure of headers it depends on
through include directives. Headers are memoized: each header's own closure
is computed once and shared by every file that includes it.

Include graphs may contain cycles (two headers including each other, usually
behind include guards). Headers are grouped into strongly connected
components with an iterative Tarjan traversal; every header in a component
shares one closure, which contains the whole component. Traversal state is an
explicit visited map keyed by normalized path, so termination never depends
on recursion depth.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator

from .include_resolver import IncludeResolver
from .models import IncludeEdge, SourceFile, UnresolvedInclude
from .source_scanner import normalize_path

logger = logging.getLogger(__name__)


@dataclass
class DependencyGraph:
    """Include graph of one build invocation.

    Attributes:
        direct: Direct includes of every scanned file (file -> headers)
        closures: Header closure of every source
        unresolved: Unresolved include diagnostics, in scan order
    """

    direct: dict[Path, tuple[Path, ...]] = field(default_factory=dict)
    closures: dict[Path, frozenset[Path]] = field(default_factory=dict)
    unresolved: list[UnresolvedInclude] = field(default_factory=list)

    def closure(self, source: Path) -> frozenset[Path]:
        return self.closures.get(normalize_path(source), frozenset())

    @property
    def edges(self) -> Iterator[IncludeEdge]:
        for including, headers in self.direct.items():
            for header in headers:
                yield IncludeEdge(including=including, header=header)

    @property
    def headers(self) -> frozenset[Path]:
        """Every header reachable from any source."""
        reachable: set[Path] = set()
        for closure in self.closures.values():
            reachable.update(closure)
        return frozenset(reachable)

    def dependents_of(self, header: Path) -> list[Path]:
        """Sources whose closure contains ``header``."""
        header = normalize_path(header)
        return sorted(source for source, closure in self.closures.items() if header in closure)


class DependencyGraphBuilder:
    """Builds DependencyGraph instances, memoizing per-file work."""

    def __init__(self, resolver: IncludeResolver):
        self.resolver = resolver
        self._direct: dict[Path, tuple[Path, ...]] = {}
        self._unresolved: list[UnresolvedInclude] = []
        self._component_of: dict[Path, int] = {}
        self._component_closures: list[frozenset[Path]] = []

    def build(self, sources: Iterable[SourceFile]) -> DependencyGraph:
        """Compute the header closure of every source."""
        source_paths = [normalize_path(source.path) for source in sources]
        graph = DependencyGraph()

        for source in source_paths:
            headers = self.direct_includes(source)
            closure: set[Path] = set()
            for header in headers:
                closure.add(header)
                closure.update(self.header_closure(header))
            graph.closures[source] = frozenset(closure)

        graph.direct = dict(self._direct)
        graph.unresolved = list(self._unresolved)

        logger.debug(f"Dependency graph: {len(graph.closures)} sources, {len(self._component_of)} headers, {len(graph.unresolved)} unresolved includes")
        return graph

    def direct_includes(self, path: Path) -> tuple[Path, ...]:
        """Resolved direct includes of ``path`` (deduplicated, in directive order)."""
        path = normalize_path(path)
        cached = self._direct.get(path)
        if cached is not None:
            return cached

        resolved = self.resolver.resolve_file(path)
        headers = tuple(dict.fromkeys(resolved.headers))
        self._direct[path] = headers
        self._unresolved.extend(resolved.unresolved)
        return headers

    def header_closure(self, header: Path) -> frozenset[Path]:
        """Headers transitively included by ``header``.

        A header that is part of an include cycle appears in its own closure.
        """
        header = normalize_path(header)
        if header not in self._component_of:
            self._compute_components(header)
        return self._component_closures[self._component_of[header]]

    def _compute_components(self, root: Path) -> None:
        """Assign components and closures to every header reachable from ``root``.

        Tarjan emits a component only after every component reachable from it,
        so successor closures are always available when a component is closed.
        """
        index: dict[Path, int] = {}
        lowlink: dict[Path, int] = {}
        stack: list[Path] = []
        on_stack: set[Path] = set()

        def visit(node: Path) -> None:
            index[node] = lowlink[node] = len(index)
            stack.append(node)
            on_stack.add(node)

        visit(root)
        work: list[tuple[Path, Iterator[Path]]] = [(root, iter(self.direct_includes(root)))]

        while work:
            node, children = work[-1]
            descended = False
            for child in children:
                if child in self._component_of:
                    continue
                if child not in index:
                    visit(child)
                    work.append((child, iter(self.direct_includes(child))))
                    descended = True
                    break
                if child in on_stack:
                    lowlink[node] = min(lowlink[node], index[child])
            if descended:
                continue

            work.pop()
            if work:
                parent = work[-1][0]
                lowlink[parent] = min(lowlink[parent], lowlink[node])

            if lowlink[node] == index[node]:
                component: list[Path] = []
                while True:
                    member = stack.pop()
                    on_stack.discard(member)
                    component.append(member)
                    if member == node:
                        break
                self._close_component(component)

    def _close_component(self, component: list[Path]) -> None:
        component_id = len(self._component_closures)
        for member in component:
            self._component_of[member] = component_id

        closure: set[Path] = set()
        for member in component:
            for header in self._direct[member]:
                closure.add(header)
                successor = self._component_of[header]
                if successor != component_id:
                    closure.update(self._component_closures[successor])
        self._component_closures.append(frozenset(closure))
