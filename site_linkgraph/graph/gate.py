"""
Invariant gate (pass 7): the last check before anything is written.

Recomputes inbound counts from scratch over every edge type (distinct
sources per target, self-links ignored) and rejects the build on any hard
invariant breach:

  under_linked      inbound below ``min_inbound``
  hub_cap           inbound above ``hub_cap``
  self_loop         a node links to itself
  duplicate_target  the same target twice in one node's combined link set
  unknown_target    a target that is not a catalog node
  invalid_slug      a node or target slug that is not URL-safe
  list_length       more recommendations / alternatives than a page shows
  diversity         a recommendation list over a category / band / brand cap
  inbound_mismatch  (audit only) stored inbound table disagrees with edges

Rendered sites must not ship an orphaned or mega-hub page, so a breach is
fatal: ``GraphInvariantError`` carries every violation and the sorted list
of affected slugs.  A large cluster of pages sharing one recommendation
sequence is only a warning.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import asdict, dataclass, field
from typing import Any, Iterable, Mapping, Optional

from site_linkgraph.catalog.attributes import is_valid_slug
from site_linkgraph.config import GraphConfig
from site_linkgraph.graph.diversity import DiversityCounter
from site_linkgraph.models.graph import GraphState, NodeLinks, NodeProfile

logger = logging.getLogger(__name__)

SIGNATURE_SEPARATOR = "|"


@dataclass(frozen=True)
class InvariantViolation:
    """One hard-invariant breach, attributed to the node that must change."""

    kind: str
    slug: str
    detail: str


class GraphInvariantError(RuntimeError):
    """Raised when the built (or audited) graph breaks a hard invariant.

    Attributes:
        violations: Every breach found, in catalog order.
        slugs:      Sorted unique slugs named by the violations.
    """

    def __init__(self, violations: Iterable[InvariantViolation]) -> None:
        self.violations = list(violations)
        self.slugs = sorted({v.slug for v in self.violations})
        kinds = Counter(v.kind for v in self.violations)
        summary = ", ".join(f"{kind}={count}" for kind, count in sorted(kinds.items()))
        super().__init__(
            f"Graph invariant gate failed: {len(self.violations)} violations "
            f"across {len(self.slugs)} nodes ({summary})"
        )


@dataclass
class GateReport:
    """Summary statistics of a graph that passed (or was audited by) the gate."""

    nodes: int = 0
    total_recommendations: int = 0
    total_alternatives: int = 0
    total_explore: int = 0
    max_inbound: int = 0
    average_inbound: float = 0.0
    under_linked: int = 0
    unique_signatures: int = 0
    largest_duplicate_cluster: int = 0
    diversity_pct: float = 0.0
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def inbound_from_links(links: Mapping[str, NodeLinks], slugs: Iterable[str]) -> dict[str, int]:
    """Distinct-source inbound count for every slug in ``slugs`` (order kept)."""
    counts = {slug: 0 for slug in slugs}
    for source, node in links.items():
        for target in set(node.targets()):
            if target != source and target in counts:
                counts[target] += 1
    return counts


def _structural_violations(
    links: Mapping[str, NodeLinks],
    known: set[str],
    profiles: Optional[Mapping[str, NodeProfile]],
    config: GraphConfig,
) -> list[InvariantViolation]:
    found: list[InvariantViolation] = []

    for source, node in links.items():
        if not is_valid_slug(source):
            found.append(InvariantViolation("invalid_slug", source, "node slug is not URL-safe"))

        if len(node.recommendations) > config.recs_per_page:
            found.append(InvariantViolation(
                "list_length", source,
                f"{len(node.recommendations)} recommendations (max {config.recs_per_page})",
            ))
        if len(node.alternatives) > config.alts_per_page:
            found.append(InvariantViolation(
                "list_length", source,
                f"{len(node.alternatives)} alternatives (max {config.alts_per_page})",
            ))

        combined = [*node.recommendations, *node.alternatives]
        if node.explore:
            combined.append(node.explore)

        for target, count in Counter(combined).items():
            if count > 1:
                found.append(InvariantViolation(
                    "duplicate_target", source, f"'{target}' linked {count} times",
                ))
            if target == source:
                found.append(InvariantViolation("self_loop", source, "links to itself"))
            elif target not in known:
                found.append(InvariantViolation(
                    "unknown_target", source, f"'{target}' is not a catalog node",
                ))
            elif not is_valid_slug(target):
                found.append(InvariantViolation(
                    "invalid_slug", source, f"target '{target}' is not URL-safe",
                ))

        if profiles is not None:
            counter = DiversityCounter.from_list(node.recommendations, profiles, config)
            for breach in counter.breaches():
                found.append(InvariantViolation("diversity", source, f"recommendations: {breach}"))

    return found


def _inbound_violations(inbound: Mapping[str, int], config: GraphConfig) -> list[InvariantViolation]:
    found: list[InvariantViolation] = []
    for slug, count in inbound.items():
        if count < config.min_inbound:
            found.append(InvariantViolation(
                "under_linked", slug, f"{count} inbound (min {config.min_inbound})",
            ))
        elif count > config.hub_cap:
            found.append(InvariantViolation(
                "hub_cap", slug, f"{count} inbound (cap {config.hub_cap})",
            ))
    return found


def _build_report(
    links: Mapping[str, NodeLinks],
    inbound: Mapping[str, int],
    config: GraphConfig,
) -> GateReport:
    n_nodes = len(inbound)
    signatures = Counter(SIGNATURE_SEPARATOR.join(node.recommendations) for node in links.values())
    largest = max(signatures.values(), default=0)

    report = GateReport(
        nodes=n_nodes,
        total_recommendations=sum(len(n.recommendations) for n in links.values()),
        total_alternatives=sum(len(n.alternatives) for n in links.values()),
        total_explore=sum(1 for n in links.values() if n.explore),
        max_inbound=max(inbound.values(), default=0),
        average_inbound=round(sum(inbound.values()) / n_nodes, 3) if n_nodes else 0.0,
        under_linked=sum(1 for c in inbound.values() if c < config.min_inbound),
        unique_signatures=len(signatures),
        largest_duplicate_cluster=largest,
        diversity_pct=round(len(signatures) / n_nodes * 100, 1) if n_nodes else 0.0,
    )

    if largest > config.duplicate_signature_warn:
        message = f"High duplication cluster: {largest} pages share the same recommendation set"
        report.warnings.append(message)
        logger.warning(message)
    return report


def _fail(violations: list[InvariantViolation]) -> GraphInvariantError:
    error = GraphInvariantError(violations)
    logger.error("%s", error)
    for violation in violations[:10]:
        logger.error("  %s [%s] %s", violation.slug, violation.kind, violation.detail)
    return error


def run_invariant_gate(state: GraphState, config: GraphConfig) -> GateReport:
    """Validate the fully built graph in ``state``.

    Args:
        state:  Build state after explore allocation.
        config: Graph section of ``AppConfig``.

    Returns:
        ``GateReport`` with final statistics.

    Raises:
        GraphInvariantError: If any hard invariant is broken.
    """
    inbound = inbound_from_links(state.links, state.items)
    violations = _structural_violations(state.links, set(state.items), state.profiles, config)
    violations += _inbound_violations(inbound, config)
    if violations:
        raise _fail(violations)

    report = _build_report(state.links, inbound, config)
    logger.info(
        "Invariant gate passed: %d nodes, %d recommendations, %d alternatives, "
        "%d explore, max inbound %d (cap %d), avg %.1f, diversity %.1f%%",
        report.nodes, report.total_recommendations, report.total_alternatives,
        report.total_explore, report.max_inbound, config.hub_cap,
        report.average_inbound, report.diversity_pct,
    )
    return report


def links_from_artifact(neighbors: Mapping[str, Mapping[str, Any]]) -> dict[str, NodeLinks]:
    """Rebuild ``NodeLinks`` from the ``neighbors.json`` mapping."""
    return {
        slug: NodeLinks(
            recommendations=list(entry.get("recommendations") or []),
            alternatives=list(entry.get("alternatives") or []),
            explore=entry.get("explore") or None,
        )
        for slug, entry in neighbors.items()
    }


def audit_neighbors(
    neighbors: Mapping[str, Mapping[str, Any]],
    inbound_counts: Optional[Mapping[str, int]],
    config: GraphConfig,
) -> GateReport:
    """Re-check already written artifacts without the catalog.

    Runs the structural and floor/cap checks (diversity needs item metadata
    and is skipped) and, when ``inbound_counts`` is given, verifies it
    matches the edges in ``neighbors``.

    Raises:
        GraphInvariantError: If any check fails.
    """
    links = links_from_artifact(neighbors)
    inbound = inbound_from_links(links, links)

    violations = _structural_violations(links, set(links), None, config)
    violations += _inbound_violations(inbound, config)

    if inbound_counts is not None:
        for slug in sorted(set(inbound_counts) | set(inbound)):
            stored = inbound_counts.get(slug)
            actual = inbound.get(slug)
            if stored != actual:
                violations.append(InvariantViolation(
                    "inbound_mismatch", slug, f"stored {stored}, edges give {actual}",
                ))

    if violations:
        raise _fail(violations)

    report = _build_report(links, inbound, config)
    logger.info(
        "Audit passed: %d nodes, max inbound %d, avg %.1f",
        report.nodes, report.max_inbound, report.average_inbound,
    )
    return report
