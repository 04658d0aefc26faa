"""
Rescue engine (pass 5): lift under-linked nodes toward ``rescue_floor``.

Works on recommendation + alternative edges only and mutates recommendation
lists only.  For each under-linked target (worst first) the target's own
recommendation candidates act as donors:

  * donor list has room and the caps hold  → insert the target;
  * donor list is full                     → swap out the donor's pick with
    the highest inbound, provided that pick stays above ``rescue_floor`` and
    the caps still hold after the swap.

A target that reaches ``hub_cap`` is abandoned for the pass.  Rounds repeat
until nothing is under-linked, a round makes no progress, or
``max_rescue_rounds`` is reached.  Whatever remains is left to the explore
allocator.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from site_linkgraph.config import GraphConfig
from site_linkgraph.graph.diversity import diversity_ok
from site_linkgraph.models.graph import GraphState
from site_linkgraph.utils.hashing import fnv1a, pair_hash

logger = logging.getLogger(__name__)


@dataclass
class RescueReport:
    """Outcome of ``rescue_underlinked()``.

    Attributes:
        rounds:     Rounds actually run.
        insertions: Rescues that appended to a donor list with room.
        swaps:      Rescues that replaced an over-linked pick.
        abandoned:  Targets skipped because they reached the hub cap.
        remaining:  Slugs still below ``rescue_floor`` afterwards.
    """

    rounds: int = 0
    insertions: int = 0
    swaps: int = 0
    abandoned: list[str] = field(default_factory=list)
    remaining: list[str] = field(default_factory=list)

    @property
    def rescued(self) -> int:
        return self.insertions + self.swaps


class _RescueEngine:
    def __init__(self, state: GraphState, config: GraphConfig) -> None:
        self.state = state
        self.config = config
        self.parents = state.parents(include_explore=False)
        self.inbound = {slug: len(srcs) for slug, srcs in self.parents.items()}
        self.report = RescueReport()

    def under_linked(self) -> list[str]:
        floor = self.config.rescue_floor
        under = [slug for slug in self.state.items if self.inbound[slug] < floor]
        return sorted(under, key=lambda s: (self.inbound[s], fnv1a(s)))

    def donors_for(self, target: str) -> list[str]:
        pool = self.state.pools.get(target)
        if pool is None:
            return []
        positions: dict[str, int] = {}
        for pos, edge in enumerate(pool.recommendations):
            if edge.target != target:
                positions.setdefault(edge.target, pos)
        return sorted(positions, key=lambda d: (positions[d], pair_hash(d, target)))

    def try_rescue(self, donor: str, target: str) -> bool:
        if donor == target or donor not in self.state.links:
            return False
        node = self.state.links[donor]
        if node.links_to(target):
            return False
        if self.inbound[target] >= self.config.hub_cap:
            return False

        recs = node.recommendations
        profiles = self.state.profiles

        if len(recs) < self.config.recs_per_page:
            if not diversity_ok(recs, target, profiles, self.config):
                return False
            recs.append(target)
            self._link(donor, target)
            self.report.insertions += 1
            return True

        remove_idx = -1
        best_inbound = -1
        for i, current in enumerate(recs):
            if current == target:
                continue
            current_inbound = self.inbound.get(current, 0)
            if current_inbound <= self.config.rescue_floor:
                continue
            if not diversity_ok(recs[:i] + recs[i + 1:], target, profiles, self.config):
                continue
            if current_inbound > best_inbound:
                best_inbound = current_inbound
                remove_idx = i

        if remove_idx < 0:
            return False

        removed = recs[remove_idx]
        recs[remove_idx] = target
        self._link(donor, target)
        self.parents[removed].discard(donor)
        self.inbound[removed] -= 1
        self.report.swaps += 1
        logger.debug("Rescue swap on %s: %s -> %s", donor, removed, target)
        return True

    def _link(self, donor: str, target: str) -> None:
        self.parents[target].add(donor)
        self.inbound[target] += 1

    def run(self) -> RescueReport:
        floor = self.config.rescue_floor
        cap = self.config.hub_cap

        for round_no in range(1, self.config.max_rescue_rounds + 1):
            under = self.under_linked()
            if not under:
                break
            self.report.rounds = round_no
            logger.info("Rescue round %d: %d under-linked nodes", round_no, len(under))

            progress = 0
            for target in under:
                need = floor - self.inbound[target]
                if need <= 0:
                    continue
                if self.inbound[target] >= cap:
                    self._abandon(target)
                    continue

                added = 0
                for donor in self.donors_for(target):
                    if added >= need:
                        break
                    if self.try_rescue(donor, target):
                        added += 1
                        progress += 1
                        if self.inbound[target] >= cap:
                            self._abandon(target)
                            break

            if progress == 0:
                break

        self.report.remaining = self.under_linked()
        logger.info(
            "Rescue finished: %d rescued (%d inserted, %d swapped), %d still below %d",
            self.report.rescued, self.report.insertions, self.report.swaps,
            len(self.report.remaining), floor,
        )
        return self.report

    def _abandon(self, target: str) -> None:
        if target not in self.report.abandoned:
            self.report.abandoned.append(target)
            logger.info("Rescue abandoned '%s': reached hub cap %d", target, self.config.hub_cap)


def rescue_underlinked(state: GraphState, config: GraphConfig) -> RescueReport:
    """Run the multi-round rescue over ``state`` (mutates recommendations).

    Args:
        state:  Build state after alternative selection.
        config: Graph section of ``AppConfig``.

    Returns:
        ``RescueReport`` with per-type rescue counts and the leftovers.
    """
    return _RescueEngine(state, config).run()
