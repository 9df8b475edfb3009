# src/crtdetsim/filters/accumulator.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence, Set, Tuple

from crtdetsim.geometry.crt import Family
from crtdetsim.physics.events import ChannelObservation

PartnerKey = Tuple[str, Optional[int], int]  # (region, stack_id, layer_id)

@dataclass
class FEBAccumulator:
    """
    Channel observations collected on one front-end board during a call.
    """
    mac5: int
    family: Family
    region: str
    stack_id: Optional[int] = None
    layer_ids: Set[int] = field(default_factory=set)
    chan_layer: Dict[int, Optional[int]] = field(default_factory=dict)
    data: List[ChannelObservation] = field(default_factory=list)
    mac_pair: Optional[Tuple[int, int]] = None

    def layer_of(self, channel: int) -> Optional[int]:
        return self.chan_layer.get(channel)

    def sort(self) -> None:
        # stable: equal ticks keep insertion order
        self.data.sort(key=lambda obs: obs.t0_tick)


class FEBAccumulatorMap:
    """
    Append-only MAC5 -> FEBAccumulator mapping.

    After finalize() the observations of every board are time ordered and a
    read-only (region, stack, layer) -> [mac5] index is available for the
    cross-board MINOS coincidence search.
    """

    def __init__(self) -> None:
        self._febs: Dict[int, FEBAccumulator] = {}
        self._partner_index: Dict[PartnerKey, List[int]] | None = None

    def __len__(self) -> int:
        return len(self._febs)

    def __iter__(self) -> Iterator[int]:
        return iter(sorted(self._febs))

    def __contains__(self, mac5: object) -> bool:
        return mac5 in self._febs

    def __getitem__(self, mac5: int) -> FEBAccumulator:
        return self._febs[mac5]

    def values(self) -> List[FEBAccumulator]:
        return [self._febs[m] for m in sorted(self._febs)]

    def add(
        self,
        mac5: int,
        family: Family,
        region: str,
        stack_id: Optional[int],
        layer_id: Optional[int],
        observations: Sequence[ChannelObservation],
    ) -> FEBAccumulator:
        assert self._partner_index is None, "FEBAccumulatorMap is finalized"
        feb = self._febs.get(mac5)
        if feb is None:
            feb = FEBAccumulator(mac5=mac5, family=family, region=region, stack_id=stack_id)
            self._febs[mac5] = feb
        else:
            assert (feb.family, feb.region, feb.stack_id) == (family, region, stack_id), (
                f"FEB {mac5} mixes modules: have ({feb.family}, {feb.region}, stack {feb.stack_id}), "
                f"got ({family}, {region}, stack {stack_id})"
            )
        if layer_id is not None:
            feb.layer_ids.add(layer_id)
        for obs in observations:
            feb.chan_layer[obs.channel] = layer_id
            feb.data.append(obs)
        return feb

    def finalize(self) -> Dict[PartnerKey, List[int]]:
        if self._partner_index is None:
            index: Dict[PartnerKey, List[int]] = {}
            for mac5 in sorted(self._febs):
                feb = self._febs[mac5]
                feb.sort()
                if feb.family != "minos":
                    continue
                for layer in sorted(feb.layer_ids):
                    index.setdefault((feb.region, feb.stack_id, layer), []).append(mac5)
            self._partner_index = index
        return self._partner_index

    def partner_candidates(self, feb: FEBAccumulator) -> List[int]:
        """
        MINOS boards in the same region and stack covering the opposite
        layer of any layer `feb` has seen, in MAC5 order.
        """
        index = self.finalize()
        found: Set[int] = set()
        for layer in feb.layer_ids:
            found.update(index.get((feb.region, feb.stack_id, 1 - layer), ()))
        found.discard(feb.mac5)
        return sorted(found)
