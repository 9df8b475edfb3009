from __future__ import annotations

from pathlib import Path
from typing import Iterable, List, Optional
import typer

import numpy as np

from crtdetsim.config.load import load_config, snapshot_config_toml
from crtdetsim.config.schemas import Config, DetSimCfg
from crtdetsim.filters.accumulator import FEBAccumulatorMap
from crtdetsim.filters.diagnostics import DetSimCounters
from crtdetsim.filters.feb_trigger import FEBTrigger, TriggerSettings
from crtdetsim.geometry.clock import DetectorClock
from crtdetsim.geometry.crt import (
    ClassificationError,
    CRTGeometry,
    ModuleInfo,
    TabularGeometry,
    UnknownModuleError,
)
from crtdetsim.io.adapters import make_adapter
from crtdetsim.io.feb_store import write_init, write_feb_events, write_counters
from crtdetsim.physics.deposits import EnergyDeposit
from crtdetsim.physics.events import ChannelObservation, FEBEvent
from crtdetsim.physics.response import ResponseModel, StripResponse, assign_channels

OUT_OF_BOUNDS_TOL_CM = 0.001


class CRTDetSim:
    """
    CRT front-end simulation: energy deposits in, FEB events out.

    One instance owns one random stream (seeded once) and one detector
    clock; successive process() calls continue the same stream. The
    geometry is only read and may be shared between instances.
    """

    def __init__(
        self,
        geometry: CRTGeometry,
        cfg: DetSimCfg | None = None,
        *,
        clock: DetectorClock | None = None,
        seed: Optional[int] = None,
        flush_on_close: bool = False,
        diagnostics_level: int = 1,
    ):
        self.geometry = geometry
        self.cfg = cfg or DetSimCfg()
        self.clock = clock or DetectorClock()
        self.seed = seed if seed is not None else self.cfg.seed
        self.rng = np.random.default_rng(self.seed)
        self.flush_on_close = flush_on_close
        self.diagnostics_level = diagnostics_level
        self.counters = DetSimCounters()
        self._reported_modules: set[int] = set()

    @classmethod
    def from_config(cls, cfg: Config, geometry: CRTGeometry) -> "CRTDetSim":
        return cls(
            geometry,
            cfg.detsim,
            clock=DetectorClock(cfg.clock.frequency_mhz),
            seed=cfg.seed,
            flush_on_close=cfg.run.flush_on_close,
            diagnostics_level=2 if cfg.verbose else cfg.run.diagnostics_level,
        )

    @property
    def verbose(self) -> bool:
        return self.cfg.verbose or self.diagnostics_level >= 2

    def process(self, deposits: Iterable[EnergyDeposit]) -> List[FEBEvent]:
        """
        Simulate a finite stream of deposits and return the FEB events.

        Counters of this call are left on ``self.counters``.
        """
        self.counters = DetSimCounters()
        febs = FEBAccumulatorMap()
        response = ResponseModel(self.cfg, self.clock, self.rng, self.counters)

        for dep in deposits:
            self._simulate_deposit(dep, response, febs)

        trigger = FEBTrigger(
            febs,
            self.clock,
            TriggerSettings.from_cfg(self.cfg, flush_on_close=self.flush_on_close),
            self.counters,
            diagnostics_level=self.diagnostics_level,
        )
        events = trigger.run()

        if self.verbose:
            for line in self.counters.summary_lines():
                print(f"[detsim] {line}")
        elif self.diagnostics_level >= 1:
            print(f"[detsim] {len(events)} FEB events from {sum(self.counters.simulated.values())} deposits "
                  f"on {len(febs)} FEBs")
        return events

    # ------------------------------------------------------------------------

    def _classify(self, module_id: int) -> ModuleInfo | None:
        try:
            return self.geometry.classify(module_id)
        except ClassificationError as exc:
            reason, msg = "classification_error", str(exc)
        except UnknownModuleError as exc:
            reason, msg = "unknown_module", exc.args[0]
        self.counters.inc(reason)
        if module_id not in self._reported_modules:
            self._reported_modules.add(module_id)
            if self.diagnostics_level >= 1:
                print(f"[detsim] Skipping deposits on module {module_id}: {msg}")
        return None

    def _simulate_deposit(self, dep: EnergyDeposit, response: ResponseModel, febs: FEBAccumulatorMap) -> None:
        c = self.counters
        if dep.strip_id == 0:
            return  # legacy artifact of the upstream channel producer

        info = self._classify(dep.module_id)
        if info is None:
            return
        if dep.strip_id >= info.strip_count:
            c.inc("strip_out_of_range")
            if self.diagnostics_level >= 1:
                print(f"[detsim] strip {dep.strip_id} out of range for module {dep.module_id} "
                      f"({info.strip_count} strips), skipping")
            return

        fam = info.family
        layer, stack = self.geometry.placement(dep.module_id, dep.strip_id)
        if layer is None:
            c.inc("invalid_layer_id")
            if self.diagnostics_level >= 2:
                print(f"[detsim] layer id not set for module {dep.module_id} ({fam}, {info.region})")

        c.simulated[fam] += 1

        local = self.geometry.world_to_strip(dep.module_id, dep.strip_id, dep.centroid())
        if (abs(local[0]) > info.strip_half_width + OUT_OF_BOUNDS_TOL_CM
                or abs(local[1]) > info.strip_half_height + OUT_OF_BOUNDS_TOL_CM
                or abs(local[2]) > info.strip_half_length + OUT_OF_BOUNDS_TOL_CM):
            c.inc("geometry_out_of_bounds")
            if self.diagnostics_level >= 2:
                print(f"[detsim] hit point outside strip: module {dep.module_id} strip {dep.strip_id} "
                      f"local=({local[0]:.3f}, {local[1]:.3f}, {local[2]:.3f})")

        r = response.simulate(dep, info, local)
        self._discriminate(dep, info.family, info.region, stack, layer, r, febs)

    def _discriminate(self, dep, fam, region, stack, layer, r: StripResponse, febs: FEBAccumulatorMap) -> None:
        c = self.counters
        chans = assign_channels(fam, dep.module_id, dep.strip_id)
        thr = self.cfg.threshold(fam)

        if fam == "cern":
            above = r.q0 > thr and r.q1 > thr
            in_window = abs(r.t0 - r.t1) < self.cfg.strip_coincidence_window
            if above and in_window:
                febs.add(chans.mac5, fam, region, stack, layer, [
                    ChannelObservation(chans.channel0, r.t0, r.pps, r.q0),
                    ChannelObservation(chans.channel1, r.t1, r.pps, r.q1),
                ])
                c.surviving[fam] += 1
            if not above:
                c.miss_threshold[fam] += 1
            if not in_window:
                c.miss_strip_coincidence[fam] += 1

        elif fam == "dchooz":
            if r.q0 > thr:
                febs.add(chans.mac5, fam, region, stack, layer,
                         [ChannelObservation(chans.channel0, r.t0, r.pps, r.q0)])
                c.surviving[fam] += 1
            else:
                c.miss_threshold[fam] += 1

        else:
            near = r.q0 > thr
            far = r.q0_dual > thr
            if near:
                febs.add(chans.mac5, fam, region, stack, layer,
                         [ChannelObservation(chans.channel0, r.t0, r.pps, r.q0)])
                c.surviving[fam] += 1
            if far:
                febs.add(chans.dual_mac5, fam, region, stack, layer,
                         [ChannelObservation(chans.channel0, r.t0_dual, r.pps, r.q0_dual)])
                c.surviving[fam] += 1
            if not (near and far):
                c.miss_threshold[fam] += 1

        if self.diagnostics_level >= 2:
            print(f"[detsim] {fam} module {dep.module_id} strip {dep.strip_id} ({region}) "
                  f"mac5={chans.mac5} ch={chans.channel0} layer={layer} "
                  f"npe=({r.npe0}, {r.npe1}) q=({r.q0}, {r.q1}) t=({r.t0}, {r.t1})")


def run_pipeline(
    cfg_path: str,
    *,
    seed: Optional[int] = None,
    flush_on_close: Optional[bool] = None,
    verbose: Optional[bool] = None,
) -> Path:
    """
    Orchestrate a full run from a TOML config file.

    CLI flags (--seed/--flush/--no-flush/--verbose) override the
    corresponding config fields when not None.

    Returns
    -------
    Path to written HDF5 file.
    """
    cfg = load_config(cfg_path)
    if cfg.io is None:
        raise ValueError(f"{cfg_path}: an [io] section is required to run the pipeline")

    # ---- apply CLI overrides on top of TOML ----
    if seed is not None:
        cfg.run.seed = seed
        cfg.detsim.seed = None
    if flush_on_close is not None:
        cfg.run.flush_on_close = flush_on_close
    if verbose is not None:
        cfg.detsim.verbose = verbose

    diag_level = cfg.run.diagnostics_level
    if diag_level >= 1:
        print(f"[run] config = {cfg_path}")
        print(f"[run] input={cfg.io.input_path} geometry={cfg.io.geometry_path} -> output={cfg.io.output_path}")
        print(f"[run] seed={cfg.seed} flush_on_close={cfg.run.flush_on_close}")

    geometry = TabularGeometry.from_file(cfg.io.geometry_path)
    adapter = make_adapter(cfg.io)
    deposits = list(adapter.iter_deposits(cfg.io.input_path))
    if diag_level >= 1:
        print(f"[pipeline] Got {len(deposits)} deposits on {len(geometry.module_ids)} modules")

    sim = CRTDetSim.from_config(cfg, geometry)
    events = sim.process(deposits)

    out_path = Path(cfg.io.output_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    with write_init(str(out_path), snapshot_config_toml(cfg_path)) as f:
        write_feb_events(f, events)
        write_counters(f, sim.counters)

    if diag_level >= 1:
        print(f"[pipeline] Wrote {len(events)} FEB events to {out_path}")
    return out_path


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

app = typer.Typer(help="CRT front-end electronics simulation (crtdetsim.pipelines.core)")


@app.command()
def main(
    cfg_path: str = typer.Argument(
        ...,
        help="Path to TOML config file",
    ),
    seed: Optional[int] = typer.Option(
        None,
        "--seed",
        help="Override the random seed",
    ),
    flush: Optional[bool] = typer.Option(
        None,
        "--flush / --no-flush",
        help="Emit the last in-progress FEB event at end of stream; overrides [run].flush_on_close",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        help="Print the full counter summary",
    ),
):
    """
    Run the CRT detector simulation for a single config.
    """
    out_path = run_pipeline(
        cfg_path,
        seed=seed,
        flush_on_close=flush,
        verbose=verbose if verbose else None,
    )
    typer.echo(str(out_path))


if __name__ == "__main__":
    app()
