from __future__ import annotations

import typer
from typing import Optional

from crtdetsim.vis.hdf import save_adc_png

app = typer.Typer(help="CRT detector-simulation visualization tools")

@app.command("h5-to-png")
def h5_to_png(
    h5_path: str = typer.Argument(..., help="Path to HDF5 file written by crtdetsim-run"),
    group: str = typer.Option("/feb", "--group", "-g", help="FEB event group"),
    out: Optional[str] = typer.Option(None, "--out", "-o", help="Output PNG path (defaults to file.png)"),
    bins: int = typer.Option(200, "--bins", help="Number of ADC histogram bins"),
):
    """Histogram the latched ADC values of an output file to a PNG."""
    out_png = save_adc_png(h5_path, out_png=out, group=group, bins=bins)
    typer.echo(f"Wrote {out_png}")

if __name__ == "__main__":
    app()
