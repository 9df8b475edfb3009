import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
from pathlib import Path

from crtdetsim.io.feb_store import read_latched_adc

def save_adc_png(h5_path: str, out_png: str | None = None, group: str = "/feb", bins: int = 200):
    h5_path = str(h5_path)
    adc = read_latched_adc(h5_path, group=group)

    if out_png is None:
        out_png = str(Path(h5_path).with_suffix(".png"))

    plt.figure()
    if adc.size:
        plt.hist(adc.astype(np.int32), bins=bins, histtype="step")
    plt.xlabel("ADC")
    plt.ylabel("latched channels")
    plt.title(Path(h5_path).name + " : " + group + "/latched/adc")
    plt.tight_layout()
    plt.savefig(out_png, dpi=150)
    plt.close()
    return out_png
