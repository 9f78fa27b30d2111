"""
viz.py
======
Static true-colour quicklooks of composites, rendered with matplotlib.

The stretch mirrors the usual surface-reflectance display: red/green/blue
from SR_B4/SR_B3/SR_B2, reflectance 0.0-0.3, gamma 1.4.  Invalid pixels
are fully transparent.
"""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

import numpy as np
import matplotlib
matplotlib.use("Agg")  # non-interactive backend safe for headless execution
import matplotlib.pyplot as plt
from matplotlib.figure import Figure

from shared.python.exceptions import OutputWriteError

from epoch_composite.composite import Composite

TRUE_COLOR_BANDS = ("SR_B4", "SR_B3", "SR_B2")
VIS_MIN = 0.0
VIS_MAX = 0.3
VIS_GAMMA = 1.4


def true_color_rgba(
    composite: Composite,
    bands: Sequence[str] = TRUE_COLOR_BANDS,
    vmin: float = VIS_MIN,
    vmax: float = VIS_MAX,
    gamma: float = VIS_GAMMA,
) -> np.ndarray:
    """Return an ``(H, W, 4)`` float RGBA image in [0, 1].

    Raises:
        BandNotFoundError: If any of *bands* is missing.
    """
    rgb = np.stack([composite.band(b) for b in bands], axis=-1).astype(np.float32)
    valid = ~np.isnan(rgb).any(axis=-1)

    scaled = np.clip((np.nan_to_num(rgb, nan=vmin) - vmin) / (vmax - vmin), 0.0, 1.0)
    scaled = scaled ** (1.0 / gamma)

    alpha = valid.astype(np.float32)[..., np.newaxis]
    return np.concatenate([scaled, alpha], axis=-1)


def true_color_figure(composite: Composite, dpi: int = 120) -> Figure:
    """Build a titled matplotlib figure of the true-colour composite."""
    rgba = true_color_rgba(composite)
    h, w = rgba.shape[:2]
    fig, ax = plt.subplots(figsize=(max(w / dpi, 4.0), max(h / dpi, 4.0)), dpi=dpi)
    ax.imshow(rgba, interpolation="nearest")
    ax.set_title(
        f"{composite.label}  ({composite.scene_count} scenes, "
        f"{composite.valid_fraction:.0%} valid)",
        fontsize=10,
    )
    ax.set_axis_off()
    fig.tight_layout()
    return fig


def save_true_color_png(composite: Composite, path: Path | str, dpi: int = 120) -> Path:
    """Render and save a true-colour PNG quicklook.

    Raises:
        OutputWriteError: If the file cannot be written.
    """
    path = Path(path)
    fig = true_color_figure(composite, dpi=dpi)
    try:
        fig.savefig(path, dpi=dpi, bbox_inches="tight", transparent=True)
    except OSError as exc:
        raise OutputWriteError(str(path), str(exc)) from exc
    finally:
        plt.close(fig)
    return path
