# -*- coding: utf-8 -*-
"""Plotting utilities.

Inputs may be NumPy or JAX arrays; they are converted to NumPy on entry.
Every function returns the matplotlib Figure and saves it only when
``savemyfig`` is set. Grid fields with a level axis are plotted at the lowest
model level unless ``level`` is given. Without a display, matplotlib falls
back to the Agg backend.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Optional, Sequence

import numpy as np

import matplotlib
if os.getenv("DISPLAY", "") == "":
    matplotlib.use("Agg", force=True)

import matplotlib.pyplot as plt
from matplotlib import cm
import matplotlib.ticker as ticker
import imageio

_SECONDS_PER_UNIT = {"seconds": 1.0, "minutes": 60.0, "hours": 3600.0, "days": 86400.0}


def _to_numpy(x) -> np.ndarray:
    """Convert a NumPy/JAX array-like to NumPy without importing JAX."""
    return x if isinstance(x, np.ndarray) else np.asarray(x)


def _level(field: np.ndarray, level: Optional[int]) -> np.ndarray:
    if field.ndim == 3:
        return field[-1 if level is None else level]
    return field


def _convert_time(time_seconds: float, units: str) -> float:
    if units not in _SECONDS_PER_UNIT:
        raise ValueError(f"Cannot parse units. Acceptable units are: {', '.join(_SECONDS_PER_UNIT)}.")
    return float(time_seconds) / _SECONDS_PER_UNIT[units]


def _save(fig, savemyfig: bool, filename: Optional[str], custompath: Optional[str]) -> None:
    if not savemyfig:
        return
    if filename is None:
        raise ValueError("filename must be provided when savemyfig=True")
    outdir = Path(custompath) if custompath is not None else Path("plots")
    outdir.mkdir(parents=True, exist_ok=True)
    fig.savefig(outdir / filename, bbox_inches="tight", dpi=200)


def fmt(x, pos):
    """Scientific-notation formatter for axis and colorbar labels."""
    a, b = "{:.2e}".format(x).split("e")
    return r"${} \times 10^{{{}}}$".format(a, int(b))


def zonal_mean_plot(
    field,
    latd,
    time: float,
    units: str = "hours",
    level: Optional[int] = None,
    customtitle: Optional[str] = None,
    customxlabel: Optional[str] = None,
    savemyfig: bool = False,
    filename: Optional[str] = None,
    custompath: Optional[str] = None,
    color: Optional[str] = None,
    show: bool = False,
):
    """Zonal mean of a grid field against latitude; ``time`` in seconds."""
    field = _level(_to_numpy(field), level)
    latd = _to_numpy(latd)

    fig, ax = plt.subplots()
    ax.plot(np.mean(field, axis=1), latd, color=color)
    ax.set_xlabel("zonal mean" if customxlabel is None else customxlabel)
    ax.set_ylabel("latitude")
    ax.set_ylim(-90, 90)
    t = _convert_time(time, units)
    ax.set_title(f"Zonal mean at {t:.2f} {units}" if customtitle is None else customtitle)

    _save(fig, savemyfig, filename, custompath)
    if show:
        plt.show()
    return fig


def field_map_plot(
    field,
    lond,
    latd,
    time: float,
    units: str = "hours",
    level: Optional[int] = None,
    u=None,
    v=None,
    sparseness: int = 4,
    minlevel=None,
    maxlevel=None,
    customtitle: Optional[str] = None,
    label: str = "",
    savemyfig: bool = False,
    filename: Optional[str] = None,
    custompath: Optional[str] = None,
    colormap=None,
    show: bool = False,
):
    """Filled contours of a grid field on longitude-latitude axes, optionally with wind arrows."""
    field = _level(_to_numpy(field), level)
    lond = _to_numpy(lond)
    latd = _to_numpy(latd)

    if minlevel is None:
        minlevel = float(np.min(field))
    if maxlevel is None:
        maxlevel = float(np.max(field))
    if maxlevel <= minlevel:
        maxlevel = minlevel + 1.0
    levels = np.linspace(minlevel, maxlevel, num=11, endpoint=True)

    fig, ax = plt.subplots()
    contour = ax.contourf(lond, latd, field, levels=levels, cmap=cm.viridis if colormap is None else colormap)

    if u is not None and v is not None:
        u = _level(_to_numpy(u), level)
        v = _level(_to_numpy(v), level)
        ax.quiver(
            lond[::sparseness],
            latd[::sparseness],
            u[::sparseness, ::sparseness],
            v[::sparseness, ::sparseness],
            pivot="mid",
        )

    ax.set_xlabel("longitude")
    ax.set_ylabel("latitude")
    t = _convert_time(time, units)
    ax.set_title(f"{label} at {t:.2f} {units}".strip() if customtitle is None else customtitle)

    cbar = fig.colorbar(contour, ax=ax, format=ticker.FuncFormatter(fmt))
    cbar.set_label(label)

    _save(fig, savemyfig, filename, custompath)
    if show:
        plt.show()
    return fig


def spectrum_plot(
    coeffs,
    level: Optional[int] = None,
    customtitle: Optional[str] = None,
    savemyfig: bool = False,
    filename: Optional[str] = None,
    custompath: Optional[str] = None,
    show: bool = False,
):
    """Power per spherical-harmonic degree of a spectral field, log scale.

    ``coeffs`` is in the ``(mmax+1, lmax+2)`` layout; m > 0 coefficients
    count twice since they stand for a conjugate pair.
    """
    coeffs = _level(_to_numpy(coeffs), level)
    power = np.abs(coeffs) ** 2
    power[1:] *= 2.0
    per_degree = power[:, :-1].sum(axis=0)
    degrees = np.arange(per_degree.size)

    fig, ax = plt.subplots()
    ax.semilogy(degrees[1:], np.maximum(per_degree[1:], np.finfo(float).tiny))
    ax.set_xlabel("degree l")
    ax.set_ylabel("power")
    ax.set_title("Spectrum" if customtitle is None else customtitle)

    _save(fig, savemyfig, filename, custompath)
    if show:
        plt.show()
    return fig


def gif_helper(fig, dpi: int = 100):
    """Convert a figure canvas to an RGB image array for GIF generation."""
    fig.set_dpi(dpi)
    fig.canvas.draw()
    image = np.asarray(fig.canvas.buffer_rgba())
    return image[..., :3].copy()


def write_field_gif(
    fields,
    lond,
    latd,
    times: Sequence[float],
    filename: str,
    frms: int = 5,
    dpi: int = 100,
    units: str = "hours",
    level: Optional[int] = None,
    minlevel=None,
    maxlevel=None,
    label: str = "",
    custompath: Optional[str] = None,
    colormap=None,
):
    """Write a GIF of `field_map_plot` frames, one per entry of ``fields``."""
    fields = _to_numpy(fields)
    if minlevel is None:
        minlevel = float(np.min(fields))
    if maxlevel is None:
        maxlevel = float(np.max(fields))

    outpath = Path(custompath) if custompath is not None else Path(".")
    outpath.mkdir(parents=True, exist_ok=True)

    images = []
    for i in range(fields.shape[0]):
        fig = field_map_plot(
            fields[i],
            lond,
            latd,
            times[i],
            units=units,
            level=level,
            minlevel=minlevel,
            maxlevel=maxlevel,
            label=label,
            colormap=colormap,
        )
        images.append(gif_helper(fig, dpi=dpi))
        plt.close(fig)

    # pillow writes GIF frame durations in milliseconds
    imageio.mimsave(str(outpath / filename), images, duration=1000.0 / frms, loop=0)
    return outpath / filename
