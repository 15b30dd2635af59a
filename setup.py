#!/usr/bin/env python3
"""
setup.py

Packaging for a src/ layout:

  repo_root/
    setup.py
    README.md
    src/
      spectral_dycore/
        __init__.py
        ...

Notes
- Distribution name (pip install spectral-dycore) differs from the import name (import spectral_dycore).
- PyPI names are case-insensitive and normalize "_" to "-".
"""

from __future__ import annotations

import re
from pathlib import Path

from setuptools import find_packages, setup

ROOT = Path(__file__).resolve().parent


def _read_readme() -> str:
    readme = ROOT / "README.md"
    if readme.exists():
        return readme.read_text(encoding="utf-8")
    return "spectral-dycore: spectral dynamical core of a global atmosphere model in JAX."


def _read_version(default: str = "0.1.0") -> str:
    """
    Reads __version__ from src/spectral_dycore/_version.py without importing
    spectral_dycore (avoids importing JAX at build time).
    """
    version_file = ROOT / "src" / "spectral_dycore" / "_version.py"
    if not version_file.exists():
        return default

    text = version_file.read_text(encoding="utf-8")
    m = re.search(r"""__version__\s*=\s*["']([^"']+)["']""", text)
    return m.group(1) if m else default


setup(
    # What users will `pip install ...` (choose something unique on PyPI).
    name="spectral-dycore",
    version=_read_version(),
    description="Spectral transform dynamical core with semi-implicit leapfrog time stepping (JAX)",
    long_description=_read_readme(),
    long_description_content_type="text/markdown",
    # src/ layout
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    include_package_data=False,
    exclude_package_data={"": ["*.pyc", "*.pyo", "*.pyd", "__pycache__/*", ".DS_Store", "__MACOSX/*"]},
    python_requires=">=3.9",
    install_requires=[
        "numpy>=1.24",
        "scipy>=1.10",
        "matplotlib>=3.7",
        "imageio>=2.31",
        # Do NOT pin jaxlib here; let users choose CPU/GPU via JAX's recommended installs.
        "jax>=0.4,<1.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7",
            "build>=1.2",
            "twine>=5",
        ],
    },
    entry_points={
        "console_scripts": [
            # provides `spectral-dycore` command -> runs the argparse CLI in main_function.py
            "spectral-dycore=spectral_dycore.main_function:cli_main",
        ]
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3 :: Only",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: 3.13",
        "Intended Audience :: Science/Research",
        "Operating System :: OS Independent",
    ],
)
