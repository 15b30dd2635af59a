from __future__ import annotations

import os

import pytest


# Ensure tests run on CPU in CI-like environments even if accelerators are present.
os.environ.setdefault("JAX_PLATFORM_NAME", "cpu")

# -----------------------------------------------------------------------------
# Precision control
# -----------------------------------------------------------------------------
# The transform round-trip and steady-state tests compare against tolerances
# only reachable in double precision, so the suite defaults to 64-bit mode
# unless the user explicitly opts out.
#
# Users may select precision by exporting either variable before running pytest:
#   - SPECTRAL_DYCORE_ENABLE_X64=0/1 (package-specific convenience)
#   - JAX_ENABLE_X64=0/1             (canonical JAX environment variable)
#
# We mirror the chosen value into the other variable so that:
#   (a) JAX reads the desired mode at import time
#   (b) spectral_dycore's import-time config logic does not override the user's choice
if "SPECTRAL_DYCORE_ENABLE_X64" in os.environ and "JAX_ENABLE_X64" not in os.environ:
    os.environ["JAX_ENABLE_X64"] = os.environ["SPECTRAL_DYCORE_ENABLE_X64"]
elif "JAX_ENABLE_X64" in os.environ and "SPECTRAL_DYCORE_ENABLE_X64" not in os.environ:
    os.environ["SPECTRAL_DYCORE_ENABLE_X64"] = os.environ["JAX_ENABLE_X64"]
else:
    os.environ.setdefault("SPECTRAL_DYCORE_ENABLE_X64", "1")
    os.environ.setdefault("JAX_ENABLE_X64", "1")


# Avoid aggressive preallocation in constrained CI runners.
os.environ.setdefault("XLA_PYTHON_CLIENT_PREALLOCATE", "false")


@pytest.fixture(autouse=True)
def _reset_one_time_warnings():
    """`_warn_once` remembers messages per process; every test starts without that memory."""
    from spectral_dycore import forcing

    forcing._WARNED.clear()
    yield
