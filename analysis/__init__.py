"""Analysis pipeline for Shoal.

Pipeline phases (in order):
  01_composition: closure, essential-zero exclusions, ALR coordinates
  02_block_model: logistic-normal block model per region (PyMC + nutpie)
  03_evaluation:  DIC, WAIC, grouped log-CPO variant comparison
  04_distance:    Aitchison distance series across regions

Shared infrastructure at root: run_context.py

Phase directories are not packages (their names start with digits), so a
meta-path finder maps ``analysis.<module>`` onto the file in its phase
directory: ``from analysis.block_data import X`` loads
``analysis/02_block_model/block_data.py`` as ``analysis.block_data``.
"""

from __future__ import annotations

import importlib.util
import sys
import types
from importlib.abc import MetaPathFinder
from importlib.machinery import ModuleSpec
from pathlib import Path

_ROOT = Path(__file__).resolve().parent

_MODULE_MAP: dict[str, str] = {
    "composition": "01_composition",
    "composition_data": "01_composition",
    "block_data": "02_block_model",
    "model_spec": "02_block_model",
    "block_model": "02_block_model",
    "evaluation": "03_evaluation",
    "evaluation_data": "03_evaluation",
    "distance": "04_distance",
    "distance_data": "04_distance",
}


class _PhaseModuleFinder(MetaPathFinder):
    """Resolve ``analysis.<name>`` to ``analysis/<phase>/<name>.py``."""

    def find_spec(
        self,
        fullname: str,
        path: object = None,
        target: types.ModuleType | None = None,
    ) -> ModuleSpec | None:
        package, _, name = fullname.partition(".")
        if package != "analysis" or name not in _MODULE_MAP:
            return None
        location = _ROOT / _MODULE_MAP[name] / f"{name}.py"
        return importlib.util.spec_from_file_location(fullname, location)


if not any(isinstance(f, _PhaseModuleFinder) for f in sys.meta_path):
    sys.meta_path.insert(0, _PhaseModuleFinder())
