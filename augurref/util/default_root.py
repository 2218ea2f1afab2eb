from __future__ import annotations

import os
from pathlib import Path
from typing import Optional


def resolve_root_path(*, override: Optional[Path]) -> Path:
    candidates = [
        override,
        os.environ.get("AUGUR_ROOT"),
        os.getcwd(),
    ]

    for candidate in candidates:
        if candidate is not None:
            return Path(candidate).expanduser().resolve()

    raise RuntimeError("unreachable: last candidate is always set")
