"""
Module: notebook_ts.config

Purpose:
    Immutable kernel settings shared by the transpile session, the kernel
    adaptor and the CLI.

Key Classes:
    - KernelConfig: Settings for one kernel process
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


@dataclass(frozen=True)
class KernelConfig:
    """
    Configuration for a TypeScript kernel session.

    Attributes:
        working_dir: Directory for tsconfig.json lookup and module resolution
        tsc_path: Explicit tsc executable (default: node_modules/.bin, then PATH)
        interop_warning: Warn about imports while esModuleInterop is off; when
            False the default options also leave esModuleInterop off
        type_check: Run semantic checking unless a cell turns it off
        timeout: Seconds one compiler run may take
    """
    working_dir: Path = field(default_factory=lambda: Path(os.getcwd()))
    tsc_path: Optional[str] = None
    interop_warning: bool = True
    type_check: bool = True
    timeout: float = 60.0
