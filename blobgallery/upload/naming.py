"""
Object name generation for uploaded files.
"""

import os
import time
import uuid
from typing import Callable

# 100 ns ticks, the resolution the gallery has always used in its names
_NS_PER_TICK = 100


def random_blob_name(filename: str, clock: Callable[[], int] = time.time_ns) -> str:
    """
    Generate a unique object name that keeps the file's extension.

    Format: ``{ticks}_{uuid4}{ext}``, e.g. ``17293458123456789_0c4e...-9f1a.png``.

    Args:
        filename: Original filename; only its extension is kept
        clock: Nanosecond clock, overridable in tests
    """
    ext = os.path.splitext(os.path.basename(filename or ""))[1]
    return f"{clock() // _NS_PER_TICK}_{uuid.uuid4()}{ext}"
