"""Cross-cutting utilities (lowest dependency layer).

    - Atomic I/O and YAML helpers (fs)
    - Unified logging (logging_config)

No module in utils/ may import from the block or codec layers.

Convenience imports:
    from gcam.utils import fs
    from gcam.utils.logging_config import setup_logging, push_context
"""

from . import fs
from . import logging_config

__all__ = ["fs", "logging_config"]
