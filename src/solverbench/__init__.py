"""
solverbench - Benchmark harness for parallel game-tree solvers.

Run the experiment matrix one job at a time, record every outcome,
summarise scaling and robustness.
"""

from solverbench.capabilities import Capabilities, detect
from solverbench.parser import ParsedMetrics, parse

__version__ = "0.1.0"
__all__ = ["Capabilities", "ParsedMetrics", "__version__", "detect", "parse"]
