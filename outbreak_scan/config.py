"""
Configuration for the Space-Time Outbreak Scan
"""

import logging
import os
from typing import Optional
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


def _optional_int(value: Optional[str]) -> Optional[int]:
    if value is None or value.strip() == "":
        return None
    return int(value)


class ScanConfig:
    """Configuration for the scan statistic engine"""

    # ═══════════════════════════════════════════════════════════
    # Monte Carlo Replication
    # ═══════════════════════════════════════════════════════════
    DEFAULT_MCSIM = int(os.getenv("SCAN_DEFAULT_MCSIM", "0"))
    RANDOM_SEED: Optional[int] = _optional_int(os.getenv("SCAN_RANDOM_SEED"))

    # ═══════════════════════════════════════════════════════════
    # Parallel Execution
    # ═══════════════════════════════════════════════════════════
    WORKERS = int(os.getenv("SCAN_WORKERS", "1"))
    PARALLEL_BACKENDS = ("process", "thread")
    PARALLEL_BACKEND = os.getenv("SCAN_PARALLEL_BACKEND", "process").lower()

    # ═══════════════════════════════════════════════════════════
    # Significance Estimation
    # ═══════════════════════════════════════════════════════════
    GUMBEL_MIN_REPLICATES = int(os.getenv("SCAN_GUMBEL_MIN_REPLICATES", "2"))
    GUMBEL_METHODS = ("ML", "MoM")
    GUMBEL_METHOD = os.getenv("SCAN_GUMBEL_METHOD", "ML")

    # ═══════════════════════════════════════════════════════════
    # Logging
    # ═══════════════════════════════════════════════════════════
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    @classmethod
    def validate(cls) -> bool:
        """Validate configuration"""
        errors = []

        if cls.DEFAULT_MCSIM < 0:
            errors.append("SCAN_DEFAULT_MCSIM cannot be negative")

        if cls.WORKERS < 1:
            errors.append("SCAN_WORKERS must be at least 1")

        if cls.PARALLEL_BACKEND not in cls.PARALLEL_BACKENDS:
            errors.append("SCAN_PARALLEL_BACKEND must be 'process' or 'thread'")

        if cls.GUMBEL_METHOD not in cls.GUMBEL_METHODS:
            errors.append("SCAN_GUMBEL_METHOD must be 'ML' or 'MoM'")

        if cls.GUMBEL_MIN_REPLICATES < 2:
            errors.append("SCAN_GUMBEL_MIN_REPLICATES must be at least 2")

        if errors:
            for error in errors:
                logger.warning(f"Configuration Error: {error}")
            return False

        return True

    @classmethod
    def summary(cls) -> dict:
        """Return configuration summary"""
        return {
            "monte_carlo": {
                "default_mcsim": cls.DEFAULT_MCSIM,
                "random_seed": cls.RANDOM_SEED
            },
            "parallel": {
                "workers": cls.WORKERS,
                "backend": cls.PARALLEL_BACKEND
            },
            "significance": {
                "gumbel_min_replicates": cls.GUMBEL_MIN_REPLICATES,
                "gumbel_method": cls.GUMBEL_METHOD
            },
            "log_level": cls.LOG_LEVEL
        }


if __name__ == "__main__":
    import json
    print("Outbreak Scan Configuration")
    print("=" * 60)
    print(json.dumps(ScanConfig.summary(), indent=2))
    print("\nValidation:", "PASSED" if ScanConfig.validate() else "FAILED")
