"""
Run one batch job, e.g.

    python scripts/run_job.py --job joinStagingJob --process-date 20240115
"""

import sys
import os

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from batch.cli import main

if __name__ == "__main__":
    sys.exit(main())
