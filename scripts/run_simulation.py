#!/usr/bin/env python
"""
UCN Simulation - Main Runner Script

Usage:
    python run_simulation.py
    python run_simulation.py -j 3 -s 12345 run -n 1000 --secondaries
    python run_simulation.py mr-angles --theta-i 30 --rms 1.5 --corr 20

Without arguments a default storage run is written below the project
directory (Data/, Figures/).
"""

from pathlib import Path
import sys

# Make the package importable when running from a source checkout
project_dir = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_dir))

from ucn_simulation.runner import run_full_simulation, main as runner_main


def main() -> int:
    """Script entry point"""
    if len(sys.argv) > 1:
        return runner_main()
    result = run_full_simulation(output_dir=project_dir)
    return 128 + int(result.signum) if result.aborted else 0


if __name__ == "__main__":
    sys.exit(main())
