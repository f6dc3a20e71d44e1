"""
Entry point for ethos-sim.

Run with:
    python main.py --help
    python main.py simulate published.json
"""
import sys
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent))

from src.cli.main import run

if __name__ == "__main__":
    run()
