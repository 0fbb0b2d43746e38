import sys
from pathlib import Path

# Ensure `tests.fakes` and the package import when running pytest from the repo root
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))
