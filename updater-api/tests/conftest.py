import sys
from pathlib import Path


# Ensure updater-api and the sibling railway adapter are importable in tests.
UPDATER_API_DIR = Path(__file__).resolve().parents[1]
RAILWAY_ADAPTER_DIR = UPDATER_API_DIR.parent / "railway-adapter"
for path in (UPDATER_API_DIR, RAILWAY_ADAPTER_DIR):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))
