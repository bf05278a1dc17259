import sys
from pathlib import Path


# Make railway_adapter importable without installing the project.
RAILWAY_ADAPTER_DIR = Path(__file__).resolve().parents[1]
if str(RAILWAY_ADAPTER_DIR) not in sys.path:
    sys.path.insert(0, str(RAILWAY_ADAPTER_DIR))
