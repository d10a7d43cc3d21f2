import os
import sys
from pathlib import Path

# Add src/ to sys.path for imports
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

# Embedding commands require a key; tests never reach the real API
os.environ.setdefault("OPENAI_API_KEY", "test-openai")
