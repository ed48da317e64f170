"""Pytest configuration file for setting up test environment."""

import sys
from pathlib import Path

# Add the project root to Python path so tests can import rolestore and tests
project_dir = Path(__file__).parent.parent
sys.path.insert(0, str(project_dir))
