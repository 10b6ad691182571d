"""
Pytest configuration for the sales tests.

This file adds the project root to the Python path so that tests
can import the domain, repositories, services and api packages.
"""

import sys
from pathlib import Path

# Add the project root to the Python path
# so tests can import domain, repositories, etc.
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))
