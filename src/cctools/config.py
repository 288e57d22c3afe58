"""
Configuration & Path Management
===============================
This module serves as the central registry for file paths and global constants.

Why is this file needed?
------------------------
1. Abstraction: It prevents hardcoded paths (e.g. "../logs/") scattered
   throughout the code.
2. Defaults: It holds the numeric defaults shared by the mesh interpolation,
   the sample validation and the harmonic drive lookup.

Exports:
    LOGS_DIR (str): Absolute path to the directory for log files.
    TEST_DATA_DIR (str): Absolute path to the directory with test fixtures.
"""
import os
from pathlib import Path


def get_resource_path(relative_path: str) -> str:
    """
    Get absolute path to a resource relative to the project root.
    """
    # config.py is in src/cctools/
    current_file_path: Path = Path(__file__)
    project_root: Path = current_file_path.parent.parent.parent
    return os.path.join(str(project_root), relative_path)


# Directories
LOGS_DIR: str = os.environ.get("CCTOOLS_LOGS_DIR", get_resource_path("logs"))
TEST_DATA_DIR: str = os.environ.get("CCTOOLS_TEST_DATA_DIR", get_resource_path(os.path.join("tests", "test_data")))

# Mesh interpolation
DEFAULT_IDW_NEIGHBOURS: int = 4
DEFAULT_IDW_POWER: float = 2.0
COINCIDENCE_TOLERANCE: float = 1e-12

# Relative tolerance for a supplied MAGNITUDE against the vector components
MAGNITUDE_TOLERANCE: float = 1e-6

# Harmonic drives are named "<prefix><1-2 digits>", e.g. "B1" ... "B10"
DEFAULT_DRIVE_PREFIX: str = "B"
