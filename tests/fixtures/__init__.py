"""
Test fixtures for Cyto Workbench.

Provides builders for synthetic FCS files.
"""

from tests.fixtures.fcs_files import (
    FCSSpec,
    encode_data,
    build_fcs,
    two_event_file,
    random_file,
)

__all__ = [
    "FCSSpec",
    "encode_data",
    "build_fcs",
    "two_event_file",
    "random_file",
]
