"""
Test suite for Cyto Workbench.

This package contains:
- Unit tests for FCS decoding, compensation, transforms, gating,
  density aggregation and settings
- Integration tests for the compute service, the session and the CLI
- Synthetic FCS file builders so no instrument data is needed
"""

__version__ = "0.3.0"
