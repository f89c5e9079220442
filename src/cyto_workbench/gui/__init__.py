"""
Qt layer for Cyto Workbench.

Holds the interactive session and the background workers it drives.
Rendering widgets are not part of this package.
"""

from cyto_workbench.gui.session import ApplyJobState, WorkbenchSession

__all__ = ["ApplyJobState", "WorkbenchSession"]
