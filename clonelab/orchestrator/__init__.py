"""
Cloning workflow orchestration.
"""

from .orchestrator import CloningOrchestrator
from .workflow import ALLOWED_TRANSITIONS, CloneWorkflow

__all__ = ["ALLOWED_TRANSITIONS", "CloneWorkflow", "CloningOrchestrator"]
