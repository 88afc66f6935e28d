"""Pipeline Module

Stage locks, stage state records and the orchestrator that runs stages under them.
"""

from .orchestrator import PipelineOrchestrator
from .state_manager import StageResult, StateManager

__all__ = ['PipelineOrchestrator', 'StageResult', 'StateManager']
