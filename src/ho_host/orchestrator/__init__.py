"""Orchestrator module for dynamic-project deployments.

- DeploymentOrchestrator: runs the staged deploy and owns stop/restart/delete
- DeployRequest/DeploymentResult: input and output of one deployment
- build_orchestrator: wires every collaborator from an AppConfig
"""

from .models import DeploymentResult, DeployRequest, DeployStage
from .orchestrator import (
    PROJECT_NAME_PATTERN,
    DeploymentOrchestrator,
    build_detector,
    build_orchestrator,
)

__all__ = [
    "DeploymentResult",
    "DeployRequest",
    "DeployStage",
    "PROJECT_NAME_PATTERN",
    "DeploymentOrchestrator",
    "build_detector",
    "build_orchestrator",
]
