"""Cutover Controller and its provisioning / routing collaborators."""

from warmspine.cutover.collaborators import (
    Environment,
    EnvironmentProvisioner,
    HttpEnvironmentProvisioner,
    HttpTrafficRouter,
    StaticEnvironmentProvisioner,
    StaticTrafficRouter,
    TrafficRouter,
)
from warmspine.cutover.controller import CutoverController, CutoverResult, CutoverState, ManualOverride

__all__ = [
    "CutoverController",
    "CutoverResult",
    "CutoverState",
    "ManualOverride",
    "Environment",
    "EnvironmentProvisioner",
    "TrafficRouter",
    "HttpEnvironmentProvisioner",
    "HttpTrafficRouter",
    "StaticEnvironmentProvisioner",
    "StaticTrafficRouter",
]
