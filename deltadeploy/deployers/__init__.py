# -*- coding: utf-8 -*-
"""
Deployers
=========
Maquina de estados de deploy e orquestrador das trilhas.
"""

from .track import DeploymentTrack, TrackState
from .delta_deployer import DeltaDeployer, DeltaDeployReport

__all__ = [
    'DeploymentTrack',
    'TrackState',
    'DeltaDeployer',
    'DeltaDeployReport'
]
