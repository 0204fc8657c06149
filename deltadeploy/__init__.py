# -*- coding: utf-8 -*-
"""
deltadeploy
===========
Deploy incremental de metadata Salesforce a partir do git.

Este modulo fornece:
- Classificacao de arquivos alterados em tipos de metadata
- Geracao de package.xml e destructiveChanges.xml
- Agregacao de campos em objetos no formato MDAPI
- Deploy via Metadata API com polling do job remoto
- Trilha destrutiva separada para remocoes

Exemplo de uso:
    from deltadeploy import DeltaDeployer, DeltaDeployConfig

    config = DeltaDeployConfig.from_env()
    deployer = DeltaDeployer(config)

    report = await deployer.deploy(base="origin/main", head="HEAD")
"""

__version__ = '1.0.0'

from .config import DeltaDeployConfig, DeployOptions, PollingConfig, TestLevel
from .changes import ChangeSet, GitChangeSource
from .client import SalesforceClient
from .metadata_client import DeployJob, DeployStatus, MetadataClient
from .deployers import DeltaDeployer, DeltaDeployReport, DeploymentTrack

__all__ = [
    'DeltaDeployConfig',
    'DeployOptions',
    'PollingConfig',
    'TestLevel',
    'ChangeSet',
    'GitChangeSource',
    'SalesforceClient',
    'DeployJob',
    'DeployStatus',
    'MetadataClient',
    'DeltaDeployer',
    'DeltaDeployReport',
    'DeploymentTrack'
]
