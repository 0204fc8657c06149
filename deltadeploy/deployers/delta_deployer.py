# -*- coding: utf-8 -*-
"""
Delta Deployer
==============
Coordena uma execucao completa:

1. Obtem as alteracoes entre duas revisoes (GitChangeSource)
2. Converte em pacotes primario e destrutivo (DeltaConverter)
3. Gera os zips (PackageArchiver)
4. Autentica e executa as trilhas em sequencia: primaria, depois destrutiva

Falha na trilha destrutiva e registrada e nao interrompe a execucao;
o resultado da trilha primaria e o que define o exit code.

Exemplo de uso:
    config = DeltaDeployConfig.from_env()
    deployer = DeltaDeployer(config)

    report = await deployer.deploy(base="origin/main", head="HEAD")
    sys.exit(report.exit_code)
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from ..archiver import PackageArchiver
from ..changes import ChangeSet, GitChangeSource
from ..client import SalesforceClient
from ..config import DeltaDeployConfig, DeployOptions
from ..errors import DeployRunError, SecondaryTrackError
from ..logging_config import LogContext
from ..metadata.converter import ConversionResult, DeltaConverter
from ..metadata_client import DeployJob, DeployStatus, MetadataClient
from .track import DeploymentTrack, SleepFunc

logger = logging.getLogger(__name__)

PRIMARY_ARCHIVE = "package.zip"
DESTRUCTIVE_ARCHIVE = "destructive.zip"

FAILED_STATUSES = (DeployStatus.FAILED, DeployStatus.CANCELED)


@dataclass
class DeltaDeployReport:
    """Resultado de uma execucao"""
    run_id: str
    changes: ChangeSet = field(default_factory=ChangeSet)
    conversion: Optional[ConversionResult] = None
    primary: Optional[DeployJob] = None
    secondary: Optional[DeployJob] = None
    secondary_error: Optional[str] = None
    states: Dict[str, str] = field(default_factory=dict)

    @property
    def nothing_to_deploy(self) -> bool:
        return self.primary is None

    @property
    def exit_code(self) -> int:
        """0 para sucesso; 1 se a trilha primaria terminou Failed/Canceled"""
        if self.primary is not None and self.primary.status in FAILED_STATUSES:
            return 1
        return 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "changes": self.changes.to_dict(),
            "conversion": self.conversion.to_dict() if self.conversion else None,
            "primary": self.primary.to_dict() if self.primary else None,
            "secondary": self.secondary.to_dict() if self.secondary else None,
            "secondary_error": self.secondary_error,
            "states": dict(self.states),
            "exit_code": self.exit_code
        }


class DeltaDeployer:
    """
    Orquestrador do deploy incremental

    Todos os colaboradores podem ser injetados (testes); por padrao
    sao criados a partir da configuracao.
    """

    def __init__(
        self,
        config: DeltaDeployConfig,
        change_source: Optional[GitChangeSource] = None,
        client: Optional[SalesforceClient] = None,
        metadata: Optional[MetadataClient] = None,
        archiver: Optional[PackageArchiver] = None,
        sleep: SleepFunc = asyncio.sleep
    ):
        self.config = config
        self.change_source = change_source or GitChangeSource(
            repo_path=config.repo_path,
            source_dir=config.source_dir
        )
        self.client = client or SalesforceClient(config)
        self.metadata = metadata or MetadataClient(self.client)
        self.archiver = archiver or PackageArchiver()
        self._sleep = sleep

    @property
    def source_root(self) -> Path:
        return Path(self.config.repo_path) / self.config.source_dir

    @property
    def output_dir(self) -> Path:
        return Path(self.config.output_dir)

    def _converter(self) -> DeltaConverter:
        return DeltaConverter(
            source_root=self.source_root,
            output_dir=self.output_dir,
            package_version=self.config.package_version,
            exclude_types=self.config.exclude_types
        )

    def _track(self, name: str) -> DeploymentTrack:
        return DeploymentTrack(name, self.metadata, self.config.polling, sleep=self._sleep)

    # ==================== PLAN ====================

    async def plan(self, base: str = "HEAD~1", head: Optional[str] = "HEAD") -> ConversionResult:
        """
        Classifica e prepara os pacotes sem acessar a org

        Raises:
            DeployRunError: Qualquer falha interna
        """
        try:
            changes = await self.change_source.get_changes(base, head)
            conversion = self._converter().convert(changes)
            self._archive(conversion)
            return conversion
        except Exception as e:
            logger.error(f"Plano falhou: {e}")
            raise DeployRunError(f"Plano falhou: {e}", cause=e) from e

    # ==================== DEPLOY ====================

    async def deploy(
        self,
        base: str = "HEAD~1",
        head: Optional[str] = "HEAD",
        options: Optional[DeployOptions] = None
    ) -> DeltaDeployReport:
        """
        Executa o deploy incremental

        Args:
            base: Revisao anterior
            head: Revisao atual
            options: Opcoes de deploy

        Returns:
            DeltaDeployReport com os jobs primario e secundario

        Raises:
            DeployRunError: Qualquer falha interna (com .cause)
        """
        options = options or DeployOptions()
        report = DeltaDeployReport(run_id=uuid.uuid4().hex[:8])

        try:
            with LogContext(run_id=report.run_id):
                report.changes = await self.change_source.get_changes(base, head)
                if report.changes.is_empty:
                    logger.info("Nada para deploy")
                    return report

                conversion = self._converter().convert(report.changes)
                report.conversion = conversion
                if conversion.is_empty:
                    logger.info("Nada para deploy apos aplicar os tipos excluidos")
                    return report

                if conversion.test_classes:
                    options = options.with_tests(conversion.test_classes)

                archives = self._archive(conversion)

                await self.client.connect()
                await self._run_tracks(report, archives, options)
                return report

        except DeployRunError:
            raise
        except Exception as e:
            logger.error(f"Deploy falhou: {e}")
            raise DeployRunError(f"Deploy falhou: {e}", cause=e) from e
        finally:
            await self.client.close()

    async def _run_tracks(
        self,
        report: DeltaDeployReport,
        archives: Dict[str, Path],
        options: DeployOptions
    ):
        primary_archive = archives.get("primary")
        destructive_archive = archives.get("destructive")

        if primary_archive is None:
            # Apenas remocoes: a trilha destrutiva assume o papel de primaria
            track = self._track("destructive")
            try:
                with LogContext(track=track.name):
                    report.primary = await track.run(destructive_archive, options)
            finally:
                report.states[track.name] = track.state.value
            return

        primary = self._track("primary")
        try:
            with LogContext(track=primary.name):
                report.primary = await primary.run(primary_archive, options)
        finally:
            report.states[primary.name] = primary.state.value

        if destructive_archive is None:
            return

        secondary = self._track("destructive")
        try:
            with LogContext(track=secondary.name):
                report.secondary = await secondary.run(destructive_archive, options)
            if report.secondary.status in FAILED_STATUSES:
                report.secondary_error = f"Trilha destrutiva terminou com {report.secondary.status.value}"
                logger.warning(report.secondary_error)
        except Exception as e:
            error = SecondaryTrackError(f"Trilha destrutiva falhou: {type(e).__name__}: {e}")
            report.secondary_error = str(error)
            logger.error(str(error))
        finally:
            report.states[secondary.name] = secondary.state.value

    def _archive(self, conversion: ConversionResult) -> Dict[str, Path]:
        archives = {}
        if conversion.has_additions:
            archives["primary"] = self.archiver.zip_directory(
                conversion.package_dir, self.output_dir / PRIMARY_ARCHIVE
            )
        if conversion.has_deletions:
            archives["destructive"] = self.archiver.zip_directory(
                conversion.destructive_dir, self.output_dir / DESTRUCTIVE_ARCHIVE
            )
        return archives

    # ==================== QUICK DEPLOY ====================

    async def quick_deploy(self, validated_id: str) -> DeltaDeployReport:
        """
        Promove um deploy validado (checkOnly) e acompanha o job

        Raises:
            DeployRunError: Qualquer falha interna
        """
        report = DeltaDeployReport(run_id=uuid.uuid4().hex[:8])
        track = self._track("quick")

        try:
            with LogContext(run_id=report.run_id, track=track.name):
                await self.client.connect()
                report.primary = await track.run_quick(validated_id)
                return report
        except Exception as e:
            logger.error(f"Quick deploy falhou: {e}")
            raise DeployRunError(f"Quick deploy falhou: {e}", cause=e) from e
        finally:
            report.states[track.name] = track.state.value
            await self.client.close()
