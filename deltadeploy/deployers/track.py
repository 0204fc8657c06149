# -*- coding: utf-8 -*-
"""
Deployment Track
================
Maquina de estados de um deploy: submissao do pacote e polling do
job remoto ate um status terminal.

Estados:
    NotSubmitted -> Submitted -> Polling -> Succeeded
                                         -> SucceededPartial
                                         -> Failed
                                         -> Canceled
                                         -> TimedOut
    NotSubmitted -> SubmissionError

Polling:
    - No maximo 120 verificacoes, estritamente sequenciais
    - Apos cada resposta nao concluida (exceto a ultima) aguarda
      5s * min(tentativa + 1, 6): 5, 10, 15, 20, 25, 30, 30, ...
    - Retorna na primeira resposta com done=true

Exemplo de uso:
    track = DeploymentTrack("primary", metadata_client)
    job = await track.run(Path(".deltadeploy_out/package.zip"), DeployOptions())

    track.state  # TrackState.SUCCEEDED
"""

import asyncio
import logging
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, Optional

from ..config import DeployOptions, PollingConfig
from ..errors import DeployTimeoutError, SubmissionError
from ..metadata_client import DeployJob, DeployStatus, MetadataClient

logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


class TrackState(str, Enum):
    """Estado de uma trilha de deploy"""
    NOT_SUBMITTED = "NotSubmitted"
    SUBMITTED = "Submitted"
    POLLING = "Polling"
    SUCCEEDED = "Succeeded"
    SUCCEEDED_PARTIAL = "SucceededPartial"
    FAILED = "Failed"
    CANCELED = "Canceled"
    TIMED_OUT = "TimedOut"
    SUBMISSION_ERROR = "SubmissionError"

    @property
    def is_final(self) -> bool:
        return self not in (TrackState.NOT_SUBMITTED, TrackState.SUBMITTED, TrackState.POLLING)


_STATUS_TO_STATE = {
    DeployStatus.SUCCEEDED: TrackState.SUCCEEDED,
    DeployStatus.SUCCEEDED_PARTIAL: TrackState.SUCCEEDED_PARTIAL,
    DeployStatus.FAILED: TrackState.FAILED,
    DeployStatus.CANCELED: TrackState.CANCELED,
    DeployStatus.CANCELING: TrackState.CANCELED,
}


class DeploymentTrack:
    """Uma trilha de deploy (primaria ou destrutiva)"""

    def __init__(
        self,
        name: str,
        metadata: MetadataClient,
        polling: Optional[PollingConfig] = None,
        sleep: SleepFunc = asyncio.sleep
    ):
        """
        Args:
            name: Nome da trilha (para logs)
            metadata: Cliente da Metadata API
            polling: Configuracao de polling
            sleep: Funcao de espera (substituivel em testes)
        """
        self.name = name
        self.metadata = metadata
        self.polling = polling or PollingConfig()
        self._sleep = sleep

        self.state = TrackState.NOT_SUBMITTED
        self.job_id: Optional[str] = None
        self.last_job: Optional[DeployJob] = None
        self.attempts = 0

    async def submit(self, archive_path: Path, options: DeployOptions) -> str:
        """
        Envia o pacote

        Raises:
            SubmissionError: Falha de transporte ou ID ausente
        """
        self._ensure_state(TrackState.NOT_SUBMITTED)

        try:
            self.job_id = await self.metadata.submit(archive_path, options)
        except SubmissionError:
            self.state = TrackState.SUBMISSION_ERROR
            logger.error(f"[{self.name}] Falha na submissao de {archive_path}")
            raise

        self.state = TrackState.SUBMITTED
        return self.job_id

    async def submit_quick(self, validated_id: str) -> str:
        """Promove um deploy validado"""
        self._ensure_state(TrackState.NOT_SUBMITTED)

        try:
            self.job_id = await self.metadata.quick_deploy(validated_id)
        except SubmissionError:
            self.state = TrackState.SUBMISSION_ERROR
            logger.error(f"[{self.name}] Falha no quick deploy de {validated_id}")
            raise

        self.state = TrackState.SUBMITTED
        return self.job_id

    async def poll(self, job_id: Optional[str] = None) -> DeployJob:
        """
        Consulta o status ate done=true

        Raises:
            DeployTimeoutError: Tentativas esgotadas
            StatusCheckError: Falha de transporte na consulta
        """
        job_id = job_id or self.job_id
        if not job_id:
            raise ValueError("Nenhum job para acompanhar")

        self.job_id = job_id
        self.state = TrackState.POLLING
        max_attempts = self.polling.max_attempts

        for attempt in range(max_attempts):
            self.attempts = attempt + 1
            job = await self.metadata.check_status(job_id)
            self.last_job = job

            if job.done:
                self.state = _STATUS_TO_STATE.get(job.status, TrackState.FAILED)
                logger.info(f"[{self.name}] Deploy {job_id} concluido: {job.progress()}")
                return job

            logger.info(f"[{self.name}] Deploy {job_id} ({self.attempts}/{max_attempts}) {job.progress()}")

            if attempt < max_attempts - 1:
                await self._sleep(self.polling.delay_for(attempt))

        self.state = TrackState.TIMED_OUT
        logger.error(f"[{self.name}] Deploy {job_id} sem conclusao apos {max_attempts} verificacoes")
        raise DeployTimeoutError(job_id, max_attempts)

    async def run(self, archive_path: Path, options: DeployOptions) -> DeployJob:
        """Submete e acompanha ate o fim"""
        job_id = await self.submit(archive_path, options)
        job = await self.poll(job_id)
        self._log_failures(job)
        return job

    async def run_quick(self, validated_id: str) -> DeployJob:
        """Quick deploy e acompanhamento"""
        job_id = await self.submit_quick(validated_id)
        job = await self.poll(job_id)
        self._log_failures(job)
        return job

    def _ensure_state(self, expected: TrackState):
        if self.state != expected:
            raise RuntimeError(
                f"Trilha {self.name} em estado {self.state.value}, esperado {expected.value}"
            )

    def _log_failures(self, job: DeployJob):
        for failure in job.component_failures:
            logger.error(f"[{self.name}] {failure}")
        for failure in job.test_failures:
            logger.error(f"[{self.name}] Teste falhou: {failure}")
        if job.error_message:
            logger.error(f"[{self.name}] {job.error_message}")
