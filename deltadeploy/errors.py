# -*- coding: utf-8 -*-
"""
Erros do deltadeploy
====================
Hierarquia de excecoes usada pelo pipeline de classificacao,
pela geracao de pacotes e pela maquina de estados de deploy.
"""

from dataclasses import dataclass
from typing import Optional


class DeltaDeployError(Exception):
    """Excecao base do deltadeploy"""

    def __init__(self, message: str, error_code: Optional[str] = None):
        super().__init__(message)
        self.error_code = error_code

    def __str__(self):
        msg = super().__str__()
        if self.error_code:
            msg = f"[{self.error_code}] {msg}"
        return msg


@dataclass
class ClassificationMiss:
    """
    Diagnostico de caminho nao reconhecido.

    Nao e levantado: o caminho e registrado, excluido do pacote
    e o processamento continua.
    """
    path: str
    reason: str = "caminho nao reconhecido"

    def __str__(self):
        return f"{self.path}: {self.reason}"


class FragmentParseError(DeltaDeployError):
    """Fragmento de campo malformado (fatal)"""

    def __init__(self, path: str, detail: str):
        super().__init__(f"Fragmento invalido em {path}: {detail}", "FRAGMENT_PARSE")
        self.path = path


class FragmentMissingError(DeltaDeployError):
    """Fragmento de campo nao encontrado no source tree"""

    def __init__(self, path: str):
        super().__init__(f"Fragmento nao encontrado: {path}", "FRAGMENT_MISSING")
        self.path = path


class StagingError(DeltaDeployError):
    """Erro ao copiar arquivos para o staging tree"""
    pass


class EmptyPackageError(DeltaDeployError):
    """Nenhum componente reconhecido para o pacote"""
    pass


class ChangeSourceError(DeltaDeployError):
    """Erro ao obter a lista de alteracoes do controle de versao"""
    pass


class AuthenticationError(DeltaDeployError):
    """Erro na troca de assertion JWT por token"""
    pass


class SubmissionError(DeltaDeployError):
    """Falha de transporte ou ID de job ausente na submissao"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message, "SUBMISSION")
        self.status_code = status_code

    def __str__(self):
        msg = super().__str__()
        if self.status_code is not None:
            msg = f"{msg} (HTTP {self.status_code})"
        return msg


class StatusCheckError(SubmissionError):
    """Falha de transporte ao consultar o status de um job"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message, status_code)
        self.error_code = "STATUS_CHECK"


class DeployTimeoutError(DeltaDeployError):
    """
    Polling esgotado.

    Diferente de SubmissionError: o job remoto pode continuar executando.
    """

    def __init__(self, job_id: str, attempts: int):
        super().__init__(
            f"Deploy {job_id} nao terminou apos {attempts} verificacoes",
            "TIMED_OUT"
        )
        self.job_id = job_id
        self.attempts = attempts


class SecondaryTrackError(DeltaDeployError):
    """Falha na trilha destrutiva (registrada, nao fatal)"""
    pass


class DeployRunError(DeltaDeployError):
    """Erro de execucao capturado na fronteira do orquestrador"""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message, getattr(cause, "error_code", None))
        self.cause = cause
