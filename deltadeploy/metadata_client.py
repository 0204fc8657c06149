# -*- coding: utf-8 -*-
"""
Salesforce Metadata API Client
==============================
Operacoes de deploy usadas pelo deltadeploy:

- deploy (SOAP): envia o zip em base64 com as DeployOptions
- status (REST): /metadata/deployRequest/<id>?includeDetails=true
- quick deploy (REST): promove um deploy validado (checkOnly)

Exemplo de uso:
    metadata = MetadataClient(sf_client)

    job_id = await metadata.submit(Path("package.zip"), DeployOptions(check_only=True))
    job = await metadata.check_status(job_id)

    if job.is_terminal:
        print(job.status, job.component_errors)
"""

import asyncio
import base64
import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional
from xml.sax.saxutils import escape

import aiohttp

from .config import DeployOptions
from .errors import StatusCheckError, SubmissionError
from .metadata.rules import METADATA_NS

if TYPE_CHECKING:
    from .client import SalesforceClient

logger = logging.getLogger(__name__)

SOAP_NS = "http://schemas.xmlsoap.org/soap/envelope/"


class DeployStatus(str, Enum):
    """Status de um deploy na Metadata API"""
    PENDING = "Pending"
    IN_PROGRESS = "InProgress"
    SUCCEEDED = "Succeeded"
    SUCCEEDED_PARTIAL = "SucceededPartial"
    FAILED = "Failed"
    CANCELING = "Canceling"
    CANCELED = "Canceled"

    @classmethod
    def parse(cls, value: Optional[str], done: bool = False) -> "DeployStatus":
        """Converte o texto da API; desconhecido com done=true vira Failed"""
        try:
            return cls(value)
        except ValueError:
            if done:
                logger.warning(f"Status desconhecido em job concluido: {value}")
                return cls.FAILED
            return cls.IN_PROGRESS


TERMINAL_STATUSES = frozenset({
    DeployStatus.SUCCEEDED,
    DeployStatus.SUCCEEDED_PARTIAL,
    DeployStatus.FAILED,
    DeployStatus.CANCELED,
})


def _as_list(value: Any) -> List[Dict[str, Any]]:
    """A API retorna objeto unico ou lista para colecoes de um item"""
    if not value:
        return []
    if isinstance(value, dict):
        return [value]
    return list(value)


def _as_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


@dataclass
class ComponentFailure:
    """Falha de componente reportada pelo deploy"""
    component_type: Optional[str]
    file_name: Optional[str]
    full_name: Optional[str]
    problem: Optional[str]
    problem_type: Optional[str] = None

    @classmethod
    def from_response(cls, data: Dict[str, Any]) -> "ComponentFailure":
        return cls(
            component_type=data.get("componentType"),
            file_name=data.get("fileName"),
            full_name=data.get("fullName"),
            problem=data.get("problem"),
            problem_type=data.get("problemType")
        )

    def __str__(self):
        return f"{self.component_type} {self.full_name}: {self.problem}"


@dataclass
class TestFailure:
    """Falha de teste Apex reportada pelo deploy"""
    name: Optional[str]
    method_name: Optional[str]
    message: Optional[str]
    stack_trace: Optional[str] = None

    # Evita que o pytest tente coletar a classe
    __test__ = False

    @classmethod
    def from_response(cls, data: Dict[str, Any]) -> "TestFailure":
        return cls(
            name=data.get("name"),
            method_name=data.get("methodName"),
            message=data.get("message"),
            stack_trace=data.get("stackTrace")
        )

    def __str__(self):
        return f"{self.name}.{self.method_name}: {self.message}"


@dataclass
class DeployJob:
    """Estado de um job de deploy em uma verificacao"""
    id: str
    status: DeployStatus
    done: bool
    components_deployed: int = 0
    components_total: int = 0
    component_errors: int = 0
    tests_completed: int = 0
    tests_total: int = 0
    test_errors: int = 0
    state_detail: Optional[str] = None
    error_message: Optional[str] = None
    check_only: bool = False
    component_failures: List[ComponentFailure] = field(default_factory=list)
    test_failures: List[TestFailure] = field(default_factory=list)

    @classmethod
    def from_response(cls, data: Dict[str, Any], job_id: Optional[str] = None) -> "DeployJob":
        """
        Cria a partir da resposta de /metadata/deployRequest/<id>

        Aceita tanto o envelope {"deployResult": {...}} quanto o
        deployResult diretamente.
        """
        result = data.get("deployResult", data) or {}
        done = bool(result.get("done", False))
        details = result.get("details") or {}
        run_test_result = details.get("runTestResult") or {}

        return cls(
            id=result.get("id") or data.get("id") or job_id or "",
            status=DeployStatus.parse(result.get("status"), done),
            done=done,
            components_deployed=_as_int(result.get("numberComponentsDeployed")),
            components_total=_as_int(result.get("numberComponentsTotal")),
            component_errors=_as_int(result.get("numberComponentErrors")),
            tests_completed=_as_int(result.get("numberTestsCompleted")),
            tests_total=_as_int(result.get("numberTestsTotal")),
            test_errors=_as_int(result.get("numberTestErrors")),
            state_detail=result.get("stateDetail"),
            error_message=result.get("errorMessage"),
            check_only=bool(result.get("checkOnly", False)),
            component_failures=[
                ComponentFailure.from_response(item)
                for item in _as_list(details.get("componentFailures"))
            ],
            test_failures=[
                TestFailure.from_response(item)
                for item in _as_list(run_test_result.get("failures"))
            ]
        )

    @property
    def is_terminal(self) -> bool:
        return self.done and self.status in TERMINAL_STATUSES

    @property
    def succeeded(self) -> bool:
        return self.status in (DeployStatus.SUCCEEDED, DeployStatus.SUCCEEDED_PARTIAL)

    @property
    def has_failures(self) -> bool:
        return len(self.component_failures) > 0 or len(self.test_failures) > 0

    def progress(self) -> str:
        """Resumo de progresso para log"""
        text = (
            f"{self.status.value}: componentes {self.components_deployed}/{self.components_total}"
            f" (erros {self.component_errors})"
        )
        if self.tests_total:
            text += f", testes {self.tests_completed}/{self.tests_total} (erros {self.test_errors})"
        if self.state_detail:
            text += f" - {self.state_detail}"
        return text

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status.value,
            "done": self.done,
            "check_only": self.check_only,
            "components_deployed": self.components_deployed,
            "components_total": self.components_total,
            "component_errors": self.component_errors,
            "tests_completed": self.tests_completed,
            "tests_total": self.tests_total,
            "test_errors": self.test_errors,
            "state_detail": self.state_detail,
            "error_message": self.error_message,
            "component_failures": [str(f) for f in self.component_failures],
            "test_failures": [str(f) for f in self.test_failures]
        }


class MetadataClient:
    """
    Cliente de deploy da Metadata API

    Usa a sessao HTTP e o token do SalesforceClient.
    """

    def __init__(self, sf_client: "SalesforceClient"):
        self.sf = sf_client

    @property
    def metadata_url(self) -> str:
        """URL SOAP da Metadata API"""
        return self.sf.config.metadata_url

    @property
    def deploy_request_url(self) -> str:
        """URL REST de deployRequest"""
        return f"{self.sf.config.rest_url}/metadata/deployRequest"

    async def _soap_request(self, action: str, body: str) -> str:
        """
        Faz requisicao SOAP para Metadata API

        Raises:
            SubmissionError: Status HTTP diferente de 2xx ou erro de conexao
        """
        envelope = f"""<?xml version="1.0" encoding="UTF-8"?>
<soapenv:Envelope xmlns:soapenv="{SOAP_NS}" xmlns:met="{METADATA_NS}">
    <soapenv:Header>
        <met:SessionHeader>
            <met:sessionId>{escape(self.sf.config.access_token or "")}</met:sessionId>
        </met:SessionHeader>
    </soapenv:Header>
    <soapenv:Body>
        {body}
    </soapenv:Body>
</soapenv:Envelope>"""

        headers = {
            "Content-Type": "text/xml; charset=UTF-8",
            "SOAPAction": action
        }

        session = await self.sf._get_session()
        try:
            async with session.post(self.metadata_url, data=envelope, headers=headers) as response:
                text = await response.text()
                if not 200 <= response.status < 300:
                    fault = self._parse_soap_fault(text)
                    raise SubmissionError(
                        f"{action} rejeitado: {fault or 'sem detalhe'}",
                        status_code=response.status
                    )
                return text
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise SubmissionError(f"Erro de conexao em {action}: {e!r}") from e

    @staticmethod
    def _parse_soap_fault(response_text: str) -> Optional[str]:
        """Extrai faultstring de uma resposta SOAP"""
        try:
            root = ET.fromstring(response_text)
        except ET.ParseError:
            return None
        for elem in root.iter():
            if elem.tag.split("}")[-1] == "faultstring":
                return elem.text
        return None

    # ==================== DEPLOY ====================

    def build_deploy_body(self, zip_bytes: bytes, options: DeployOptions) -> str:
        """
        Monta o corpo <met:deploy> com as DeployOptions

        A ordem dos campos segue o schema da Metadata API.
        """
        option_parts = [
            f"<met:allowMissingFiles>{str(options.allow_missing_files).lower()}</met:allowMissingFiles>",
            f"<met:checkOnly>{str(options.check_only).lower()}</met:checkOnly>",
            f"<met:testLevel>{options.test_level.value}</met:testLevel>",
        ]
        for test in options.run_tests:
            option_parts.append(f"<met:runTests>{escape(test)}</met:runTests>")
        option_parts.extend([
            f"<met:rollbackOnError>{str(options.rollback_on_error).lower()}</met:rollbackOnError>",
            f"<met:singlePackage>{str(options.single_package).lower()}</met:singlePackage>",
        ])

        zip_base64 = base64.b64encode(zip_bytes).decode("utf-8")

        return (
            "<met:deploy>"
            f"<met:ZipFile>{zip_base64}</met:ZipFile>"
            f"<met:DeployOptions>{''.join(option_parts)}</met:DeployOptions>"
            "</met:deploy>"
        )

    async def submit(self, archive_path: Path, options: DeployOptions) -> str:
        """
        Inicia deploy de um pacote zip

        Args:
            archive_path: Caminho do zip
            options: Opcoes de deploy

        Returns:
            ID do deploy job

        Raises:
            SubmissionError: Falha de transporte ou ID ausente
        """
        try:
            zip_bytes = Path(archive_path).read_bytes()
        except OSError as e:
            raise SubmissionError(f"Erro ao ler pacote {archive_path}: {e}") from e
        body = self.build_deploy_body(zip_bytes, options)

        logger.info(
            f"Enviando {Path(archive_path).name} ({len(zip_bytes)} bytes, "
            f"checkOnly={options.check_only}, testLevel={options.test_level.value})"
        )
        response = await self._soap_request("deploy", body)

        job_id = self.extract_job_id(response)
        if not job_id:
            raise SubmissionError("Nao foi possivel obter ID do deploy")

        logger.info(f"Deploy iniciado: {job_id}")
        return job_id

    @staticmethod
    def extract_job_id(response_text: str) -> Optional[str]:
        """Primeiro elemento cujo nome local e exatamente 'id'"""
        try:
            root = ET.fromstring(response_text)
        except ET.ParseError as e:
            logger.error(f"Erro ao parsear resposta de deploy: {e}")
            return None

        for elem in root.iter():
            if not isinstance(elem.tag, str):
                continue
            if elem.tag.split("}")[-1] == "id" and elem.text and elem.text.strip():
                return elem.text.strip()
        return None

    # ==================== STATUS ====================

    async def check_status(self, job_id: str, include_details: bool = True) -> DeployJob:
        """
        Verifica status de um deploy

        Raises:
            StatusCheckError: Status HTTP diferente de 200, erro de conexao/timeout
                ou corpo JSON invalido
        """
        url = f"{self.deploy_request_url}/{job_id}"
        params = {"includeDetails": str(include_details).lower()}

        session = await self.sf._get_session()
        try:
            async with session.get(url, params=params, headers=self.sf.headers) as response:
                if response.status != 200:
                    text = await response.text()
                    raise StatusCheckError(
                        f"Erro ao consultar deploy {job_id}: {text[:200]}",
                        status_code=response.status
                    )
                data = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise StatusCheckError(f"Erro de conexao ao consultar deploy {job_id}: {e!r}") from e
        except ValueError as e:
            raise StatusCheckError(f"Resposta invalida ao consultar deploy {job_id}: {e}") from e

        if not isinstance(data, dict):
            raise StatusCheckError(f"Resposta inesperada ao consultar deploy {job_id}")

        return DeployJob.from_response(data, job_id)

    # ==================== QUICK DEPLOY ====================

    async def quick_deploy(self, validated_id: str) -> str:
        """
        Promove um deploy validado (checkOnly) sem rodar os testes novamente

        Returns:
            ID do novo deploy job

        Raises:
            SubmissionError: Falha de transporte ou ID ausente
        """
        payload = {"validatedDeployRequestId": validated_id}

        session = await self.sf._get_session()
        try:
            async with session.post(
                self.deploy_request_url,
                json=payload,
                headers=self.sf.headers
            ) as response:
                if response.status not in (200, 201, 202):
                    text = await response.text()
                    raise SubmissionError(
                        f"Quick deploy de {validated_id} rejeitado: {text[:200]}",
                        status_code=response.status
                    )
                data = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise SubmissionError(f"Erro de conexao no quick deploy: {e!r}") from e
        except ValueError as e:
            raise SubmissionError(f"Resposta invalida no quick deploy: {e}") from e

        job_id = data.get("id") if isinstance(data, dict) else None
        if not job_id:
            raise SubmissionError("Quick deploy sem ID de job na resposta")

        logger.info(f"Quick deploy iniciado: {job_id} (validacao {validated_id})")
        return job_id
