# -*- coding: utf-8 -*-
"""
Configuracao do deltadeploy
===========================
Configuracoes de conexao, de deploy e de polling.

Os defaults sao resolvidos uma unica vez na construcao; o restante
do codigo recebe objetos completos e nao consulta o ambiente.

Exemplo de configuracao via variaveis de ambiente (ou arquivo .env):
    SALESFORCE_USERNAME=user@empresa.com
    SALESFORCE_CLIENT_ID=3MVG9...
    SALESFORCE_PRIVATE_KEY=./server.key
    SALESFORCE_DOMAIN=test  # ou "login" para producao
    SALESFORCE_API_VERSION=60.0
    DELTADEPLOY_SOURCE_DIR=force-app/main/default
    DELTADEPLOY_OUTPUT_DIR=.deltadeploy_out
    DELTADEPLOY_EXCLUDE=Profile,Workflow
"""

import os
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

logger = logging.getLogger(__name__)


class SalesforceEnvironment(str, Enum):
    """Ambiente Salesforce"""
    PRODUCTION = "login"
    SANDBOX = "test"


class TestLevel(str, Enum):
    """Nivel de testes no deploy"""
    NO_TEST_RUN = "NoTestRun"
    RUN_SPECIFIED_TESTS = "RunSpecifiedTests"
    RUN_LOCAL_TESTS = "RunLocalTests"
    RUN_ALL_TESTS_IN_ORG = "RunAllTestsInOrg"

    # Evita que o pytest tente coletar o enum como classe de teste
    __test__ = False


@dataclass
class DeployOptions:
    """
    Opcoes de deploy enviadas no DeployOptions da Metadata API

    Attributes:
        check_only: Apenas validar, sem persistir
        test_level: Nivel de testes
        specified_tests: Testes para RunSpecifiedTests
        rollback_on_error: Reverter tudo em caso de erro
        single_package: Pacote unico (package.xml na raiz do zip)
        allow_missing_files: Permitir arquivos ausentes no zip
    """
    check_only: bool = False
    test_level: Union[TestLevel, str] = TestLevel.NO_TEST_RUN
    specified_tests: List[str] = field(default_factory=list)
    rollback_on_error: bool = True
    single_package: bool = True
    allow_missing_files: bool = False

    def __post_init__(self):
        """Normaliza o nivel de testes para o enum"""
        if not isinstance(self.test_level, TestLevel):
            try:
                self.test_level = TestLevel(self.test_level)
            except ValueError:
                valid = ", ".join(level.value for level in TestLevel)
                raise ValueError(
                    f"testLevel invalido: {self.test_level} (validos: {valid})"
                )
        self.specified_tests = list(dict.fromkeys(self.specified_tests))

    @property
    def run_tests(self) -> List[str]:
        """Testes emitidos no envelope (apenas para RunSpecifiedTests)"""
        if self.test_level == TestLevel.RUN_SPECIFIED_TESTS:
            return list(self.specified_tests)
        return []

    def with_tests(self, tests: List[str]) -> "DeployOptions":
        """Retorna copia com testes adicionais (sem duplicados)"""
        return DeployOptions(
            check_only=self.check_only,
            test_level=self.test_level,
            specified_tests=self.specified_tests + list(tests),
            rollback_on_error=self.rollback_on_error,
            single_package=self.single_package,
            allow_missing_files=self.allow_missing_files
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "checkOnly": self.check_only,
            "testLevel": self.test_level.value,
            "runTests": self.run_tests,
            "rollbackOnError": self.rollback_on_error,
            "singlePackage": self.single_package,
            "allowMissingFiles": self.allow_missing_files
        }


@dataclass
class PollingConfig:
    """
    Configuracao do polling de status

    O intervalo apos a tentativa N (base 0) e
    base_delay * min(N + 1, max_multiplier) segundos.
    """
    max_attempts: int = 120
    base_delay: float = 5.0
    max_multiplier: int = 6

    def delay_for(self, attempt: int) -> float:
        """Intervalo (segundos) apos a tentativa informada"""
        return self.base_delay * min(attempt + 1, self.max_multiplier)


@dataclass
class DeltaDeployConfig:
    """
    Configuracao principal do deltadeploy

    Attributes:
        username: Usuario Salesforce (sub da assertion JWT)
        client_id: Consumer Key do Connected App (iss da assertion JWT)
        private_key_path: Caminho da chave privada RSA
        domain: "login" para producao, "test" para sandbox, ou dominio custom
        api_version: Versao da API usada nas URLs
        package_version: Versao gravada nos manifests
        repo_path: Raiz do repositorio git
        source_dir: Raiz do source tree dentro do repositorio
        output_dir: Diretorio de saida, recriado a cada execucao
        exclude_types: Tipos de metadata ignorados
        timeout: Timeout em segundos para requisicoes HTTP
    """
    username: Optional[str] = None
    client_id: Optional[str] = None
    private_key_path: Optional[str] = None

    domain: str = SalesforceEnvironment.SANDBOX.value
    api_version: str = "60.0"
    package_version: str = "58.0"

    repo_path: str = "."
    source_dir: str = "force-app/main/default"
    output_dir: str = ".deltadeploy_out"
    exclude_types: List[str] = field(default_factory=list)

    timeout: int = 120
    verify_ssl: bool = True

    # Preenchidos apos autenticacao
    access_token: Optional[str] = None
    instance_url: Optional[str] = None

    polling: PollingConfig = field(default_factory=PollingConfig)

    @classmethod
    def from_env(cls) -> "DeltaDeployConfig":
        """
        Cria configuracao a partir de variaveis de ambiente

        Variaveis suportadas:
            SALESFORCE_USERNAME
            SALESFORCE_CLIENT_ID
            SALESFORCE_PRIVATE_KEY
            SALESFORCE_DOMAIN
            SALESFORCE_API_VERSION
            SALESFORCE_TIMEOUT
            DELTADEPLOY_PACKAGE_VERSION
            DELTADEPLOY_REPO_PATH
            DELTADEPLOY_SOURCE_DIR
            DELTADEPLOY_OUTPUT_DIR
            DELTADEPLOY_EXCLUDE (separado por virgula)
        """
        exclude = os.getenv("DELTADEPLOY_EXCLUDE", "")

        return cls(
            username=os.getenv("SALESFORCE_USERNAME"),
            client_id=os.getenv("SALESFORCE_CLIENT_ID"),
            private_key_path=os.getenv("SALESFORCE_PRIVATE_KEY"),
            domain=os.getenv("SALESFORCE_DOMAIN", SalesforceEnvironment.SANDBOX.value),
            api_version=os.getenv("SALESFORCE_API_VERSION", "60.0"),
            package_version=os.getenv("DELTADEPLOY_PACKAGE_VERSION", "58.0"),
            repo_path=os.getenv("DELTADEPLOY_REPO_PATH", "."),
            source_dir=os.getenv("DELTADEPLOY_SOURCE_DIR", "force-app/main/default"),
            output_dir=os.getenv("DELTADEPLOY_OUTPUT_DIR", ".deltadeploy_out"),
            exclude_types=[t.strip() for t in exclude.split(",") if t.strip()],
            timeout=int(os.getenv("SALESFORCE_TIMEOUT", "120"))
        )

    @property
    def login_url(self) -> str:
        """URL de login baseada no dominio"""
        if self.domain == SalesforceEnvironment.SANDBOX.value:
            return "https://test.salesforce.com"
        elif self.domain == SalesforceEnvironment.PRODUCTION.value:
            return "https://login.salesforce.com"
        else:
            return f"https://{self.domain}.my.salesforce.com"

    @property
    def token_url(self) -> str:
        """URL para troca da assertion JWT"""
        return f"{self.login_url}/services/oauth2/token"

    @property
    def metadata_url(self) -> Optional[str]:
        """URL SOAP da Metadata API"""
        if self.instance_url:
            return f"{self.instance_url}/services/Soap/m/{self.api_version}"
        return None

    @property
    def rest_url(self) -> Optional[str]:
        """URL base da REST API"""
        if self.instance_url:
            return f"{self.instance_url}/services/data/v{self.api_version}"
        return None

    @property
    def is_sandbox(self) -> bool:
        return self.domain == SalesforceEnvironment.SANDBOX.value

    def validate(self) -> bool:
        """
        Valida se a configuracao esta completa para autenticar

        Raises:
            ValueError: Se faltar algum campo obrigatorio
        """
        missing = [
            name for name in ("username", "client_id", "private_key_path")
            if not getattr(self, name)
        ]
        if missing:
            raise ValueError(f"Campos obrigatorios ausentes: {', '.join(missing)}")
        return True

    def to_dict(self) -> Dict[str, Any]:
        """Converte configuracao para dicionario (sem dados sensiveis)"""
        return {
            "username": self.username,
            "client_id": self.client_id,
            "domain": self.domain,
            "api_version": self.api_version,
            "package_version": self.package_version,
            "source_dir": self.source_dir,
            "output_dir": self.output_dir,
            "exclude_types": list(self.exclude_types),
            "instance_url": self.instance_url,
            "is_sandbox": self.is_sandbox,
            "has_access_token": bool(self.access_token)
        }

    def __repr__(self) -> str:
        return (
            f"DeltaDeployConfig(username={self.username}, domain={self.domain}, "
            f"api_version={self.api_version}, source_dir={self.source_dir})"
        )
