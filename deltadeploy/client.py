# -*- coding: utf-8 -*-
"""
Salesforce Client
=================
Autenticacao via OAuth 2.0 JWT Bearer Flow e sessao HTTP compartilhada
pelos clientes da Metadata API.

Fluxo:
1. Monta uma assertion JWT (RS256) com iss=client_id, sub=username,
   aud=login_url e exp=agora+60s, assinada com a chave privada
2. Troca a assertion por um access_token em /services/oauth2/token
3. Usa access_token + instance_url nas chamadas seguintes

Exemplo de uso:
    config = DeltaDeployConfig.from_env()

    async with SalesforceClient(config) as client:
        print(client.config.instance_url)
"""

import logging
import time
from pathlib import Path
from typing import Any, Dict, Optional

import aiohttp
from jose import JOSEError, jwt

from .config import DeltaDeployConfig
from .errors import AuthenticationError

logger = logging.getLogger(__name__)

JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
JWT_ALGORITHM = "RS256"
JWT_LIFETIME_SECONDS = 60


class SalesforceClient:
    """
    Cliente de conexao com o Salesforce

    Se config.access_token e config.instance_url ja estiverem
    preenchidos, a troca de token e pulada.
    """

    def __init__(self, config: DeltaDeployConfig):
        self.config = config
        self._session: Optional[aiohttp.ClientSession] = None
        self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected and self.config.access_token is not None

    @property
    def headers(self) -> Dict[str, str]:
        """Headers padrao para requisicoes REST"""
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json"
        }
        if self.config.access_token:
            headers["Authorization"] = f"Bearer {self.config.access_token}"
        return headers

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _get_session(self) -> aiohttp.ClientSession:
        """Obtem ou cria sessao HTTP"""
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(
                ssl=self.config.verify_ssl,
                limit=10
            )
            timeout = aiohttp.ClientTimeout(total=self.config.timeout)
            self._session = aiohttp.ClientSession(
                connector=connector,
                timeout=timeout
            )
        return self._session

    async def close(self):
        """Fecha a sessao HTTP"""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None
        self._connected = False

    # ==================== AUTENTICACAO ====================

    async def connect(self) -> bool:
        """
        Obtem o access_token

        Returns:
            True se conectou com sucesso

        Raises:
            AuthenticationError: Se falhar na autenticacao
        """
        if self.config.access_token and self.config.instance_url:
            self._connected = True
            logger.info(f"Usando token informado para {self.config.instance_url}")
            return True

        try:
            self.config.validate()
        except ValueError as e:
            raise AuthenticationError(str(e)) from e

        assertion = self.build_assertion()
        await self._exchange_assertion(assertion)

        self._connected = True
        logger.info(f"Conectado ao Salesforce: {self.config.instance_url}")
        return True

    def build_assertion(self, now: Optional[float] = None) -> str:
        """
        Monta a assertion JWT assinada com a chave privada

        Args:
            now: Timestamp de referencia (default: time.time())
        """
        private_key = self._read_private_key()
        issued_at = int(now if now is not None else time.time())

        claims = {
            "iss": self.config.client_id,
            "sub": self.config.username,
            "aud": self.config.login_url,
            "exp": issued_at + JWT_LIFETIME_SECONDS
        }

        try:
            return jwt.encode(claims, private_key, algorithm=JWT_ALGORITHM)
        except JOSEError as e:
            raise AuthenticationError(f"Erro ao assinar assertion JWT: {e}") from e

    def _read_private_key(self) -> str:
        path = Path(self.config.private_key_path)
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            raise AuthenticationError(f"Chave privada nao encontrada: {path}") from e

    async def _exchange_assertion(self, assertion: str) -> Dict[str, Any]:
        """Troca a assertion por access_token e instance_url"""
        data = {
            "grant_type": JWT_BEARER_GRANT,
            "assertion": assertion
        }

        session = await self._get_session()
        try:
            async with session.post(self.config.token_url, data=data) as response:
                try:
                    result = await response.json(content_type=None)
                except ValueError:
                    result = {}

                if response.status != 200:
                    message = result.get("error_description") or result.get("error") or "JWT bearer falhou"
                    logger.error(f"Falha na autenticacao ({response.status}): {message}")
                    raise AuthenticationError(f"{message} (HTTP {response.status})")
        except aiohttp.ClientError as e:
            raise AuthenticationError(f"Erro de conexao em {self.config.token_url}: {e}") from e

        if "access_token" not in result or "instance_url" not in result:
            raise AuthenticationError("Resposta de token sem access_token/instance_url")

        self.config.access_token = result["access_token"]
        self.config.instance_url = result["instance_url"]
        return result
