# -*- coding: utf-8 -*-
"""
Change Source
=============
Obtem a lista de arquivos alterados entre duas revisoes do git.

O resultado (ChangeSet) e calculado uma vez por execucao e e imutavel.
Os caminhos ja vem filtrados pela raiz do source tree e relativos a ela.

Exemplo de uso:
    source = GitChangeSource(repo_path=".", source_dir="force-app/main/default")
    changes = await source.get_changes("HEAD~1", "HEAD")

    changes.added_or_modified  # ("classes/MinhaClasse.cls", ...)
    changes.deleted            # ("triggers/Antigo.trigger", ...)
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from .errors import ChangeSourceError

logger = logging.getLogger(__name__)


def _dedupe(paths: Iterable[str]) -> Tuple[str, ...]:
    return tuple(dict.fromkeys(p for p in paths if p))


@dataclass(frozen=True)
class ChangeSet:
    """Arquivos adicionados/modificados e removidos, em ordem"""
    added_or_modified: Tuple[str, ...] = ()
    deleted: Tuple[str, ...] = ()

    @classmethod
    def from_lists(
        cls,
        added_or_modified: Iterable[str] = (),
        deleted: Iterable[str] = ()
    ) -> "ChangeSet":
        return cls(_dedupe(added_or_modified), _dedupe(deleted))

    @property
    def is_empty(self) -> bool:
        return not self.added_or_modified and not self.deleted

    @property
    def has_deletions(self) -> bool:
        return bool(self.deleted)

    def to_dict(self):
        return {
            "added_or_modified": list(self.added_or_modified),
            "deleted": list(self.deleted)
        }


class GitChangeSource:
    """
    ChangeSource baseado em `git diff --name-status`

    Renomeacoes viram remocao do caminho antigo e adicao do novo.
    """

    def __init__(
        self,
        repo_path: str = ".",
        source_dir: str = "force-app/main/default",
        git_command: str = "git"
    ):
        self.repo_path = repo_path
        self.source_dir = source_dir.replace("\\", "/").strip("/")
        self.git_command = git_command

    async def get_changes(self, base: str = "HEAD~1", head: Optional[str] = "HEAD") -> ChangeSet:
        """
        Calcula o ChangeSet entre duas revisoes

        Args:
            base: Revisao anterior
            head: Revisao atual (None compara com a working tree)

        Raises:
            ChangeSourceError: Se o git falhar
        """
        cmd = [self.git_command, "diff", "--name-status", "-z", base]
        if head:
            cmd.append(head)
        cmd.extend(["--", self.source_dir])

        output = await self._run_command(cmd)
        changes = self.parse_name_status(output)

        logger.info(
            f"Alteracoes entre {base} e {head or 'working tree'}: "
            f"{len(changes.added_or_modified)} adicionado(s)/modificado(s), "
            f"{len(changes.deleted)} removido(s)"
        )
        return changes

    def parse_name_status(self, output: str) -> ChangeSet:
        """
        Interpreta a saida de `git diff --name-status -z`

        Status A, M, T e C entram como adicionados; D como removidos;
        R gera uma remocao e uma adicao.
        """
        tokens = [t for t in output.split("\0")]
        added: List[str] = []
        deleted: List[str] = []

        i = 0
        while i < len(tokens):
            status = tokens[i].strip()
            if not status:
                i += 1
                continue

            kind = status[0]
            if kind in ("R", "C"):
                if i + 2 >= len(tokens):
                    raise ChangeSourceError(f"Saida do git truncada no status {status}")
                old_path, new_path = tokens[i + 1], tokens[i + 2]
                i += 3
                if kind == "R":
                    deleted.append(old_path)
                added.append(new_path)
                continue

            if i + 1 >= len(tokens):
                raise ChangeSourceError(f"Saida do git truncada no status {status}")
            path = tokens[i + 1]
            i += 2

            if kind == "D":
                deleted.append(path)
            elif kind in ("A", "M", "T"):
                added.append(path)
            else:
                logger.debug(f"Status ignorado: {status} {path}")

        return ChangeSet.from_lists(
            self._relativize(added),
            self._relativize(deleted)
        )

    def _relativize(self, paths: Iterable[str]) -> List[str]:
        """Filtra pela raiz do source tree e remove o prefixo"""
        prefix = f"{self.source_dir}/" if self.source_dir else ""
        result = []
        for path in paths:
            path = path.replace("\\", "/")
            if prefix and not path.startswith(prefix):
                continue
            result.append(path[len(prefix):])
        return result

    async def _run_command(self, cmd: List[str]) -> str:
        """Executa o git e retorna stdout"""
        logger.debug(f"Executando: {' '.join(cmd)}")

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.repo_path
            )
        except FileNotFoundError as e:
            raise ChangeSourceError(f"CLI '{self.git_command}' nao encontrado") from e

        stdout, stderr = await process.communicate()

        if process.returncode != 0:
            stderr_str = stderr.decode("utf-8", errors="ignore").strip()
            raise ChangeSourceError(f"git diff falhou ({process.returncode}): {stderr_str}")

        return stdout.decode("utf-8", errors="ignore")
