# -*- coding: utf-8 -*-
"""
File Stager
===========
Copia arquivos classificados do source tree para o staging tree,
na mesma posicao relativa.

Regras:
- Bundles (lwc, aura) sao copiados inteiros, preservando a pasta
- Extensoes traduzidas sao gravadas com o novo nome (.md-meta.xml -> .md)
- O descritor irmao (<arquivo>-meta.xml) acompanha o arquivo quando existe
- Um descritor alterado sozinho leva junto o arquivo principal
"""

import logging
import shutil
from pathlib import Path
from typing import List, Set

from ..errors import StagingError
from .classifier import normalize_path
from .rules import DEFAULT_RULES, MetadataRules

logger = logging.getLogger(__name__)


class FileStager:
    """Copia arquivos para o staging tree"""

    def __init__(
        self,
        source_root: Path,
        staging_root: Path,
        rules: MetadataRules = DEFAULT_RULES
    ):
        self.source_root = Path(source_root)
        self.staging_root = Path(staging_root)
        self.rules = rules
        self._staged: Set[str] = set()
        self._bundles: Set[str] = set()

    @property
    def staged_files(self) -> List[str]:
        """Caminhos relativos gravados no staging tree"""
        return sorted(self._staged)

    def stage(self, relative_path: str) -> List[str]:
        """
        Copia um arquivo (e seus irmaos) para o staging tree

        Args:
            relative_path: Caminho relativo ao source tree

        Returns:
            Caminhos relativos copiados nesta chamada

        Raises:
            StagingError: Se o arquivo de origem nao existir
        """
        path = normalize_path(relative_path)
        parts = path.split("/")

        if len(parts) >= 3 and self.rules.is_bundle_folder(parts[0]):
            return self._stage_bundle(f"{parts[0]}/{parts[1]}")

        source = self.source_root / path
        if not source.is_file():
            raise StagingError(f"Arquivo nao encontrado para staging: {source}")

        copied = []
        suffix = self.rules.descriptor_suffix

        if path.endswith(suffix):
            primary = path[: -len(suffix)]
            if (self.source_root / primary).is_file():
                # Descritor alterado: o arquivo principal tambem vai
                copied.extend(self._copy_with_descriptor(primary))
                return copied

        copied.extend(self._copy_with_descriptor(path))
        return copied

    def stage_all(self, relative_paths: List[str]) -> List[str]:
        copied = []
        for path in relative_paths:
            copied.extend(self.stage(path))
        return copied

    def _copy_with_descriptor(self, path: str) -> List[str]:
        """Copia o arquivo e, se existir, o descritor irmao"""
        copied = []
        target = self.rules.translate(path)
        copied.extend(self._copy(path, target))

        descriptor = f"{path}{self.rules.descriptor_suffix}"
        if (self.source_root / descriptor).is_file():
            copied.extend(self._copy(descriptor, f"{target}{self.rules.descriptor_suffix}"))

        return copied

    def _copy(self, source_relative: str, target_relative: str) -> List[str]:
        if target_relative in self._staged:
            return []

        source = self.source_root / source_relative
        target = self.staging_root / target_relative
        target.parent.mkdir(parents=True, exist_ok=True)

        try:
            shutil.copy2(source, target)
        except OSError as e:
            raise StagingError(f"Erro ao copiar {source} -> {target}: {e}") from e

        self._staged.add(target_relative)
        logger.debug(f"Staged: {source_relative} -> {target_relative}")
        return [target_relative]

    def _stage_bundle(self, bundle: str) -> List[str]:
        """Copia o diretorio inteiro do bundle (uma vez por execucao)"""
        if bundle in self._bundles:
            return []

        source_dir = self.source_root / bundle
        if not source_dir.is_dir():
            raise StagingError(f"Bundle nao encontrado para staging: {source_dir}")

        target_dir = self.staging_root / bundle
        try:
            shutil.copytree(source_dir, target_dir, dirs_exist_ok=True)
        except (OSError, shutil.Error) as e:
            raise StagingError(f"Erro ao copiar bundle {bundle}: {e}") from e

        self._bundles.add(bundle)
        copied = sorted(
            f"{bundle}/{p.relative_to(source_dir).as_posix()}"
            for p in source_dir.rglob("*") if p.is_file()
        )
        self._staged.update(copied)
        logger.info(f"Bundle copiado: {bundle} ({len(copied)} arquivo(s))")
        return copied
