# -*- coding: utf-8 -*-
"""
Delta Converter
===============
Transforma um ChangeSet em dois pacotes MDAPI prontos para zip:

    <output>/package/       arquivos alterados + package.xml
                            (+ destructiveChanges.xml vazio se houver remocoes)
    <output>/destructive/   package.xml vazio + destructiveChanges.xml

O diretorio de saida e removido e recriado a cada execucao.

Exemplo de uso:
    converter = DeltaConverter(
        source_root=Path("force-app/main/default"),
        output_dir=Path(".deltadeploy_out")
    )
    result = converter.convert(changes)

    result.package_dir       # Path(".deltadeploy_out/package")
    result.test_classes      # ["MinhaClasseTest"]
"""

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from ..changes import ChangeSet
from ..errors import ClassificationMiss, EmptyPackageError, StagingError
from .classifier import ClassifiedMember, PathClassifier
from .manifest import ManifestBuilder, MetadataType
from .rules import CUSTOM_FIELD_TYPE, DEFAULT_RULES, MetadataRules
from .stager import FileStager

logger = logging.getLogger(__name__)

PACKAGE_MANIFEST = "package.xml"
DESTRUCTIVE_MANIFEST = "destructiveChanges.xml"

# Agrupamento transitorio objeto -> campos
GroupedFieldData = Dict[str, Set[str]]


@dataclass
class ConversionResult:
    """Resultado da conversao de um ChangeSet"""
    output_dir: Path
    package_dir: Optional[Path] = None
    destructive_dir: Optional[Path] = None
    additions: List[MetadataType] = field(default_factory=list)
    deletions: List[MetadataType] = field(default_factory=list)
    test_classes: List[str] = field(default_factory=list)
    excluded: List[str] = field(default_factory=list)
    unrecognized: List[ClassificationMiss] = field(default_factory=list)
    staged_files: List[str] = field(default_factory=list)

    @property
    def has_additions(self) -> bool:
        return self.package_dir is not None

    @property
    def has_deletions(self) -> bool:
        return self.destructive_dir is not None

    @property
    def is_empty(self) -> bool:
        return not self.has_additions and not self.has_deletions

    def to_dict(self):
        def _types(types: List[MetadataType]):
            return {t.name: t.sorted_members() for t in types}

        return {
            "output_dir": str(self.output_dir),
            "package_dir": str(self.package_dir) if self.package_dir else None,
            "destructive_dir": str(self.destructive_dir) if self.destructive_dir else None,
            "additions": _types(self.additions),
            "deletions": _types(self.deletions),
            "test_classes": self.test_classes,
            "excluded": self.excluded,
            "unrecognized": [miss.path for miss in self.unrecognized],
            "staged_files": self.staged_files
        }


class DeltaConverter:
    """Converte alteracoes do source tree em pacotes de deploy"""

    PACKAGE_DIR = "package"
    DESTRUCTIVE_DIR = "destructive"

    def __init__(
        self,
        source_root: Path,
        output_dir: Path,
        package_version: str = "58.0",
        rules: MetadataRules = DEFAULT_RULES,
        exclude_types: Sequence[str] = (),
        detect_tests: bool = True
    ):
        """
        Args:
            source_root: Raiz do source tree (ex: force-app/main/default)
            output_dir: Diretorio de saida (recriado a cada execucao)
            package_version: Versao escrita nos manifests
            rules: Tabelas de classificacao
            exclude_types: Tipos de metadata ignorados
            detect_tests: Detectar classes de teste alteradas
        """
        self.source_root = Path(source_root)
        self.output_dir = Path(output_dir)
        self.package_version = package_version
        self.rules = rules
        self.exclude_types = set(exclude_types)
        self.detect_tests = detect_tests
        self.classifier = PathClassifier(rules)

    @property
    def package_dir(self) -> Path:
        return self.output_dir / self.PACKAGE_DIR

    @property
    def destructive_dir(self) -> Path:
        return self.output_dir / self.DESTRUCTIVE_DIR

    def prepare_output(self):
        """Remove e recria o diretorio de saida"""
        if self.output_dir.exists():
            shutil.rmtree(self.output_dir)
        self.output_dir.mkdir(parents=True)
        logger.debug(f"Diretorio de saida recriado: {self.output_dir}")

    def convert(self, changes: ChangeSet) -> ConversionResult:
        """
        Classifica, agrega e copia as alteracoes

        Raises:
            EmptyPackageError: Alteracoes sem nenhum componente reconhecido
            FragmentParseError: Fragmento de campo malformado
            FragmentMissingError: Fragmento de campo ausente
            StagingError: Arquivo de origem ausente
        """
        self.prepare_output()
        result = ConversionResult(output_dir=self.output_dir)

        if changes.is_empty:
            logger.info("Nenhuma alteracao para converter")
            return result

        added, deleted = self._split_bundle_deletions(changes)

        additions = ManifestBuilder(self.source_root, self.package_dir)
        deletions = ManifestBuilder()

        added_members = self._classify(added, result)
        deleted_members = self._classify(deleted, result)

        stager = FileStager(self.source_root, self.package_dir, self.rules)
        grouped: GroupedFieldData = {}

        for path, classified in added_members:
            additions.accumulate(classified.type, classified.member)

            if classified.type == CUSTOM_FIELD_TYPE and self.classifier.is_field_path(path):
                object_name, field_name = classified.member.split(".", 1)
                grouped.setdefault(object_name, set()).add(field_name)
                continue

            stager.stage(path)
            self._detect_test(path, classified, result)

        if grouped:
            additions.aggregate_fields(grouped)

        for _, classified in deleted_members:
            deletions.accumulate(classified.type, classified.member)

        if additions.is_empty and deletions.is_empty:
            if result.excluded:
                logger.info(f"Todos os componentes alterados sao de tipos excluidos ({len(result.excluded)})")
                return result
            raise EmptyPackageError(
                f"Nenhum componente reconhecido em {len(added) + len(deleted)} arquivo(s) alterado(s)"
            )

        if not additions.is_empty:
            additions.write(self.package_dir / PACKAGE_MANIFEST, self.package_version)
            if not deletions.is_empty:
                self._write_empty(self.package_dir / DESTRUCTIVE_MANIFEST)
            result.package_dir = self.package_dir
            result.additions = additions.metadata_types()

        if not deletions.is_empty:
            self._write_empty(self.destructive_dir / PACKAGE_MANIFEST)
            deletions.write(self.destructive_dir / DESTRUCTIVE_MANIFEST, self.package_version)
            result.destructive_dir = self.destructive_dir
            result.deletions = deletions.metadata_types()

        result.staged_files = stager.staged_files
        result.test_classes = sorted(set(result.test_classes))

        logger.info(
            f"Conversao concluida: {additions.member_count} componente(s) para deploy, "
            f"{deletions.member_count} para remocao, "
            f"{len(result.unrecognized)} ignorado(s)"
        )
        return result

    def _classify(
        self,
        paths: Iterable[str],
        result: ConversionResult
    ) -> List[Tuple[str, ClassifiedMember]]:
        """Classifica e aplica a lista de tipos excluidos"""
        classified, misses = self.classifier.classify_all(paths)
        result.unrecognized.extend(misses)

        kept = []
        for path, member in classified:
            if member.type in self.exclude_types:
                logger.info(f"Tipo excluido: {member.type} ({path})")
                result.excluded.append(path)
                continue
            kept.append((path, member))
        return kept

    def _split_bundle_deletions(self, changes: ChangeSet) -> Tuple[List[str], List[str]]:
        """
        Arquivo removido de um bundle que ainda existe e uma modificacao
        do bundle, nao uma remocao do componente.
        """
        added = list(changes.added_or_modified)
        deleted = []

        for path in changes.deleted:
            bundle = self.classifier.bundle_root(path)
            if bundle and (self.source_root / bundle).is_dir():
                logger.debug(f"Remocao dentro do bundle {bundle} tratada como modificacao")
                added.append(path)
                continue
            deleted.append(path)

        return added, deleted

    def _detect_test(self, path: str, classified: ClassifiedMember, result: ConversionResult):
        if not self.detect_tests or not path.endswith(".cls"):
            return

        source = self.source_root / path
        try:
            content = source.read_text(encoding="utf-8", errors="ignore")
        except OSError as e:
            raise StagingError(f"Erro ao ler {source}: {e}") from e

        if self.classifier.is_test_class(path, content):
            logger.info(f"Classe de teste detectada: {classified.member}")
            result.test_classes.append(classified.member)

    def _write_empty(self, path: Path):
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(ManifestBuilder.render_empty(self.package_version), encoding="utf-8")
