# -*- coding: utf-8 -*-
"""
Path Classifier
===============
Mapeia um caminho relativo do source tree para o tipo de metadata
e o nome do membro usado no package.xml.

Exemplo de uso:
    from deltadeploy.metadata import PathClassifier

    classifier = PathClassifier()

    classifier.classify("objects/Account/fields/MyField__c.field-meta.xml")
    # ClassifiedMember(type='CustomField', member='Account.MyField__c')

    classifier.classify("classes/MyClass.cls")
    # ClassifiedMember(type='ApexClass', member='MyClass')
"""

import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from ..errors import ClassificationMiss
from .rules import APEX_CLASS_TYPE, CUSTOM_FIELD_TYPE, DEFAULT_RULES, MetadataRules

logger = logging.getLogger(__name__)

# Apex nao diferencia maiusculas
TEST_CLASS_PATTERN = re.compile(r"@istest\b|\btestmethod\b", re.IGNORECASE)


@dataclass(frozen=True)
class ClassifiedMember:
    """Tipo de metadata e nome do membro de um caminho"""
    type: str
    member: str


def normalize_path(path: str) -> str:
    """Normaliza separadores e remove prefixo './'"""
    normalized = path.replace("\\", "/").strip()
    while normalized.startswith("./"):
        normalized = normalized[2:]
    return normalized


class PathClassifier:
    """
    Classificador de caminhos

    Funcao pura sobre o caminho e as regras injetadas; nao acessa
    o sistema de arquivos.
    """

    def __init__(self, rules: MetadataRules = DEFAULT_RULES):
        self.rules = rules

    def classify(self, relative_path: str) -> Optional[ClassifiedMember]:
        """
        Classifica um caminho relativo ao source tree

        Ordem de resolucao:
            1. Campo aninhado (objects/<Objeto>/fields/<Campo>.field-meta.xml)
            2. Primeira pasta de primeiro nivel configurada

        Returns:
            ClassifiedMember ou None se o caminho nao for reconhecido
        """
        path = normalize_path(relative_path)

        field_member = self.field_member(path)
        if field_member:
            return ClassifiedMember(CUSTOM_FIELD_TYPE, field_member)

        parts = path.split("/")
        if len(parts) < 2:
            return None

        type_name = self.rules.type_for_folder(parts[0])
        if not type_name:
            return None

        member = self.member_name(path)
        if not member:
            return None

        return ClassifiedMember(type_name, member)

    def field_member(self, relative_path: str) -> Optional[str]:
        """Extrai '<Objeto>.<Campo>' de um caminho de campo"""
        match = self.rules.field_pattern.search(normalize_path(relative_path))
        if not match:
            return None
        object_name, field_name = match.group(1), match.group(2)
        return f"{object_name}.{field_name}"

    def member_name(self, relative_path: str) -> Optional[str]:
        """
        Deriva o nome do membro para tipos que nao sao campos

        Bundles usam o nome do diretorio do componente; os demais
        removem o primeiro sufixo configurado que casar com o nome
        do arquivo.
        """
        path = normalize_path(relative_path)
        parts = path.split("/")

        if self.rules.is_bundle_folder(parts[0]):
            # Arquivos soltos na raiz da pasta (jsconfig.json etc.) nao sao componentes
            return parts[1] if len(parts) >= 3 else None

        base_name = parts[-1]
        for suffix, replacement in self.rules.member_suffixes:
            if base_name.endswith(suffix):
                return base_name[: -len(suffix)] + replacement

        return self.field_member(path)

    def classify_all(
        self,
        relative_paths: Iterable[str]
    ) -> Tuple[List[Tuple[str, ClassifiedMember]], List[ClassificationMiss]]:
        """
        Classifica varios caminhos

        Returns:
            Tupla (classificados, nao reconhecidos), preservando a ordem
        """
        classified = []
        misses = []

        for path in relative_paths:
            result = self.classify(path)
            if result is None:
                logger.warning(f"Ignorando arquivo: {path} (tipo de metadata desconhecido)")
                misses.append(ClassificationMiss(path))
                continue
            classified.append((path, result))

        return classified, misses

    def is_test_class(self, relative_path: str, content: str) -> bool:
        """ApexClass cujo codigo e anotado com @isTest ou usa testMethod"""
        result = self.classify(relative_path)
        if result is None or result.type != APEX_CLASS_TYPE:
            return False
        if not normalize_path(relative_path).endswith(".cls"):
            return False
        return bool(TEST_CLASS_PATTERN.search(content))

    def is_field_path(self, relative_path: str) -> bool:
        return self.field_member(relative_path) is not None

    def bundle_root(self, relative_path: str) -> Optional[str]:
        """Diretorio do bundle ('lwc/<nome>') ou None"""
        parts = normalize_path(relative_path).split("/")
        if len(parts) >= 3 and self.rules.is_bundle_folder(parts[0]):
            return f"{parts[0]}/{parts[1]}"
        return None
