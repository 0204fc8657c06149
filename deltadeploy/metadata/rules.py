# -*- coding: utf-8 -*-
"""
Regras de Metadata
==================
Tabelas fixas que mapeiam pastas e extensoes do source tree
para tipos de metadata da Metadata API.

As tabelas sao imutaveis e injetadas no PathClassifier e no
FileStager. Para testes, use dataclasses.replace() para criar
uma variante sem alterar o default global.

Referencia: https://developer.salesforce.com/docs/atlas.en-us.api_meta.meta/api_meta/meta_types_list.htm
"""

import re
from dataclasses import dataclass, field
from typing import Optional, Pattern, Tuple

# Namespace da Metadata API
METADATA_NS = "http://soap.sforce.com/2006/04/metadata"

CUSTOM_FIELD_TYPE = "CustomField"
APEX_CLASS_TYPE = "ApexClass"

# Ordem importa: a primeira pasta que casar define o tipo
DEFAULT_FOLDER_TYPES: Tuple[Tuple[str, str], ...] = (
    ("classes", "ApexClass"),
    ("components", "ApexComponent"),
    ("conversationMessageDefinitions", "ConversationMessageDefinition"),
    ("customMetadata", "CustomMetadata"),
    ("fields", "CustomField"),
    ("flexipages", "FlexiPage"),
    ("flow", "Flow"),
    ("flowDefinitions", "FlowDefinition"),
    ("pages", "ApexPage"),
    ("profiles", "Profile"),
    ("standardValueSets", "StandardValueSet"),
    ("tab", "CustomTab"),
    ("triggers", "ApexTrigger"),
    ("workflows", "Workflow"),
    ("lwc", "LightningComponentBundle"),
    ("aura", "AuraDefinitionBundle"),
)

# Ordem importa: sufixos mais especificos antes dos genericos
DEFAULT_MEMBER_SUFFIXES: Tuple[Tuple[str, str], ...] = (
    (".cls-meta.xml", ""),
    (".cls", ""),
    (".trigger-meta.xml", ""),
    (".trigger", ""),
    (".page-meta.xml", ""),
    (".page", ""),
    (".component-meta.xml", ""),
    (".component", ""),
    (".conversationMessageDefinition-meta.xml", ""),
    (".flexipage-meta.xml", ""),
    (".flow-meta.xml", ""),
    (".flowDefinition-meta.xml", ""),
    (".md-meta.xml", ""),
    (".profile-meta.xml", ""),
    (".standardValueSet-meta.xml", ""),
    (".tab-meta.xml", ""),
    (".workflow-meta.xml", ""),
)

# Pastas cujos componentes sao diretorios com varios arquivos
DEFAULT_BUNDLE_FOLDERS: Tuple[str, ...] = ("lwc", "aura")

# Extensoes renomeadas ao copiar para o staging tree
DEFAULT_TRANSLATIONS: Tuple[Tuple[str, str], ...] = (
    (".md-meta.xml", ".md"),
)

CUSTOM_FIELD_PATTERN = r"objects/([^/]+)/fields/([^/]+)\.field-meta\.xml$"


@dataclass(frozen=True)
class MetadataRules:
    """
    Configuracao imutavel de classificacao

    Attributes:
        folder_types: Pares (pasta, tipo) em ordem de resolucao
        member_suffixes: Pares (sufixo, substituto) para derivar o membro
        bundle_folders: Pastas de componentes em bundle
        translations: Pares (sufixo origem, sufixo destino) no staging
        descriptor_suffix: Sufixo do arquivo descritor irmao
        field_pattern: Regex de campos aninhados em objetos
    """
    folder_types: Tuple[Tuple[str, str], ...] = DEFAULT_FOLDER_TYPES
    member_suffixes: Tuple[Tuple[str, str], ...] = DEFAULT_MEMBER_SUFFIXES
    bundle_folders: Tuple[str, ...] = DEFAULT_BUNDLE_FOLDERS
    translations: Tuple[Tuple[str, str], ...] = DEFAULT_TRANSLATIONS
    descriptor_suffix: str = "-meta.xml"
    field_pattern: Pattern = field(default_factory=lambda: re.compile(CUSTOM_FIELD_PATTERN))

    def type_for_folder(self, folder: str) -> Optional[str]:
        """Tipo configurado para a pasta de primeiro nivel"""
        for name, type_name in self.folder_types:
            if name == folder:
                return type_name
        return None

    def is_bundle_folder(self, folder: str) -> bool:
        return folder in self.bundle_folders

    def translate(self, relative_path: str) -> str:
        """Aplica a primeira traducao de extensao que casar"""
        for source_suffix, target_suffix in self.translations:
            if relative_path.endswith(source_suffix):
                return relative_path[: -len(source_suffix)] + target_suffix
        return relative_path


DEFAULT_RULES = MetadataRules()
