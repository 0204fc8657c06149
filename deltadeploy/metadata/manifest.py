# -*- coding: utf-8 -*-
"""
Manifest Builder
================
Acumula membros classificados e gera os manifests (package.xml e
destructiveChanges.xml) no formato da Metadata API.

Tambem agrega fragmentos de campos (objects/<Objeto>/fields/*.field-meta.xml)
em um unico objects/<Objeto>.object por objeto, como exigido pelo
formato MDAPI.

Exemplo de uso:
    builder = ManifestBuilder()
    builder.accumulate("ApexClass", "MinhaClasse")
    builder.accumulate("CustomField", "Account.Codigo__c")

    xml = builder.render("58.0")
"""

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple
from xml.sax.saxutils import escape

from ..errors import FragmentMissingError, FragmentParseError
from .rules import METADATA_NS

logger = logging.getLogger(__name__)

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>'
INDENT = "    "


@dataclass
class MetadataType:
    """Tipo de metadata e seus membros"""
    name: str
    members: Set[str] = field(default_factory=set)

    def sorted_members(self) -> List[str]:
        return sorted(self.members)


def render_manifest(metadata_types: Iterable[MetadataType], version: str) -> str:
    """
    Gera o XML de um manifest

    Tipos e membros sao ordenados de forma lexicografica
    (case-sensitive); sem tipos, gera apenas a versao.
    """
    lines = [XML_DECLARATION, f'<Package xmlns="{METADATA_NS}">']

    for metadata_type in sorted(metadata_types, key=lambda t: t.name):
        if not metadata_type.members:
            continue
        lines.append(f"{INDENT}<types>")
        for member in metadata_type.sorted_members():
            lines.append(f"{INDENT * 2}<members>{escape(member)}</members>")
        lines.append(f"{INDENT * 2}<name>{escape(metadata_type.name)}</name>")
        lines.append(f"{INDENT}</types>")

    lines.append(f"{INDENT}<version>{escape(version)}</version>")
    lines.append("</Package>")

    return "\n".join(lines) + "\n"


def _local_name(tag: str) -> str:
    return tag.split("}")[-1]


class FieldFragmentScanner:
    """
    Scanner estrutural de fragmentos de campo

    Le o documento <CustomField> e produz a sequencia ordenada de
    propriedades (tag, elemento) do primeiro nivel, sem namespace.
    """

    root_tag = "CustomField"

    def scan(self, content: bytes, source: str) -> List[Tuple[str, ET.Element]]:
        """
        Extrai as propriedades do fragmento

        Args:
            content: Conteudo bruto do arquivo
            source: Caminho usado nas mensagens de erro

        Raises:
            FragmentParseError: XML malformado ou raiz inesperada
        """
        try:
            root = ET.fromstring(content)
        except ET.ParseError as e:
            raise FragmentParseError(source, str(e)) from e

        root_name = _local_name(root.tag)
        if root_name != self.root_tag:
            raise FragmentParseError(
                source,
                f"raiz esperada <{self.root_tag}>, encontrada <{root_name}>"
            )

        properties = []
        for child in root:
            for elem in child.iter():
                if isinstance(elem.tag, str):
                    elem.tag = _local_name(elem.tag)
            properties.append((child.tag, child))

        return properties

    def scan_file(self, path: Path) -> List[Tuple[str, ET.Element]]:
        """Le e escaneia um fragmento do disco"""
        if not path.is_file():
            raise FragmentMissingError(str(path))
        return self.scan(path.read_bytes(), str(path))


class ManifestBuilder:
    """
    Acumulador de membros por tipo

    Os buckets sao conjuntos: inserir o mesmo membro duas vezes
    altera o estado apenas uma vez.
    """

    def __init__(
        self,
        source_root: Optional[Path] = None,
        staging_root: Optional[Path] = None,
        scanner: Optional[FieldFragmentScanner] = None
    ):
        """
        Args:
            source_root: Raiz do source tree (leitura de fragmentos)
            staging_root: Raiz do staging tree (escrita dos objetos agregados)
            scanner: Scanner de fragmentos de campo
        """
        self.source_root = Path(source_root) if source_root else None
        self.staging_root = Path(staging_root) if staging_root else None
        self.scanner = scanner or FieldFragmentScanner()
        self._buckets: Dict[str, Set[str]] = {}

    @classmethod
    def from_types(cls, metadata_types: Iterable[MetadataType]) -> "ManifestBuilder":
        builder = cls()
        for metadata_type in metadata_types:
            for member in metadata_type.members:
                builder.accumulate(metadata_type.name, member)
        return builder

    def accumulate(self, type_name: str, member: str) -> bool:
        """
        Insere um membro no bucket do tipo

        Returns:
            True se o bucket mudou
        """
        bucket = self._buckets.setdefault(type_name, set())
        if member in bucket:
            return False
        bucket.add(member)
        logger.debug(f"Membro adicionado: {type_name} -> {member}")
        return True

    @property
    def is_empty(self) -> bool:
        return not any(self._buckets.values())

    @property
    def member_count(self) -> int:
        return sum(len(members) for members in self._buckets.values())

    def metadata_types(self) -> List[MetadataType]:
        """Buckets como MetadataType, ordenados por nome"""
        return [
            MetadataType(name, set(members))
            for name, members in sorted(self._buckets.items())
            if members
        ]

    def render(self, version: str) -> str:
        """Gera o manifest com os buckets acumulados"""
        return render_manifest(self.metadata_types(), version)

    @staticmethod
    def render_empty(version: str) -> str:
        """Manifest apenas com a versao (par obrigatorio do lado oposto)"""
        return render_manifest([], version)

    def write(self, path: Path, version: str) -> Path:
        """Grava o manifest renderizado em disco"""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.render(version), encoding="utf-8")
        return path

    # ==================== AGREGACAO DE CAMPOS ====================

    def aggregate_fields(self, grouped: Mapping[str, Iterable[str]]) -> List[Path]:
        """
        Gera um objects/<Objeto>.object por objeto com os campos alterados

        Args:
            grouped: Mapa objeto -> nomes curtos dos campos

        Returns:
            Caminhos dos arquivos gerados no staging tree

        Raises:
            FragmentParseError: Fragmento malformado (aborta a execucao)
            FragmentMissingError: Fragmento ausente no source tree
        """
        if self.source_root is None or self.staging_root is None:
            raise ValueError("source_root e staging_root sao obrigatorios para agregar campos")

        written = []
        for object_name in sorted(grouped):
            fields = sorted(set(grouped[object_name]))
            if not fields:
                continue

            logger.info(f"Agregando {len(fields)} campo(s) do objeto {object_name}")
            document = self._build_custom_object(object_name, fields)

            output_path = self.staging_root / "objects" / f"{object_name}.object"
            output_path.parent.mkdir(parents=True, exist_ok=True)
            output_path.write_text(document, encoding="utf-8")
            written.append(output_path)

        return written

    def _build_custom_object(self, object_name: str, fields: List[str]) -> str:
        """Monta o documento <CustomObject> com um bloco <fields> por campo"""
        root = ET.Element("CustomObject", {"xmlns": METADATA_NS})

        for field_name in fields:
            fragment_path = (
                self.source_root / "objects" / object_name / "fields" / f"{field_name}.field-meta.xml"
            )
            properties = self.scanner.scan_file(fragment_path)

            fields_node = ET.SubElement(root, "fields")
            for _, element in properties:
                fields_node.append(element)

        ET.indent(root, space=INDENT)
        return f"{XML_DECLARATION}\n{ET.tostring(root, encoding='unicode')}\n"
