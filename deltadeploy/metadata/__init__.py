# -*- coding: utf-8 -*-
"""
Metadata
========
Classificacao de caminhos, manifests e staging dos pacotes.
"""

from .rules import DEFAULT_RULES, MetadataRules
from .classifier import ClassifiedMember, PathClassifier
from .manifest import FieldFragmentScanner, ManifestBuilder, MetadataType, render_manifest
from .stager import FileStager
from .converter import ConversionResult, DeltaConverter

__all__ = [
    'DEFAULT_RULES',
    'MetadataRules',
    'ClassifiedMember',
    'PathClassifier',
    'FieldFragmentScanner',
    'ManifestBuilder',
    'MetadataType',
    'render_manifest',
    'FileStager',
    'ConversionResult',
    'DeltaConverter'
]
