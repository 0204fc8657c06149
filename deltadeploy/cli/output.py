# -*- coding: utf-8 -*-
"""
CLI Output
==========

Deploy report rendering for the deltadeploy CLI: status lines, manifest
contents, deploy jobs and the JSON document used by CI.
"""

import json
import sys
from enum import Enum
from typing import Any, Dict, Iterable, Optional

from ..metadata.converter import ConversionResult
from ..metadata.manifest import MetadataType
from ..metadata_client import DeployJob


class Color(str, Enum):
    """ANSI color codes."""
    RESET = "\033[0m"
    BOLD = "\033[1m"
    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    BLUE = "\033[94m"
    CYAN = "\033[96m"
    GRAY = "\033[90m"


STATUS_COLORS = {
    "Succeeded": Color.GREEN,
    "SucceededPartial": Color.YELLOW,
    "Failed": Color.RED,
    "Canceled": Color.RED,
}

# nivel -> (prefixo, cor)
LEVELS = {
    "ok": ("[OK]", Color.GREEN),
    "info": ("[INFO]", Color.BLUE),
    "warn": ("[WARN]", Color.YELLOW),
    "error": ("[ERROR]", Color.RED),
}


class Output:
    """Renders deploy results on a text stream."""

    def __init__(self, stream=None):
        self.stream = stream or sys.stdout
        self._color_enabled = True

    def disable_color(self):
        self._color_enabled = False

    def write(self, text: str, color: Optional[Color] = None, bold: bool = False, end: str = "\n"):
        if self._color_enabled:
            if bold:
                text = f"{Color.BOLD.value}{text}{Color.RESET.value}"
            if color is not None:
                text = f"{color.value}{text}{Color.RESET.value}"
        print(text, end=end, file=self.stream)

    def status(self, level: str, text: str):
        """One prefixed line, e.g. status("warn", "...") -> [WARN] ..."""
        prefix, color = LEVELS[level]
        self.write(f"{prefix} {text}", color=color)

    def title(self, command: str):
        self.write(f"deltadeploy - {command}", color=Color.CYAN, bold=True)

    def json_document(self, data: Dict[str, Any]):
        """Single JSON document on the stream (no colors)."""
        print(json.dumps(data, indent=2, ensure_ascii=False), file=self.stream)

    # ==================== MANIFESTS ====================

    def metadata_types(self, heading: str, types: Iterable[MetadataType]):
        """Members grouped by type, in manifest order."""
        types = list(types)
        if not types:
            return
        self.write(heading, bold=True)
        for metadata_type in types:
            self.write(f"  {metadata_type.name}", color=Color.CYAN)
            for member in metadata_type.sorted_members():
                self.write(f"    - {member}")

    def conversion(self, result: ConversionResult):
        if result.is_empty:
            self.status("info", "Nada para deploy")
            return

        self.metadata_types("Deploy:", result.additions)
        self.metadata_types("Remocao:", result.deletions)

        if result.test_classes:
            self.status("info", f"Testes detectados: {', '.join(result.test_classes)}")
        for path in result.excluded:
            self.status("warn", f"Excluido: {path}")
        for miss in result.unrecognized:
            self.status("warn", f"Ignorado: {miss}")

    # ==================== JOBS ====================

    def deploy_job(self, label: str, job: DeployJob):
        """Final state of a deploy job with its failures."""
        color = STATUS_COLORS.get(job.status.value, Color.GRAY)
        self.write(f"{label}: ", bold=True, end="")
        self.write(job.status.value, color=color)
        summary = f"  Job {job.id}, componentes {job.components_deployed}/{job.components_total}"
        if job.tests_total:
            summary += f", testes {job.tests_completed}/{job.tests_total}"
        self.write(summary, color=Color.GRAY)

        for failure in list(job.component_failures) + list(job.test_failures):
            self.write(f"    x {failure}", color=Color.RED)

    def outcome(self, action: str, job: Optional[DeployJob], exit_code: int):
        if exit_code == 0:
            self.status("ok", f"{action} concluido")
        else:
            self.status("error", f"{action} terminou com {job.status.value}")
