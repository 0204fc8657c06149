# -*- coding: utf-8 -*-
"""
Package Archiver
================
Compacta um diretorio de pacote (staging tree + manifests) em zip,
com package.xml na raiz do arquivo (singlePackage).
"""

import io
import logging
import zipfile
from pathlib import Path

from .errors import StagingError

logger = logging.getLogger(__name__)


class PackageArchiver:
    """Gera o zip enviado no deploy"""

    def __init__(self, compression: int = zipfile.ZIP_DEFLATED):
        self.compression = compression

    def zip_bytes(self, package_dir: Path) -> bytes:
        """
        Compacta o diretorio em memoria

        Os nomes dentro do zip sao relativos ao diretorio e usam '/'.
        Entradas sao gravadas em ordem para que o zip seja estavel.
        """
        package_dir = Path(package_dir)
        if not (package_dir / "package.xml").is_file():
            raise StagingError(f"package.xml ausente em {package_dir}")

        zip_buffer = io.BytesIO()

        with zipfile.ZipFile(zip_buffer, "w", self.compression) as zf:
            for path in sorted(p for p in package_dir.rglob("*") if p.is_file()):
                zf.write(path, path.relative_to(package_dir).as_posix())

        return zip_buffer.getvalue()

    def zip_directory(self, package_dir: Path, archive_path: Path) -> Path:
        """Compacta o diretorio e grava o zip em disco"""
        archive_path = Path(archive_path)
        content = self.zip_bytes(package_dir)

        archive_path.parent.mkdir(parents=True, exist_ok=True)
        archive_path.write_bytes(content)

        logger.info(f"Pacote gerado: {archive_path} ({len(content)} bytes)")
        return archive_path
