# -*- coding: utf-8 -*-
"""
Tests for PackageArchiver
"""

import io
import zipfile

import pytest

from deltadeploy.archiver import PackageArchiver
from deltadeploy.errors import StagingError


@pytest.fixture
def package_dir(tmp_path):
    root = tmp_path / "package"
    (root / "classes").mkdir(parents=True)
    (root / "package.xml").write_text("<Package/>")
    (root / "classes" / "A.cls").write_text("public class A {}")
    return root


class TestPackageArchiver:

    @pytest.mark.unit
    def test_names_relative_to_root(self, package_dir, tmp_path):
        archive = PackageArchiver().zip_directory(package_dir, tmp_path / "out" / "package.zip")

        with zipfile.ZipFile(archive) as zf:
            assert zf.namelist() == ["classes/A.cls", "package.xml"]
            assert zf.read("classes/A.cls") == b"public class A {}"

    @pytest.mark.unit
    def test_stable_output(self, package_dir):
        archiver = PackageArchiver()

        first = zipfile.ZipFile(io.BytesIO(archiver.zip_bytes(package_dir))).namelist()
        second = zipfile.ZipFile(io.BytesIO(archiver.zip_bytes(package_dir))).namelist()

        assert first == second

    @pytest.mark.unit
    def test_requires_manifest(self, tmp_path):
        with pytest.raises(StagingError):
            PackageArchiver().zip_bytes(tmp_path)
