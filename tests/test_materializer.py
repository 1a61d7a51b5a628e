"""Tests for package installation and binary selection."""

import os
from unittest.mock import patch

import pytest

from common.cancellation import CancellationToken
from errors import DownloadError, ExtractionError, OperationCancelledError
from registry.nuget.materializer import PackageMaterializer, get_lib_groups
from versioning.frameworks import parse_framework

from nuget_fakes import FakeRegistry, build_nupkg, ident, info

NS20 = parse_framework("netstandard2.0")

FOO = info("Foo", "1.0.0")
FOO_ARCHIVE = build_nupkg({
    "Foo.nuspec": "<package />",
    "lib/net46/Foo.dll": b"net46",
    "lib/netstandard1.3/Foo.dll": b"ns13",
    "lib/netstandard2.0/Foo.dll": b"ns20",
    "lib/netstandard2.0/Foo.xml": "<doc />",
    "lib/netstandard2.0/de/Foo.resources.dll": b"satellite",
    "lib/netstandard2.1/Foo.dll": b"ns21",
})


def make_materializer(tmp_path, packages=(FOO,), archives=None, **kwargs):
    registry = FakeRegistry(packages, archives if archives is not None else {FOO.identity: FOO_ARCHIVE})
    root = tmp_path / "packages"
    return registry, PackageMaterializer(registry, str(root), kwargs.pop("framework", NS20), **kwargs)


def leftovers(directory):
    return [name for name in os.listdir(directory) if name.startswith(".tmp-")]


class TestMaterialize:
    """Test PackageMaterializer.materialize."""

    def test_install_path_layout(self, tmp_path):
        _, materializer = make_materializer(tmp_path)
        expected = os.path.join(str(tmp_path / "packages"), "foo", "1.0.0")
        assert materializer.get_install_path(ident("Foo", "1.0")) == expected

    def test_selects_nearest_group(self, tmp_path):
        _, materializer = make_materializer(tmp_path)
        result = materializer.materialize(FOO)
        assert result.framework == "netstandard2.0"
        assert [os.path.relpath(p, result.install_path) for p in result.binary_files] == [
            os.path.join("lib", "netstandard2.0", "Foo.dll")
        ]
        with open(result.binary_files[0], "rb") as f:
            assert f.read() == b"ns20"

    def test_packaging_artifacts_are_skipped(self, tmp_path):
        _, materializer = make_materializer(tmp_path)
        result = materializer.materialize(FOO)
        assert sorted(os.listdir(result.install_path)) == ["Foo.nuspec", "lib"]

    def test_is_idempotent(self, tmp_path):
        registry, materializer = make_materializer(tmp_path)
        first = materializer.materialize(FOO)
        second = materializer.materialize(FOO)
        assert first.binary_files == second.binary_files
        assert registry.download_calls == [FOO.identity]

    def test_reuses_existing_folder(self, tmp_path):
        registry, materializer = make_materializer(tmp_path, archives={})
        install_path = materializer.get_install_path(FOO.identity)
        os.makedirs(os.path.join(install_path, "lib", "netstandard2.0"))
        (tmp_path / "packages" / "foo" / "1.0.0" / "lib" / "netstandard2.0" / "Foo.dll").write_bytes(b"x")
        result = materializer.materialize(FOO)
        assert len(result.binary_files) == 1
        assert registry.download_calls == []

    def test_no_compatible_group(self, tmp_path):
        archive = build_nupkg({"lib/net46/Foo.dll": b"net46"})
        _, materializer = make_materializer(tmp_path, archives={FOO.identity: archive})
        result = materializer.materialize(FOO)
        assert result.binary_files == []
        assert result.framework is None

    def test_package_without_lib(self, tmp_path):
        archive = build_nupkg({"build/Foo.targets": "<Project />"})
        _, materializer = make_materializer(tmp_path, archives={FOO.identity: archive})
        assert materializer.materialize(FOO).binary_files == []

    def test_files_directly_under_lib(self, tmp_path):
        archive = build_nupkg({"lib/Foo.dll": b"any"})
        _, materializer = make_materializer(tmp_path, archives={FOO.identity: archive})
        result = materializer.materialize(FOO)
        assert [os.path.basename(p) for p in result.binary_files] == ["Foo.dll"]
        assert result.framework == "any"

    def test_escaped_member_names_are_decoded(self, tmp_path):
        archive = build_nupkg({"lib/netstandard2.0/Foo%2BBar.dll": b"plus"})
        _, materializer = make_materializer(tmp_path, archives={FOO.identity: archive})
        result = materializer.materialize(FOO)
        assert [os.path.basename(p) for p in result.binary_files] == ["Foo+Bar.dll"]

    def test_corrupt_archive(self, tmp_path):
        _, materializer = make_materializer(tmp_path, archives={FOO.identity: b"this is not a zip file at all"})
        with pytest.raises(ExtractionError):
            materializer.materialize(FOO)
        parent = os.path.dirname(materializer.get_install_path(FOO.identity))
        assert not os.path.exists(materializer.get_install_path(FOO.identity))
        assert leftovers(parent) == []

    def test_unsafe_member_path(self, tmp_path):
        archive = build_nupkg({"../../evil.dll": b"evil"})
        _, materializer = make_materializer(tmp_path, archives={FOO.identity: archive})
        with pytest.raises(ExtractionError):
            materializer.materialize(FOO)
        assert not (tmp_path / "evil.dll").exists()
        assert not os.path.exists(materializer.get_install_path(FOO.identity))

    def test_failed_download_leaves_nothing(self, tmp_path):
        class BrokenRegistry(FakeRegistry):
            def download(self, dep_info):
                yield b"partial"
                raise DownloadError("connection reset", dep_info.identity)

        registry = BrokenRegistry([FOO])
        materializer = PackageMaterializer(registry, str(tmp_path / "packages"), NS20)
        with pytest.raises(DownloadError):
            materializer.materialize(FOO)
        parent = os.path.dirname(materializer.get_install_path(FOO.identity))
        assert not os.path.exists(materializer.get_install_path(FOO.identity))
        assert leftovers(parent) == []

    def test_capitalized_lib_folder(self, tmp_path):
        archive = build_nupkg({"Lib/netstandard2.0/Foo.dll": b"ns20", "Lib/net46/Foo.dll": b"net46"})
        _, materializer = make_materializer(tmp_path, archives={FOO.identity: archive})
        result = materializer.materialize(FOO)
        assert [os.path.basename(p) for p in result.binary_files] == ["Foo.dll"]
        assert result.framework == "netstandard2.0"

    def test_temp_file_failure_leaves_nothing(self, tmp_path):
        registry, materializer = make_materializer(tmp_path)
        with patch("registry.nuget.materializer.tempfile.mkstemp", side_effect=OSError("disk full")):
            with pytest.raises(ExtractionError):
                materializer.materialize(FOO)
        parent = os.path.dirname(materializer.get_install_path(FOO.identity))
        assert leftovers(parent) == []
        assert registry.download_calls == []

    def test_cancelled_before_start(self, tmp_path):
        token = CancellationToken()
        token.cancel()
        registry, materializer = make_materializer(tmp_path, cancel_token=token)
        with pytest.raises(OperationCancelledError):
            materializer.materialize(FOO)
        assert registry.download_calls == []


class TestMaterializeAll:
    """Test concurrent installation of a resolved set."""

    def test_installs_every_package(self, tmp_path):
        bar = info("Bar", "2.0.0")
        archives = {
            FOO.identity: FOO_ARCHIVE,
            bar.identity: build_nupkg({"lib/netstandard1.0/Bar.dll": b"bar"}),
        }
        registry, materializer = make_materializer(tmp_path, packages=(FOO, bar), archives=archives, max_workers=2)
        results = materializer.materialize_all([FOO, bar])
        assert [r.identity.id for r in results] == ["Bar", "Foo"]
        assert sorted(str(i) for i in registry.download_calls) == ["Bar 2.0.0", "Foo 1.0.0"]

    def test_first_failure_propagates(self, tmp_path):
        bar = info("Bar", "2.0.0")
        archives = {FOO.identity: FOO_ARCHIVE, bar.identity: b"garbage"}
        _, materializer = make_materializer(tmp_path, packages=(FOO, bar), archives=archives, max_workers=1)
        with pytest.raises(ExtractionError):
            materializer.materialize_all([bar, FOO])


class TestLibGroups:
    """Test get_lib_groups."""

    def test_groups_by_framework(self, tmp_path):
        for rel in ("lib/net45/A.dll", "lib/netstandard2.0/A.dll", "lib/netstandard2.0/A.pdb", "lib/Root.dll"):
            path = tmp_path / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(b"")
        groups = get_lib_groups(str(tmp_path))
        assert sorted(str(fw) for fw in groups) == ["any", "net45", "netstandard2.0"]
        assert len(groups[parse_framework("netstandard2.0")]) == 2

    def test_missing_lib(self, tmp_path):
        assert get_lib_groups(str(tmp_path)) == {}
