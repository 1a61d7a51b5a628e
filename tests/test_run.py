"""End-to-end tests for the command line entry point."""

import logging
import os
import tarfile
from unittest.mock import patch

import pytest

import nuget2unity
from args import parse_args
from config import Settings
from constants import ExitCodes
from errors import (
    DownloadError,
    FrameworkMismatchError,
    NuGet2UnityError,
    OperationCancelledError,
    PackageNotFoundError,
    UnsatisfiableError,
)
from pipeline import fetch_package_binaries

from nuget_fakes import FakeRegistry, build_nupkg, info

EXCLUDED = "System.Runtime.Serialization.Primitives"


def registry_for_foo():
    packages = [
        info("Foo", "1.0.0", {"Bar": "1.0.0", EXCLUDED: "4.3.0"}),
        info("Foo", "2.0.0-beta"),
        info("Bar", "1.0.0"),
        info(EXCLUDED, "4.3.0"),
    ]
    archives = {
        packages[0].identity: build_nupkg({
            "lib/netstandard2.0/Foo.dll": b"foo",
            "lib/net46/Foo.dll": b"foo-net46",
        }),
        packages[2].identity: build_nupkg({"lib/netstandard1.3/Bar.dll": b"bar"}),
        packages[3].identity: build_nupkg({"lib/netstandard1.3/" + EXCLUDED + ".dll": b"runtime"}),
    }
    return FakeRegistry(packages, archives)


def package_contents(path):
    with tarfile.open(path, "r:gz") as tar:
        members = {m.name: m for m in tar.getmembers()}
        result = {}
        for name, member in members.items():
            if name.endswith("/pathname"):
                guid = name.split("/")[0]
                asset = members.get(f"{guid}/asset")
                pathname = tar.extractfile(member).read().decode("utf-8")
                result[pathname] = tar.extractfile(asset).read() if asset else None
        return result


class TestFetchPackageBinaries:
    """Test the fetch pipeline against an in-memory registry."""

    def settings(self, tmp_path):
        return Settings(packages_dir=str(tmp_path / "packages"), max_workers=2)

    def test_latest_stable_with_dependencies(self, tmp_path):
        registry = registry_for_foo()
        binaries = fetch_package_binaries("Foo", None, self.settings(tmp_path), client=registry)
        assert [os.path.basename(p) for p in binaries] == ["Bar.dll", "Foo.dll"]
        assert all(p.startswith(str(tmp_path / "packages")) for p in binaries)
        assert EXCLUDED.lower() not in os.listdir(tmp_path / "packages")

    def test_unknown_version(self, tmp_path):
        with pytest.raises(PackageNotFoundError):
            fetch_package_binaries("Foo", "9.0.0", self.settings(tmp_path), client=registry_for_foo())

    def test_invalid_version(self, tmp_path):
        with pytest.raises(NuGet2UnityError):
            fetch_package_binaries("Foo", "not.a.version", self.settings(tmp_path), client=registry_for_foo())

    def test_root_without_compatible_binaries(self, tmp_path):
        settings = Settings(packages_dir=str(tmp_path / "packages"), framework="netstandard1.0")
        with pytest.raises(FrameworkMismatchError):
            fetch_package_binaries("Foo", "1.0.0", settings, client=registry_for_foo())

    def test_excluded_root(self, tmp_path):
        with pytest.raises(NuGet2UnityError):
            fetch_package_binaries(EXCLUDED, "4.3.0", self.settings(tmp_path), client=registry_for_foo())

    def test_unsupported_framework(self, tmp_path):
        settings = Settings(packages_dir=str(tmp_path / "packages"), framework="portable-net45+win8")
        with pytest.raises(NuGet2UnityError):
            fetch_package_binaries("Foo", "1.0.0", settings, client=registry_for_foo())


class TestRun:
    """Test nuget2unity.run end to end."""

    def args(self, tmp_path, *extra):
        return parse_args([
            "-n", "Foo", "-v", "1.0.0",
            "-o", str(tmp_path / "out"),
            "--packagesdir", str(tmp_path / "packages"),
            *extra,
        ])

    def test_writes_unitypackage(self, tmp_path):
        with patch("pipeline.NuGetClient", return_value=registry_for_foo()):
            path = nuget2unity.run(self.args(tmp_path))

        assert path == str(tmp_path / "out" / "Foo.unitypackage")
        contents = package_contents(path)
        assert sorted(contents) == [
            "Assets/Plugins",
            "Assets/Plugins/Bar.dll",
            "Assets/Plugins/Foo.dll",
            "Assets/Plugins/link.xml",
        ]
        assert contents["Assets/Plugins/Foo.dll"] == b"foo"
        link_xml = contents["Assets/Plugins/link.xml"].decode("utf-8")
        assert 'fullname="System.Core"' in link_xml
        assert 'fullname="Bar" preserve="all"' in link_xml
        assert 'fullname="Foo" preserve="all"' in link_xml
        assert EXCLUDED not in link_xml

    def test_single_package_without_dependencies(self, tmp_path):
        foo = info("Foo", "1.0.0")
        registry = FakeRegistry([foo], {foo.identity: build_nupkg({"lib/netstandard2.0/Foo.dll": b"foo"})})
        with patch("pipeline.NuGetClient", return_value=registry):
            path = nuget2unity.run(self.args(tmp_path))

        contents = package_contents(path)
        assert sorted(contents) == ["Assets/Plugins", "Assets/Plugins/Foo.dll", "Assets/Plugins/link.xml"]
        assert contents["Assets/Plugins"] is None
        assert contents["Assets/Plugins/Foo.dll"] == b"foo"
        assert contents["Assets/Plugins/link.xml"].decode("utf-8") == (
            "<linker>\n"
            '  <assembly fullname="System.Core">\n'
            '    <type fullname="System.Linq.Expressions.Interpreter.LightLambda" preserve="all" />\n'
            "  </assembly>\n"
            '  <assembly fullname="Foo" preserve="all" />\n'
            "</linker>\n"
        )

    def test_skip_link_xml(self, tmp_path):
        with patch("pipeline.NuGetClient", return_value=registry_for_foo()):
            path = nuget2unity.run(self.args(tmp_path, "--skiplinkxml"))
        assert "Assets/Plugins/link.xml" not in package_contents(path)

    def test_existing_unity_project(self, tmp_path):
        project = tmp_path / "project"
        (project / "Assets" / "Scripts").mkdir(parents=True)
        (project / "Assets" / "Scripts" / "Hello.cs").write_text("class Hello {}")
        (project / "Assets" / "Plugins").mkdir()
        (project / "Assets" / "Plugins" / "Old.dll").write_bytes(b"old")

        with patch("pipeline.NuGetClient", return_value=registry_for_foo()):
            path = nuget2unity.run(self.args(tmp_path, "-p", str(project)))

        contents = package_contents(path)
        assert "Assets/Scripts/Hello.cs" in contents
        assert "Assets/Plugins/Old.dll" not in contents
        assert (project / "Assets" / "Plugins" / "Foo.dll").exists()

    def test_interrupt_cancels_token(self, tmp_path):
        seen = {}

        def interrupted(package_id, version, settings, cancel_token=None):
            seen["token"] = cancel_token
            raise KeyboardInterrupt

        with patch("nuget2unity.fetch_package_binaries", side_effect=interrupted):
            with pytest.raises(KeyboardInterrupt):
                nuget2unity.run(self.args(tmp_path))
        assert seen["token"].is_cancelled


class TestMain:
    """Test exit codes of nuget2unity.main."""

    @pytest.mark.parametrize("error,code", [
        (DownloadError("offline"), ExitCodes.CONNECTION_ERROR),
        (PackageNotFoundError("missing"), ExitCodes.RESOLUTION_ERROR),
        (UnsatisfiableError("Bar", ["[1.0.0, 1.1.0)", "[1.2.0, )"]), ExitCodes.RESOLUTION_ERROR),
        (FrameworkMismatchError("no binaries"), ExitCodes.RESOLUTION_ERROR),
        (OperationCancelledError("cancelled"), ExitCodes.CANCELLED),
        (NuGet2UnityError("disk full"), ExitCodes.FILE_ERROR),
        (KeyboardInterrupt(), ExitCodes.CANCELLED),
    ])
    def test_exit_codes(self, error, code):
        with patch("nuget2unity.run", side_effect=error):
            with pytest.raises(SystemExit) as excinfo:
                nuget2unity.main(["-n", "Foo"])
        assert excinfo.value.code == code.value

    def test_success(self, tmp_path):
        with patch("nuget2unity.run", return_value=str(tmp_path / "Foo.unitypackage")):
            with pytest.raises(SystemExit) as excinfo:
                nuget2unity.main(["-n", "Foo", "--loglevel", "WARNING"])
        assert excinfo.value.code == ExitCodes.SUCCESS.value

    def test_log_level_defaults_to_unset(self):
        assert parse_args(["-n", "Foo"]).LOG_LEVEL is None

    @pytest.mark.parametrize("argv,expected", [
        (["-n", "Foo"], logging.ERROR),
        (["-n", "Foo", "--loglevel", "WARNING"], logging.WARNING),
    ])
    def test_log_level_from_environment(self, monkeypatch, tmp_path, argv, expected):
        monkeypatch.setenv("NUGET2UNITY_LOG_LEVEL", "ERROR")
        root = logging.getLogger()
        previous = root.level
        try:
            with patch("nuget2unity.run", return_value=str(tmp_path / "Foo.unitypackage")):
                with pytest.raises(SystemExit):
                    nuget2unity.main(argv)
            assert root.level == expected
        finally:
            root.setLevel(previous)

    def test_package_is_required(self):
        with pytest.raises(SystemExit) as excinfo:
            nuget2unity.main([])
        assert excinfo.value.code == 2
