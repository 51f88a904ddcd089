import subprocess
import types
from pathlib import Path

import pytest

from clusterprep.config.models import PathsConfig


class SpyRun:
    """
    Stand-in for subprocess.run. Records argv and answers by longest
    matching argv prefix; anything unmatched succeeds with empty output.
    A response may be a callable taking argv, for stateful fakes.
    """

    def __init__(self):
        self.calls = []
        self.responses = {}

    def when(self, *prefix, rc=0, stdout="", stderr=""):
        self.responses[tuple(prefix)] = (rc, stdout, stderr)
        return self

    def __call__(self, argv, capture_output=False, text=False, check=False, **kwargs):
        argv = [str(a) for a in argv]
        self.calls.append(argv)
        for prefix in sorted(self.responses, key=len, reverse=True):
            if tuple(argv[: len(prefix)]) == prefix:
                resp = self.responses[prefix]
                if callable(resp):
                    resp = resp(argv)
                rc, out, err = resp
                return types.SimpleNamespace(returncode=rc, stdout=out, stderr=err)
        return types.SimpleNamespace(returncode=0, stdout="", stderr="")

    def called(self, *prefix) -> bool:
        return any(tuple(c[: len(prefix)]) == prefix for c in self.calls)

    def count(self, *prefix) -> int:
        return sum(1 for c in self.calls if tuple(c[: len(prefix)]) == prefix)


@pytest.fixture
def spy(monkeypatch):
    s = SpyRun()
    monkeypatch.setattr(subprocess, "run", s)
    return s


@pytest.fixture
def host_paths(tmp_path: Path) -> PathsConfig:
    etc = tmp_path / "etc"
    (etc / "netplan").mkdir(parents=True)
    (etc / "ssh").mkdir()
    return PathsConfig(
        netplan_dir=etc / "netplan",
        netplan_file=etc / "netplan" / "99-static-ip.yaml",
        cloud_cfg_dir=etc / "cloud" / "cloud.cfg.d",
        sshd_config=etc / "ssh" / "sshd_config",
        hosts_file=etc / "hosts",
        os_release=etc / "os-release",
        fstab=etc / "fstab",
        limits_file=etc / "security" / "limits.d" / "99-clusterprep.conf",
        thp_enabled=tmp_path / "sys" / "transparent_hugepage" / "enabled",
        ssh_dir=tmp_path / "home" / ".ssh",
    )
