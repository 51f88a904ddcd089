from pathlib import Path

from clusterprep.config.models import ClusterRoster
from clusterprep.identity.hosts import (
    BLOCK_END,
    BLOCK_START,
    comment_loopback_alias,
    update_hosts_file,
)

ROSTER = ClusterRoster.from_entries([
    "192.168.100.101 master",
    "192.168.100.102 worker1",
])

STOCK = "127.0.0.1 localhost\n127.0.1.1 master\n\n::1 ip6-localhost ip6-loopback\n"


def test_loopback_alias_is_commented():
    out = comment_loopback_alias(STOCK, "master")
    assert "# 127.0.1.1 master\n" in out
    assert "127.0.0.1 localhost\n" in out


def test_loopback_alias_for_other_names_untouched():
    text = "127.0.1.1 masterful\n"
    assert comment_loopback_alias(text, "master") == text


def test_block_written_and_reapplied_byte_identical(tmp_path: Path):
    hosts = tmp_path / "hosts"
    hosts.write_text(STOCK)

    assert update_hosts_file(hosts, "master", ROSTER) is True
    first = hosts.read_bytes()
    text = first.decode()
    assert text.count(BLOCK_START) == 1
    assert f"{BLOCK_START}\n192.168.100.101 master\n192.168.100.102 worker1\n{BLOCK_END}\n" in text
    assert "::1 ip6-localhost ip6-loopback" in text

    backups = list(tmp_path.glob("hosts.backup.*"))
    assert len(backups) == 1 and backups[0].read_text() == STOCK

    assert update_hosts_file(hosts, "master", ROSTER) is False
    assert hosts.read_bytes() == first
    assert len(list(tmp_path.glob("hosts.backup.*"))) == 1


def test_roster_change_replaces_block_interior(tmp_path: Path):
    hosts = tmp_path / "hosts"
    hosts.write_text(STOCK)
    update_hosts_file(hosts, "master", ROSTER)
    with hosts.open("a") as f:
        f.write("10.9.9.9 manual-entry\n")

    bigger = ClusterRoster.from_entries([*ROSTER.render().splitlines(), "192.168.100.103 worker2"])
    assert update_hosts_file(hosts, "master", bigger) is True

    text = hosts.read_text()
    assert text.count(BLOCK_START) == 1
    assert "192.168.100.103 worker2" in text
    assert text.endswith("10.9.9.9 manual-entry\n")
