import textwrap

from clusterprep.identity.sshd import effective_value, patch_directives

DIRECTIVES = [
    ("PubkeyAuthentication", "yes"),
    ("PasswordAuthentication", "yes"),
    ("PermitRootLogin", "no"),
]

STOCK = textwrap.dedent("""\
    Include /etc/ssh/sshd_config.d/*.conf
    #PermitRootLogin prohibit-password
    #PubkeyAuthentication yes
    PasswordAuthentication no
    UsePAM yes
""")


def test_effective_value_uses_last_matching_line():
    lines = ["#PermitRootLogin yes", "PermitRootLogin no", "  # PermitRootLogin maybe"]
    assert effective_value(lines, "PermitRootLogin") == "maybe"
    assert effective_value(lines, "UsePAM") is None


def test_patch_rewrites_mismatching_directives():
    res = patch_directives(STOCK, DIRECTIVES)
    lines = res.text.splitlines()

    assert "PermitRootLogin no" in lines
    assert "PasswordAuthentication yes" in lines
    # a commented line already carrying the desired value is left as is
    assert "#PubkeyAuthentication yes" in lines
    assert res.changed == ["PasswordAuthentication", "PermitRootLogin"]
    assert lines[0] == "Include /etc/ssh/sshd_config.d/*.conf"
    assert "UsePAM yes" in lines


def test_patch_is_idempotent():
    first = patch_directives(STOCK, DIRECTIVES)
    second = patch_directives(first.text, DIRECTIVES)
    assert not second.is_changed
    assert second.text == first.text


def test_missing_directive_is_appended():
    res = patch_directives("UsePAM yes\n", [("PermitRootLogin", "no")])
    assert res.text == "UsePAM yes\nPermitRootLogin no\n"


def test_order_does_not_depend_on_input_order():
    a = patch_directives("", DIRECTIVES)
    b = patch_directives("", list(reversed(DIRECTIVES)))
    assert a.text == b.text
    assert a.text.splitlines() == [
        "PasswordAuthentication yes",
        "PermitRootLogin no",
        "PubkeyAuthentication yes",
    ]
