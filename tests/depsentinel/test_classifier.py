"""Tests for go toolchain stderr classification."""

from __future__ import annotations

import pytest

from depsentinel.core.errors import (
    DependencyFileNotParseable,
    DependencyFileNotResolvable,
    GoModulePathMismatch,
)
from depsentinel.engines.go_mod_updater.classifier import RULES, classify

GIT_FETCH_STDERR = (
    "go: downloading github.com/org/private v1.0.0\n"
    "go: github.com/org/private@v1.0.0: git fetch -f origin refs/heads/*:refs/heads/* "
    "refs/tags/*:refs/tags/* in /root/go/pkg/mod/cache/vcs/abc: exit status 128:\n"
    "\tfatal: could not read Username for 'https://github.com': terminal prompts disabled\n"
)

NO_MODULE_STDERR = (
    "go: finding module for package example.com/gone/pkg\n"
    "build example.com/app: cannot find module providing package example.com/gone/pkg\n"
)


class TestResolvability:
    def test_git_fetch_exit_128(self):
        err = classify(GIT_FETCH_STDERR)
        assert isinstance(err, DependencyFileNotResolvable)
        assert err.message.startswith("go: github.com/org/private@v1.0.0: git fetch")
        assert "terminal prompts disabled" in err.message
        assert "downloading" not in err.message

    def test_checksum_mismatch(self):
        stderr = (
            "go: downloading example.com/foo v1.2.0\n"
            "verifying example.com/foo@v1.2.0/go.mod: checksum mismatch\n"
            "\tdownloaded: h1:YWJj=\n"
        )
        err = classify(stderr)
        assert isinstance(err, DependencyFileNotResolvable)
        assert err.message == (
            "verifying example.com/foo@v1.2.0/go.mod: checksum mismatch\n\tdownloaded: h1:YWJj=\n"
        )

    def test_cannot_find_module_providing_package(self):
        err = classify(NO_MODULE_STDERR)
        assert isinstance(err, DependencyFileNotResolvable)
        assert err.message.startswith("build example.com/app: cannot find module")


class TestPathMismatch:
    def test_non_matching_module_path(self):
        stderr = (
            "go: github.com/Org/Lib@v1.0.0: parsing go.mod: "
            'has non-... module path "github.com/org/lib" at revision v1.0.0\n'
        )
        err = classify(stderr, "go.mod")
        assert isinstance(err, GoModulePathMismatch)
        assert (err.go_mod, err.declared_path, err.discovered_path) == (
            "go.mod",
            "github.com/Org/Lib",
            "github.com/org/lib",
        )

    def test_unexpected_module_path(self):
        stderr = 'go: example.com/old: go.mod has unexpected module path "example.com/new"\n'
        err = classify(stderr, "svc/go.mod")
        assert isinstance(err, GoModulePathMismatch)
        assert err.go_mod == "svc/go.mod"
        assert err.declared_path == "example.com/old"
        assert err.discovered_path == "example.com/new"

    def test_declares_its_path_spans_lines(self):
        stderr = (
            "go: example.com/foo@v1.2.0: parsing go.mod:\n"
            "\tmodule declares its path as: example.com/bar\n"
            "\t        but was required as: example.com/foo\n"
        )
        err = classify(stderr)
        assert isinstance(err, GoModulePathMismatch)
        assert err.declared_path == "example.com/foo"
        assert err.discovered_path == "example.com/bar"


class TestFallback:
    def test_last_ten_lines(self):
        lines = [f"line {i}" for i in range(15)]
        err = classify("\n".join(lines) + "\n", "go.mod")
        assert isinstance(err, DependencyFileNotParseable)
        assert err.file_path == "go.mod"
        assert err.message == "\n".join(lines[5:])

    def test_short_output_kept_whole(self):
        err = classify("go: go.mod:3: unknown directive: frobnicate\n")
        assert isinstance(err, DependencyFileNotParseable)
        assert err.message == "go: go.mod:3: unknown directive: frobnicate"

    def test_empty_stderr(self):
        err = classify("")
        assert isinstance(err, DependencyFileNotParseable)
        assert not err.message


class TestOrdering:
    def test_resolvability_beats_path_mismatch(self):
        stderr = (
            'go: example.com/old: go.mod has unexpected module path "example.com/new"\n'
            + NO_MODULE_STDERR
        )
        assert isinstance(classify(stderr), DependencyFileNotResolvable)

    def test_rule_order(self):
        assert [r.name for r in RULES] == [
            "git_fetch_failed",
            "checksum_mismatch",
            "no_module_for_package",
            "non_matching_module_path",
            "unexpected_module_path",
            "declares_its_path",
        ]

    @pytest.mark.parametrize("stderr", [GIT_FETCH_STDERR, NO_MODULE_STDERR, "boom\n"])
    def test_deterministic(self, stderr):
        first, second = classify(stderr), classify(stderr)
        assert type(first) is type(second)
        assert str(first) == str(second)


class TestWorkdirStripping:
    def test_checkout_location_removed(self):
        stderr = "go: /tmp/depsentinel-x1/repo/go.mod:7: unknown revision v9.9.9\n"
        err = classify(stderr, workdir="/tmp/depsentinel-x1/repo")
        assert isinstance(err, DependencyFileNotParseable)
        assert "/tmp/depsentinel-x1" not in err.message
        assert err.message == "go: /go.mod:7: unknown revision v9.9.9"

    def test_stripped_before_matching(self):
        stderr = "build /work/app: cannot find module providing package example.com/x\n"
        err = classify(stderr, workdir="/work/app")
        assert isinstance(err, DependencyFileNotResolvable)
        assert "/work/app" not in err.message
