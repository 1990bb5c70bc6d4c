"""
End-to-end uninstall runs (toolbelt/uninstall.py) against a fake host.
"""

import dataclasses
import logging

import pytest

from toolbelt.errors import ExecutionError
from toolbelt.ledger import load_ledger
from toolbelt.manifests import load_tool_entries
from toolbelt.provision import run_install
from toolbelt.uninstall import legacy_profile_predicate, load_optional, run_uninstall


def snapshot(root):
    """Relative paths under root, ignoring profile backups."""
    return sorted(
        str(path.relative_to(root))
        for path in root.rglob("*")
        if not path.name.endswith(".bak")
    )


class TestLedgerMode:
    """Default uninstall: remove only what install recorded."""

    def test_removes_recorded_state(self, populated_config, linux_ctx, fake_host):
        """Clones, generated files, packages and profile lines go away."""
        run_install(populated_config, linux_ctx)
        run_uninstall(populated_config, linux_ctx)

        home = linux_ctx.install_home
        assert not (home / "Recon").exists()
        assert not (home / "SecLists").exists()
        assert not (home / ".gau.toml").exists()
        assert "curl" not in fake_host.packages
        assert "uro" not in fake_host.commands
        assert linux_ctx.profile_path.read_text() == ""
        assert not populated_config.resolve_ledger_path(home).exists()

    def test_keeps_preexisting_state(self, populated_config, linux_ctx, fake_host):
        """Packages, tools and profile lines present before install survive."""
        fake_host.packages.add("jq")
        fake_host.commands.add("uro")
        linux_ctx.profile_path.write_text("alias ll='ls -l'\n")
        gau = linux_ctx.install_home / ".gau.toml"
        gau.write_text("threads = 8\n")

        run_install(populated_config, linux_ctx)
        run_uninstall(populated_config, linux_ctx)

        assert "jq" in fake_host.packages
        assert "uro" in fake_host.commands
        assert gau.read_text() == "threads = 8\n"
        assert linux_ctx.profile_path.read_text() == "alias ll='ls -l'\n"

    def test_install_uninstall_install(self, populated_config, linux_ctx, fake_host):
        """A reinstall after uninstall reproduces the same files and profile."""
        home = linux_ctx.install_home
        run_install(populated_config, linux_ctx)
        first_files = snapshot(home)
        first_profile = linux_ctx.profile_path.read_text()

        run_uninstall(populated_config, linux_ctx)
        run_install(populated_config, linux_ctx)

        assert snapshot(home) == first_files
        assert linux_ctx.profile_path.read_text() == first_profile
        assert fake_host.packages == {"curl", "jq"}

    def test_nothing_recorded(self, config, linux_ctx, fake_host, caplog):
        """Without a ledger nothing is touched."""
        with caplog.at_level(logging.INFO, logger="toolbelt"):
            run_uninstall(config, linux_ctx)
        assert "nothing to uninstall" in caplog.text
        assert fake_host.calls == []

    def test_special_package_without_recipe_stays_recorded(self, config, manifest_dir, linux_ctx, fake_host):
        """Entries that could not be removed remain in the ledger."""
        (manifest_dir / "System-packages-special.txt").write_text("Linux x86_64 mytool pipx install mytool\n")
        run_install(config, linux_ctx)
        run_uninstall(config, linux_ctx)
        assert load_ledger(config.resolve_ledger_path(linux_ctx.install_home)).special_packages == ["mytool"]

    def test_ledger_saved_when_removal_fails(self, populated_config, linux_ctx, fake_host):
        """A failed package removal keeps the unremoved entries recorded."""
        run_install(populated_config, linux_ctx)
        fake_host.fail.append(("apt-get", "remove"))
        with pytest.raises(ExecutionError):
            run_uninstall(populated_config, linux_ctx)
        ledger = load_ledger(populated_config.resolve_ledger_path(linux_ctx.install_home))
        assert ledger.directories


class TestManifestMode:
    """uninstall.mode: manifest."""

    def test_removes_manifest_state(self, populated_config, linux_ctx, fake_host):
        """Manifest mode also removes matching state that predates install."""
        config = dataclasses.replace(populated_config, uninstall_mode="manifest")
        home = linux_ctx.home_dir
        fake_host.packages.update({"curl", "jq", "vim"})
        (home / "Recon").mkdir()
        (home / ".zenmap").mkdir()
        (home / "go" / "bin").mkdir(parents=True)
        (home / "go" / "bin" / "httpx").write_text("")
        linux_ctx.profile_path.write_text(
            "export EDITOR=vim\n"
            "export PATH=$PATH:$HOME/go/bin\n"
            "alias Recon='python3 /old/recon.py'\n"
            "source /x/gf@v1/gf-completion.bash\n"
        )

        run_uninstall(config, linux_ctx)

        assert fake_host.packages == {"vim"}
        assert not (home / "Recon").exists()
        assert not (home / ".zenmap").exists()
        assert not (home / "go" / "bin" / "httpx").exists()
        assert linux_ctx.profile_path.read_text() == "export EDITOR=vim\n"

    def test_missing_manifests_skipped(self, config, manifest_dir, linux_ctx, fake_host, caplog):
        """Absent manifests are logged and skipped."""
        config = dataclasses.replace(config, uninstall_mode="manifest")
        (manifest_dir / "Tools.txt").unlink()
        with caplog.at_level(logging.INFO, logger="toolbelt"):
            run_uninstall(config, linux_ctx)
        assert "Tools.txt not found, skipping." in caplog.text

    def test_load_optional(self, tmp_path):
        """Missing files load as empty."""
        assert load_optional(load_tool_entries, tmp_path / "Tools.txt") == []

    def test_predicate(self, config, linux_ctx):
        """Only toolchain paths, declared tool aliases and gf completions match."""
        matches = legacy_profile_predicate(config, linux_ctx, ["Recon"])
        assert matches('export PATH="$PATH:/usr/local/go/bin"')
        assert matches(f'export PATH="$PATH:{linux_ctx.home_dir}/go/bin"')
        assert matches('export PATH="$PATH:$HOME/Library/Python/3.9/bin"')
        assert matches("alias Recon='python3 /x/recon.py'")
        assert matches("source /x/gf-completion.zsh")
        assert not matches("alias ll='ls -l'")
        assert not matches('export PATH="$PATH:/opt/bin"')
        assert not matches("source /x/other.bash")

    @pytest.mark.parametrize("line", [
        "export PATH=$PATH:/usr/local/go/bin:$HOME/go/bin",
        'export PATH="/usr/local/go/bin:$PATH"',
        "export PATH=${HOME}/go/bin:/usr/local/bin:$PATH",
    ])
    def test_predicate_multi_segment_exports(self, config, linux_ctx, line):
        """An export naming a toolchain path among other segments matches."""
        assert legacy_profile_predicate(config, linux_ctx, ["Recon"])(line)

    @pytest.mark.parametrize("line", [
        'alias Recon="python3 /x/recon.py"',
        "alias Recon=recon",
        "  alias Recon='python3 /x/recon.py'",
    ])
    def test_predicate_alias_any_quoting(self, config, linux_ctx, line):
        """Declared tool aliases match however they are quoted."""
        matches = legacy_profile_predicate(config, linux_ctx, ["Recon"])
        assert matches(line)
        assert not matches(line.replace("Recon", "ReconX"))
