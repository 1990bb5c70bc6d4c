"""
Tests for the install ledger (toolbelt/ledger.py).
"""

import json

import pytest

from toolbelt.errors import ConfigurationError
from toolbelt.ledger import SCHEMA_VERSION, InstallLedger, load_ledger, write_ledger


@pytest.fixture
def ledger_path(tmp_path):
    return tmp_path / "state" / "ledger.json"


class TestInstallLedger:
    """Recording and serialization."""

    def test_new_ledger_is_empty(self):
        """A fresh ledger records nothing."""
        assert InstallLedger().is_empty()

    def test_records_are_deduplicated(self):
        """Recording the same thing twice keeps one entry."""
        ledger = InstallLedger()
        ledger.record_system_package("apt", "curl")
        ledger.record_system_package("apt", "curl")
        ledger.record_directory("/root/Recon")
        ledger.record_directory("/root/Recon")
        ledger.record_profile_directive('export PATH="$PATH:/a/bin"')
        ledger.record_profile_directive('export PATH="$PATH:/a/bin"')
        assert ledger.system_packages == [{"manager": "apt", "name": "curl"}]
        assert ledger.directories == ["/root/Recon"]
        assert len(ledger.profile_directives) == 1

    def test_dict_round_trip(self):
        """from_dict restores what to_dict wrote."""
        ledger = InstallLedger()
        ledger.record_system_package("brew", "jq")
        ledger.record_special_package("searchsploit")
        ledger.record_python_app("uro")
        ledger.record_toolchain("1.21.3", "/usr/local/go", "/root/go")
        ledger.record_toolchain_tool("/root/go/bin/gau")
        ledger.record_file("/root/.gau.toml")

        data = ledger.to_dict()
        assert data["__meta__"]["schema_version"] == SCHEMA_VERSION
        restored = InstallLedger.from_dict(data)
        assert restored.to_dict() == data
        assert restored.toolchain.install_dir == "/usr/local/go"


class TestPersistence:
    """load_ledger / write_ledger."""

    def test_missing_file_loads_empty(self, ledger_path):
        """No file means nothing was recorded."""
        assert load_ledger(ledger_path).is_empty()

    def test_write_then_load(self, ledger_path):
        """Written ledgers load back with metadata."""
        ledger = InstallLedger()
        ledger.record_python_app("uro")
        write_ledger(ledger, ledger_path)

        loaded = load_ledger(ledger_path)
        assert loaded.python_apps == ["uro"]
        assert loaded.updated_at.endswith("Z")
        assert loaded.hostname
        assert not ledger_path.with_suffix(".tmp").exists()

    def test_empty_ledger_deletes_file_and_directory(self, ledger_path):
        """Writing an empty ledger leaves no state behind."""
        ledger = InstallLedger()
        ledger.record_python_app("uro")
        write_ledger(ledger, ledger_path)

        write_ledger(InstallLedger(), ledger_path)
        assert not ledger_path.exists()
        assert not ledger_path.parent.exists()

    def test_empty_ledger_keeps_shared_directory(self, ledger_path):
        """Other files in the state directory are left alone."""
        ledger = InstallLedger()
        ledger.record_python_app("uro")
        write_ledger(ledger, ledger_path)
        (ledger_path.parent / "other").write_text("x")

        write_ledger(InstallLedger(), ledger_path)
        assert not ledger_path.exists()
        assert (ledger_path.parent / "other").exists()

    def test_empty_ledger_without_file(self, ledger_path):
        """Nothing is created for an empty ledger."""
        write_ledger(InstallLedger(), ledger_path)
        assert not ledger_path.parent.exists()

    def test_invalid_json_raises(self, ledger_path):
        """A corrupt ledger is a configuration error with remediation."""
        ledger_path.parent.mkdir(parents=True)
        ledger_path.write_text("{not json")
        with pytest.raises(ConfigurationError) as exc_info:
            load_ledger(ledger_path)
        assert exc_info.value.remediation

    def test_non_object_raises(self, ledger_path):
        """A JSON list is not a ledger."""
        ledger_path.parent.mkdir(parents=True)
        ledger_path.write_text(json.dumps(["uro"]))
        with pytest.raises(ConfigurationError):
            load_ledger(ledger_path)
