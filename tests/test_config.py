"""
Tests for loading and validating the YAML configuration.
"""

from pathlib import Path

import pytest
import yaml

from mysqlbackup.config import (
    DEFAULT_DUMP_OPTIONS,
    BackupConfig,
    ConfigError,
    load_config,
    save_config,
)

EXAMPLE = Path(__file__).resolve().parent.parent / "config.example.yaml"


def write_config(tmp_path, backup):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({"backup": backup}))
    return path


def minimal(**overrides):
    data = {
        "project_name": "demo",
        "backup_directory": "/srv/backups",
        "log_file": "/var/log/backup.log",
    }
    data.update(overrides)
    return data


class TestLoading:

    def test_example_file_is_valid(self):
        config = load_config(EXAMPLE)
        assert config.project_name == "mcci"
        assert config.retention_days == 30
        assert config.umask == 0o027
        assert config.dump.options == DEFAULT_DUMP_OPTIONS
        assert config.git.enabled is False

    def test_defaults(self, tmp_path):
        config = load_config(write_config(tmp_path, minimal()))
        assert config.database_name == "demo"
        assert config.retention_days == 30
        assert config.lock_path == Path("/var/lock/backup_demo.lock")
        assert config.dump.extension == ".sql"
        assert config.git.remote == "origin"
        assert config.git.branch == "main"
        assert config.required_tools() == ["mysqldump", "gzip", "sha256sum"]

    def test_git_adds_required_tool(self, tmp_path):
        config = load_config(write_config(tmp_path, minimal(git={"enabled": True})))
        assert config.required_tools()[-1] == "git"

    def test_dump_options_string_is_split(self, tmp_path):
        config = load_config(
            write_config(tmp_path, minimal(dump={"options": "--quick --where='id > 5'"}))
        )
        assert config.dump.options == ["--quick", "--where=id > 5"]

    def test_extension_gets_leading_dot(self, tmp_path):
        config = load_config(write_config(tmp_path, minimal(dump={"extension": "dump"})))
        assert config.dump.extension == ".dump"

    def test_backup_dir_alias_and_extra_keys(self, tmp_path):
        data = minimal(owner="ops")
        data["backup_dir"] = data.pop("backup_directory")
        config = load_config(write_config(tmp_path, data))
        assert config.backup_directory == "/srv/backups"
        assert config.extra == {"owner": "ops"}

    def test_empty_dump_options_fall_back_to_defaults(self, tmp_path):
        config = load_config(write_config(tmp_path, minimal(dump={"options": None})))
        assert config.dump.options == DEFAULT_DUMP_OPTIONS

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("false", False),
            ("no", False),
            ("off", False),
            (None, False),
            ("true", True),
            ("yes", True),
            (True, True),
        ],
    )
    def test_git_enabled_parsing(self, tmp_path, raw, expected):
        config = load_config(write_config(tmp_path, minimal(git={"enabled": raw})))
        assert config.git.enabled is expected

    @pytest.mark.parametrize("raw, expected", [("0077", 0o077), ("027", 0o027), (0o022, 0o022)])
    def test_umask_parsing(self, tmp_path, raw, expected):
        config = load_config(write_config(tmp_path, minimal(umask=raw)))
        assert config.umask == expected

    def test_save_and_load(self, tmp_path):
        original = load_config(write_config(tmp_path, minimal(retention_days=7, umask="0077")))
        target = tmp_path / "out" / "config.yaml"
        save_config(original, target)
        assert load_config(target) == original


class TestValidation:

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "absent.yaml")

    def test_missing_backup_section(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("other: 1\n")
        with pytest.raises(ConfigError, match="'backup'"):
            load_config(path)

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("backup: [unclosed\n")
        with pytest.raises(ConfigError, match="Cannot parse"):
            load_config(path)

    @pytest.mark.parametrize(
        "overrides, message",
        [
            ({"project_name": ""}, "must not be empty"),
            ({"project_name": "my project"}, "may only contain"),
            ({"backup_directory": ""}, "backup_directory"),
            ({"log_file": ""}, "log_file"),
            ({"retention_days": -1}, "non-negative"),
            ({"retention_days": "ten"}, "cannot be converted"),
            ({"umask": "99"}, "octal"),
            ({"dump": {"env_from_secrets": ["MYSQL_PWD"]}}, "mapping"),
            ({"dump": {"options": 5}}, "dump.options"),
            ({"dump": {"extension": 5}}, "dump.extension"),
            ({"git": {"enabled": "maybe"}}, "git.enabled"),
            ({"git": {"commit_message": "Backup {project} at {timestamp}"}}, "placeholder"),
            ({"git": {"commit_message": "Backup {timestamp"}}, "placeholder"),
        ],
    )
    def test_invalid_values(self, tmp_path, overrides, message):
        with pytest.raises(ConfigError, match=message):
            load_config(write_config(tmp_path, minimal(**overrides)))

    def test_validate_on_dataclass(self):
        config = BackupConfig(
            project_name="demo", database_name="", backup_directory="b", log_file="l"
        )
        with pytest.raises(ConfigError, match="database_name"):
            config.validate()
