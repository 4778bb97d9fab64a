"""
Tests for vetguard.config -- engine configuration and YAML loaders.

Covers: defaults, field validation, alias expansion, loading configuration
and role definitions from YAML, and rejection of malformed files.
"""

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from vetguard.config import (
    DEFAULT_CONFIG,
    RBACConfig,
    load_config_from_yaml,
    load_roles_from_yaml,
)
from vetguard.roles import OWNERSHIP_BYPASS_ROLES


# ---------------------------------------------------------------------------
# 1. Defaults
# ---------------------------------------------------------------------------

class TestDefaults:
    def test_default_switches(self):
        assert DEFAULT_CONFIG.enable_inheritance is True
        assert DEFAULT_CONFIG.enable_overrides is True
        assert DEFAULT_CONFIG.enable_audit_logging is False
        assert DEFAULT_CONFIG.super_admin_role == "SUPER_ADMIN"
        assert DEFAULT_CONFIG.default_role is None
        assert DEFAULT_CONFIG.role_cache_ttl_seconds == 300

    def test_default_bypass_roles(self):
        assert DEFAULT_CONFIG.ownership_bypass_roles == list(OWNERSHIP_BYPASS_ROLES)

    def test_checklists_alias_treatments(self):
        assert DEFAULT_CONFIG.candidate_resources("checklists") == ["checklists", "treatments"]
        assert DEFAULT_CONFIG.candidate_resources("pets") == ["pets"]

    def test_instances_do_not_share_aliases(self):
        a = RBACConfig()
        b = RBACConfig()
        a.resource_aliases["pets"] = ["patients"]
        assert "pets" not in b.resource_aliases


# ---------------------------------------------------------------------------
# 2. Validation
# ---------------------------------------------------------------------------

class TestValidation:
    @pytest.mark.parametrize("name", ["", "   "])
    def test_blank_super_admin_rejected(self, name):
        with pytest.raises(ValidationError):
            RBACConfig(super_admin_role=name)

    @pytest.mark.parametrize("ttl", [0, -5])
    def test_non_positive_ttl_rejected(self, ttl):
        with pytest.raises(ValidationError):
            RBACConfig(role_cache_ttl_seconds=ttl)

    def test_self_alias_rejected(self):
        with pytest.raises(ValidationError, match="may not alias itself"):
            RBACConfig(resource_aliases={"pets": ["pets"]})


# ---------------------------------------------------------------------------
# 3. Configuration YAML
# ---------------------------------------------------------------------------

class TestConfigYAML:
    def _write_yaml(self, data, tmp_dir: Path) -> Path:
        path = tmp_dir / "rbac.yaml"
        with open(path, "w") as f:
            yaml.dump(data, f)
        return path

    def test_load_valid_yaml(self, tmp_path):
        path = self._write_yaml(
            {"rbac": {"enable_audit_logging": True, "role_cache_ttl_seconds": 60}}, tmp_path
        )
        config = load_config_from_yaml(path)
        assert config.enable_audit_logging is True
        assert config.role_cache_ttl_seconds == 60
        assert config.enable_overrides is True

    def test_empty_section_gives_defaults(self, tmp_path):
        path = self._write_yaml({"rbac": None}, tmp_path)
        assert load_config_from_yaml(path) == RBACConfig()

    def test_missing_top_level_key(self, tmp_path):
        path = self._write_yaml({"settings": {}}, tmp_path)
        with pytest.raises(ValueError, match="top-level 'rbac' mapping"):
            load_config_from_yaml(path)

    def test_section_must_be_mapping(self, tmp_path):
        path = self._write_yaml({"rbac": ["enable_overrides"]}, tmp_path)
        with pytest.raises(ValueError, match="must be a mapping"):
            load_config_from_yaml(path)

    def test_invalid_value_rejected(self, tmp_path):
        path = self._write_yaml({"rbac": {"role_cache_ttl_seconds": 0}}, tmp_path)
        with pytest.raises(ValidationError):
            load_config_from_yaml(path)

    def test_load_nonexistent_file_raises(self):
        with pytest.raises(FileNotFoundError):
            load_config_from_yaml("/nonexistent/rbac.yaml")

    def test_load_bundled_example(self):
        sample_path = Path(__file__).parent.parent / "examples" / "rbac.yaml"
        if sample_path.exists():
            config = load_config_from_yaml(sample_path)
            assert config.enable_audit_logging is True


# ---------------------------------------------------------------------------
# 4. Roles YAML
# ---------------------------------------------------------------------------

class TestRolesYAML:
    def _write_yaml(self, roles_data, tmp_dir: Path) -> Path:
        path = tmp_dir / "roles.yaml"
        with open(path, "w") as f:
            yaml.dump({"roles": roles_data}, f)
        return path

    def test_load_roles_with_string_and_mapping_permissions(self, tmp_path):
        path = self._write_yaml(
            [
                {
                    "id": "custom_kennel",
                    "name": "KENNEL_STAFF",
                    "practice_id": 3,
                    "permissions": [
                        "pets:READ",
                        {
                            "resource": "treatments",
                            "action": "UPDATE",
                            "conditions": [
                                {"field": "assignedTo", "operator": "equals", "value": "${userId}"}
                            ],
                        },
                    ],
                }
            ],
            tmp_path,
        )
        roles = load_roles_from_yaml(path)
        assert len(roles) == 1
        role = roles[0]
        assert role.practice_id == 3
        assert [p.key for p in role.permissions] == ["pets:READ", "treatments:UPDATE"]
        assert role.permissions[1].conditions[0].value == "${userId}"

    def test_role_without_permissions(self, tmp_path):
        path = self._write_yaml([{"id": "custom_empty", "name": "EMPTY"}], tmp_path)
        assert load_roles_from_yaml(path)[0].permissions == []

    def test_invalid_permission_string(self, tmp_path):
        path = self._write_yaml(
            [{"id": "custom_x", "name": "X", "permissions": ["pets"]}], tmp_path
        )
        with pytest.raises(ValueError, match="invalid permission string"):
            load_roles_from_yaml(path)

    def test_non_mapping_entry(self, tmp_path):
        path = self._write_yaml(["CASHIER"], tmp_path)
        with pytest.raises(ValueError, match="index 0 must be a mapping"):
            load_roles_from_yaml(path)

    def test_custom_role_cannot_take_system_name(self, tmp_path):
        path = self._write_yaml(
            [
                {"id": "custom_kennel", "name": "KENNEL_STAFF", "practice_id": 1},
                {"id": "custom_x", "name": "SUPER_ADMIN", "practice_id": 1},
            ],
            tmp_path,
        )
        with pytest.raises(ValueError, match="index 1: 'SUPER_ADMIN' is reserved"):
            load_roles_from_yaml(path)

    def test_missing_roles_key(self, tmp_path):
        path = tmp_path / "bad.yaml"
        with open(path, "w") as f:
            yaml.dump({"not_roles": []}, f)
        with pytest.raises(ValueError, match="top-level 'roles' key"):
            load_roles_from_yaml(path)

    def test_roles_must_be_list(self, tmp_path):
        path = tmp_path / "bad.yaml"
        with open(path, "w") as f:
            yaml.dump({"roles": {"id": "x"}}, f)
        with pytest.raises(ValueError, match="must be a list"):
            load_roles_from_yaml(path)

    def test_load_bundled_example(self):
        sample_path = Path(__file__).parent.parent / "examples" / "roles.yaml"
        if sample_path.exists():
            roles = load_roles_from_yaml(sample_path)
            assert len(roles) >= 2
