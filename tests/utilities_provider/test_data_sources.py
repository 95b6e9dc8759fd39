"""Tests for the local directory and bcrypt hash data sources."""

from __future__ import annotations

import json
import os

import bcrypt
import pytest

from UtilitiesProvider.data_sources import (
    BcryptHashDataSource,
    LocalDirectoryDataSource,
    bcrypt_hash_id,
    read_hash_from_state_file,
)
from UtilitiesProvider.errors import ConfigurationError
from UtilitiesProvider.settings import BcryptSettings, get_settings


def _write_state(path, identifier, hashed, *, resource_type="utilities_bcrypt_hash"):
    payload = {
        "version": 4,
        "resources": [
            {
                "mode": "data",
                "type": resource_type,
                "name": "admin",
                "instances": [{"attributes": {"id": identifier, "hash": hashed, "cost": 4}}],
            }
        ],
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload), encoding="utf-8")


# --- Local directory -------------------------------------------------------------


def test_local_directory_reports_owner_and_permissions(fake_ownership, tmp_path):
    target = tmp_path / "dir"
    target.mkdir()
    os.chmod(target, 0o750)

    info = LocalDirectoryDataSource(ownership=fake_ownership).read(str(target))

    assert info.exists is True
    assert info.id == str(target)
    assert info.permissions == "0750"
    assert info.user == "alice"
    assert info.group == "staff"


@pytest.mark.parametrize("kind", ["missing", "file"])
def test_local_directory_absent_or_not_a_directory(fake_ownership, tmp_path, kind):
    target = tmp_path / "target"
    if kind == "file":
        target.write_text("x")

    info = LocalDirectoryDataSource(ownership=fake_ownership).read(str(target))

    assert info.exists is False
    assert (info.permissions, info.user, info.group) == ("", "", "")


def test_local_directory_falls_back_to_numeric_group(ownership_factory, tmp_path):
    source = LocalDirectoryDataSource(ownership=ownership_factory(fail_group_lookup=True))

    info = source.read(str(tmp_path))

    assert info.group == str(os.stat(tmp_path).st_gid)


# --- bcrypt ------------------------------------------------------------------------


@pytest.fixture
def hasher(tmp_path):
    return BcryptHashDataSource(working_dir=tmp_path)


def test_hash_verifies_and_hides_plaintext(hasher):
    result = hasher.read("s3cret", cost=4)

    assert bcrypt.checkpw(b"s3cret", result.hash.encode("utf-8"))
    assert result.cost == 4
    assert result.id == bcrypt_hash_id("s3cret", 4)
    assert "s3cret" not in result.id
    assert "s3cret" not in repr(result)


def test_default_cost_is_ten(hasher):
    result = hasher.read("s3cret")

    assert result.cost == 10
    assert result.hash.startswith("$2b$10$")


def test_identifier_depends_on_cost():
    assert bcrypt_hash_id("pw", 4) != bcrypt_hash_id("pw", 5)
    assert bcrypt_hash_id("pw", 4) == bcrypt_hash_id("pw", 4)


@pytest.mark.parametrize("cost", [3, 32])
def test_cost_outside_range_is_rejected(hasher, cost):
    with pytest.raises(ConfigurationError):
        hasher.read("pw", cost=cost)


def test_recorded_hash_is_reused(tmp_path):
    identifier = bcrypt_hash_id("pw", 4)
    recorded = bcrypt.hashpw(b"pw", bcrypt.gensalt(rounds=4)).decode("utf-8")
    _write_state(tmp_path / "terraform.tfstate", identifier, recorded)

    first = BcryptHashDataSource(working_dir=tmp_path).read("pw", cost=4)
    second = BcryptHashDataSource(working_dir=tmp_path).read("pw", cost=4)

    assert first.hash == recorded
    assert second.hash == recorded


def test_nested_terraform_directory_is_searched(tmp_path):
    identifier = bcrypt_hash_id("pw", 4)
    recorded = bcrypt.hashpw(b"pw", bcrypt.gensalt(rounds=4)).decode("utf-8")
    _write_state(tmp_path / ".terraform" / "terraform.tfstate", identifier, recorded)

    assert BcryptHashDataSource(working_dir=tmp_path).read("pw", cost=4).hash == recorded


def test_recorded_hash_that_does_not_verify_is_replaced(tmp_path):
    identifier = bcrypt_hash_id("pw", 4)
    stale = bcrypt.hashpw(b"other", bcrypt.gensalt(rounds=4)).decode("utf-8")
    _write_state(tmp_path / "terraform.tfstate", identifier, stale)

    result = BcryptHashDataSource(working_dir=tmp_path).read("pw", cost=4)

    assert result.hash != stale
    assert bcrypt.checkpw(b"pw", result.hash.encode("utf-8"))


def test_fresh_hashes_differ_without_state(hasher):
    assert hasher.read("pw", cost=4).hash != hasher.read("pw", cost=4).hash


def test_tf_state_environment_variable_selects_state_file(tmp_path, monkeypatch):
    state_file = tmp_path / "elsewhere" / "custom.tfstate"
    identifier = bcrypt_hash_id("pw", 4)
    recorded = bcrypt.hashpw(b"pw", bcrypt.gensalt(rounds=4)).decode("utf-8")
    _write_state(state_file, identifier, recorded)
    monkeypatch.setenv("TF_STATE", str(state_file))

    settings = get_settings().bcrypt
    source = BcryptHashDataSource(settings=settings, working_dir=tmp_path)

    assert source.state_files() == [state_file]
    assert source.read("pw", cost=4).hash == recorded


def test_state_file_reader_ignores_other_resources_and_bad_files(tmp_path):
    state_file = tmp_path / "terraform.tfstate"
    _write_state(state_file, "abc", "$2b$04$hash", resource_type="utilities_local_directory")
    assert read_hash_from_state_file(state_file, "abc") == ""

    state_file.write_text("{not json", encoding="utf-8")
    assert read_hash_from_state_file(state_file, "abc") == ""
    assert read_hash_from_state_file(tmp_path / "missing.tfstate", "abc") == ""


def test_custom_cost_bounds(tmp_path):
    source = BcryptHashDataSource(
        settings=BcryptSettings(default_cost=5, min_cost=5, max_cost=6), working_dir=tmp_path
    )

    assert source.read("pw").cost == 5
    with pytest.raises(ConfigurationError):
        source.read("pw", cost=4)
