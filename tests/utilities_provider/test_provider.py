"""Tests for the provider registry, reconcile, and stop."""

from __future__ import annotations

import hashlib

import httpx
import pytest

from UtilitiesProvider import Provider
from UtilitiesProvider.diagnostics import WarningCode
from UtilitiesProvider.errors import Canceled, ConfigurationError
from UtilitiesProvider.settings import ProviderSettings, RetrySettings


@pytest.fixture
def provider(fake_ownership):
    return Provider(settings=ProviderSettings(), ownership=fake_ownership)


def test_metadata_lists_everything(provider):
    metadata = provider.metadata()

    assert metadata["type_name"] == "utilities"
    assert metadata["resources"] == [
        "utilities_extract_tar",
        "utilities_extract_zip",
        "utilities_local_directory",
    ]
    assert metadata["data_sources"] == ["utilities_bcrypt_hash", "utilities_local_directory"]
    assert metadata["functions"] == ["http_request", "path_exists", "path_owner", "path_permission"]


@pytest.mark.parametrize(
    "lookup", ["resource", "data_source", "function"],
)
def test_unknown_names_are_configuration_errors(provider, lookup):
    with pytest.raises(ConfigurationError):
        getattr(provider, lookup)("utilities_nope")


def test_create_read_delete_round_trip(provider, make_zip, tmp_path):
    archive = make_zip([("a/", None), ("a/b.txt", "hi")])
    destination = tmp_path / "x"
    plan = {"source": str(archive), "destination": str(destination)}

    created = provider.create("utilities_extract_zip", plan)
    refreshed = provider.read("utilities_extract_zip", created.state.to_state())
    deleted = provider.delete("utilities_extract_zip", refreshed.state)

    assert refreshed.state == created.state
    assert deleted.state is None
    assert not destination.exists()


def test_reconcile_reextracts_after_drift(provider, make_zip, tmp_path):
    archive = make_zip([("page.html", "v1")])
    destination = tmp_path / "site"
    plan = {"source": str(archive), "destination": str(destination)}
    state = provider.create("utilities_extract_zip", plan).state

    make_zip([("page.html", "v2"), ("extra.css", "body{}")])
    result = provider.reconcile("utilities_extract_zip", plan, state)

    assert result.has_warning(WarningCode.DRIFT_DETECTED)
    assert result.state.content_fingerprint == hashlib.sha256(archive.read_bytes()).hexdigest()
    assert (destination / "page.html").read_text() == "v2"
    assert (destination / "extra.css").exists()


def test_reconcile_without_drift_is_a_noop(provider, make_zip, tmp_path):
    archive = make_zip([("page.html", "v1")])
    plan = {"source": str(archive), "destination": str(tmp_path / "site")}
    state = provider.create("utilities_extract_zip", plan).state

    result = provider.reconcile("utilities_extract_zip", plan, state)

    assert result.state == state
    assert result.warnings == []


def test_stop_cancels_later_operations(provider, make_zip, tmp_path):
    archive = make_zip([("a.txt", "a")])
    provider.stop()

    with pytest.raises(Canceled):
        provider.create(
            "utilities_extract_zip",
            {"source": str(archive), "destination": str(tmp_path / "out")},
        )

    assert not (tmp_path / "out").exists()


def test_operation_tokens_are_released(provider):
    with provider.operation_token() as token:
        assert not token.is_cancelled()
        assert len(provider._tokens) == 1

    assert len(provider._tokens) == 0


def test_directory_resource_uses_injected_ownership(provider, fake_ownership, tmp_path):
    result = provider.create("utilities_local_directory", {"path": str(tmp_path / "managed")})

    assert result.state.managed is True
    assert fake_ownership.chown_calls == [(str(tmp_path / "managed"), 1000, 50)]


def test_data_sources_and_functions(provider, tmp_path):
    info = provider.read_data_source("utilities_local_directory", path=str(tmp_path))
    hashed = provider.read_data_source("utilities_bcrypt_hash", plaintext="pw", cost=4)

    assert info.exists and info.user == "alice"
    assert hashed.cost == 4
    assert provider.call_function("path_exists", str(tmp_path)).exists is True
    assert provider.call_function("path_owner", str(tmp_path)) == "alice"


def test_http_request_function_uses_provider_client_and_retry_settings(fake_ownership):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(503)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    settings = ProviderSettings(retry=RetrySettings(enabled=False))
    provider = Provider(settings=settings, client=client, ownership=fake_ownership)
    try:
        result = provider.call_function("http_request", "https://api.example.org/")
    finally:
        client.close()

    assert result.status_code == 503
    assert len(calls) == 1
