"""Tests for client credentials and the config loader."""

import json
import os
import platform

import pytest
from pydantic import ValidationError

from api.errors import NotAuthenticatedError, UsageError
from config.credentials import (
    ClientCredentials,
    client_credentials_exist,
    client_credentials_path,
    normalize_client_name,
    read_client_credentials,
    write_client_credentials,
)
from config.loader import ConfigLoader

posix_only = pytest.mark.skipif(platform.system() == "Windows", reason="POSIX permissions")


class TestNormalizeClientName:
    @pytest.mark.parametrize(
        "name, expected",
        [(None, "default"), ("", "default"), ("  ", "default"), ("Work", "work"), (" my-app.2 ", "my-app.2")],
    )
    def test_normalizes(self, name, expected: str) -> None:
        assert normalize_client_name(name) == expected

    @pytest.mark.parametrize("name", ["../etc", "a/b", "-leading", "sp ace"])
    def test_rejects_unsafe_names(self, name: str) -> None:
        with pytest.raises(UsageError):
            normalize_client_name(name)


class TestClientCredentials:
    def test_defaults(self) -> None:
        creds = ClientCredentials(client_id="id", client_secret="secret")
        assert creds.client_name == "default"
        assert creds.redirect_uri == "http://localhost:8484/callback"

    def test_blank_secret_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ClientCredentials(client_id="id", client_secret="   ")

    def test_non_http_redirect_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ClientCredentials(client_id="id", client_secret="s", redirect_uri="ftp://example.com/cb")

    def test_repr_redacts_secret(self) -> None:
        assert "topsecret" not in repr(ClientCredentials(client_id="id", client_secret="topsecret"))


class TestCredentialsFile:
    def test_write_then_read(self, config_dir) -> None:
        creds = ClientCredentials(client_name="Work", client_id="id", client_secret="secret")
        path = write_client_credentials(creds)

        assert path == config_dir / "credentials-work.json"
        assert client_credentials_exist("work")
        loaded = read_client_credentials("WORK")
        assert loaded.client_id == "id"
        assert loaded.client_secret == "secret"
        assert loaded.client_name == "work"

    @posix_only
    def test_permissions(self, config_dir) -> None:
        path = write_client_credentials(ClientCredentials(client_id="id", client_secret="secret"))
        assert os.stat(path).st_mode & 0o777 == 0o600
        assert os.stat(config_dir).st_mode & 0o777 == 0o700

    def test_missing_file_means_not_configured(self, config_dir) -> None:
        assert not client_credentials_exist()
        with pytest.raises(NotAuthenticatedError):
            read_client_credentials()

    def test_corrupt_file(self, config_dir) -> None:
        config_dir.mkdir(parents=True)
        client_credentials_path().write_text("{not json")
        with pytest.raises(UsageError):
            read_client_credentials()

    def test_invalid_content(self, config_dir) -> None:
        config_dir.mkdir(parents=True)
        client_credentials_path().write_text(json.dumps({"client_id": "", "client_secret": "s"}))
        with pytest.raises(UsageError):
            read_client_credentials()


class TestConfigLoader:
    def test_env_var_coerced_to_default_type(self, monkeypatch) -> None:
        monkeypatch.setenv("FRONTCLI_TEST_INT", "7")
        monkeypatch.setenv("FRONTCLI_TEST_FLOAT", "2.5")
        monkeypatch.setenv("FRONTCLI_TEST_BOOL", "true")
        loader = ConfigLoader()

        assert loader.get("FRONTCLI_TEST_INT", 5) == 7
        assert loader.get("FRONTCLI_TEST_FLOAT", 1.0) == 2.5
        assert loader.get("FRONTCLI_TEST_BOOL", False) is True

    def test_default_when_unset(self, monkeypatch) -> None:
        monkeypatch.delenv("FRONTCLI_TEST_MISSING", raising=False)
        assert ConfigLoader().get("FRONTCLI_TEST_MISSING", "fallback") == "fallback"


@pytest.fixture
def dotenv_vars():
    names = ["FRONTCLI_TEST_FROM_FILE", "FRONTCLI_TEST_SHARED"]
    for name in names:
        os.environ.pop(name, None)
    yield names
    for name in names:
        os.environ.pop(name, None)


class TestDotenvFiles:
    def test_project_file_then_user_file(self, tmp_path, dotenv_vars) -> None:
        project = tmp_path / ".env"
        project.write_text("FRONTCLI_TEST_SHARED=project\n")
        user = tmp_path / "frontcli.env"
        user.write_text("FRONTCLI_TEST_SHARED=user\nFRONTCLI_TEST_FROM_FILE=42\n")

        loader = ConfigLoader(env_path=str(project), user_env_path=str(user))

        assert loader.loaded_files == [project, user]
        assert loader.get("FRONTCLI_TEST_SHARED", "default") == "project"
        assert loader.get("FRONTCLI_TEST_FROM_FILE", 1) == 42

    def test_environment_wins_over_files(self, tmp_path, dotenv_vars, monkeypatch) -> None:
        monkeypatch.setenv("FRONTCLI_TEST_SHARED", "env")
        project = tmp_path / ".env"
        project.write_text("FRONTCLI_TEST_SHARED=project\n")

        loader = ConfigLoader(env_path=str(project), user_env_path=str(tmp_path / "missing.env"))

        assert loader.get("FRONTCLI_TEST_SHARED", "default") == "env"
        assert loader.loaded_files == [project]

    def test_bad_number_falls_back(self, monkeypatch) -> None:
        monkeypatch.setenv("FRONTCLI_TEST_INT", "lots")
        assert ConfigLoader().get("FRONTCLI_TEST_INT", 5) == 5

    def test_home_expansion(self, monkeypatch) -> None:
        monkeypatch.setenv("FRONTCLI_TEST_DIR", "~/somewhere")
        value = ConfigLoader().get("FRONTCLI_TEST_DIR", "/tmp")
        assert not value.startswith("~")
        assert value.endswith("somewhere")
