"""Tests for settings, startup wiring and the key provisioning CLI."""

import io

import pytest

from pix_gateway import keys
from pix_gateway.bootstrap import DEFAULT_PROVIDER_SETTINGS, build_cipher, build_registry, provider_settings, retry_budget
from pix_gateway.config import ProviderSettings, Settings
from pix_gateway.security.cipher import CredentialCipher, InvalidKeyError, generate_key_base64


def make_settings(**kwargs) -> Settings:
    return Settings(_env_file=None, **kwargs)


class TestProviderSettings:
    def test_defaults_cover_all_banks(self):
        assert set(provider_settings(make_settings())) == {"banco_do_brasil", "bradesco", "itau", "santander", "inter"}

    def test_override_merges_onto_defaults(self):
        merged = provider_settings(make_settings(providers={"itau": ProviderSettings(timeout=5, priority=9)}))
        assert merged["itau"].timeout == 5
        assert merged["itau"].priority == 9
        assert merged["itau"].base_url == DEFAULT_PROVIDER_SETTINGS["itau"].base_url
        assert merged["itau"].requires_mtls is True

    def test_nested_environment_variables(self, monkeypatch):
        monkeypatch.setenv("PROVIDERS__SANTANDER__PRIORITY", "3")
        monkeypatch.setenv("PROVIDERS__SANTANDER__TIMEOUT", "12")
        merged = provider_settings(make_settings())
        assert merged["santander"].priority == 3
        assert merged["santander"].timeout == 12
        assert merged["santander"].auth_url == DEFAULT_PROVIDER_SETTINGS["santander"].auth_url


class TestBuildRegistry:
    def test_development_registers_banks_and_sandbox(self):
        registry = build_registry(make_settings(environment="development"))
        assert list(registry) == ["banco_do_brasil", "bradesco", "itau", "santander", "inter", "mock"]
        assert registry.priority("mock") == -1

    def test_production_skips_sandbox_provider(self):
        registry = build_registry(make_settings(environment="production"))
        assert "mock" not in registry
        assert len(registry) == 5

    def test_disabled_provider_is_not_registered(self):
        registry = build_registry(make_settings(providers={"inter": {"enabled": False}}, enable_mock_provider=False))
        assert "inter" not in registry
        assert "mock" not in registry

    @pytest.mark.asyncio
    async def test_sandbox_urls_outside_production(self, bank):
        bank.on("GET", "/sandboxapi", json={})
        registry = build_registry(make_settings(environment="development"), transport=bank.transport)
        await registry.get("itau").health_check()
        assert bank.last.url.host == "devportal.itau.com.br"

    @pytest.mark.asyncio
    async def test_production_urls(self, bank):
        bank.on("GET", "/", json={})
        registry = build_registry(make_settings(environment="production"), transport=bank.transport)
        await registry.get("itau").health_check()
        assert bank.last.url.host == "secure.api.itau"


    def test_retry_budget_follows_provider_settings(self):
        budget = retry_budget(make_settings(providers={"itau": {"max_retries": 5}, "inter": {"enabled": False}}))
        assert budget["itau"] == 5
        assert budget["bradesco"] == DEFAULT_PROVIDER_SETTINGS["bradesco"].max_retries
        assert "inter" not in budget
        assert "mock" not in budget


class TestBuildCipher:
    def test_missing_key_is_fatal(self):
        with pytest.raises(InvalidKeyError):
            build_cipher(make_settings(encryption_key=""))

    def test_short_key_is_fatal(self):
        with pytest.raises(InvalidKeyError):
            build_cipher(make_settings(encryption_key="c2hvcnQ="))

    def test_valid_key(self):
        assert isinstance(build_cipher(make_settings(encryption_key=generate_key_base64())), CredentialCipher)


class TestKeysCLI:
    def test_generate(self):
        out = io.StringIO()
        assert keys.main(["generate"], stdout=out) == 0
        CredentialCipher.from_base64_key(out.getvalue().strip())

    def test_encrypt_then_decrypt(self):
        key = generate_key_base64()
        encrypted = io.StringIO()
        assert keys.main(["encrypt", "--key", key], stdin=io.StringIO("s3cr3t\n"), stdout=encrypted) == 0
        decrypted = io.StringIO()
        assert keys.main(["decrypt", "--key", key], stdin=io.StringIO(encrypted.getvalue()), stdout=decrypted) == 0
        assert decrypted.getvalue().strip() == "s3cr3t"

    def test_key_from_environment(self, monkeypatch):
        monkeypatch.setenv("ENCRYPTION_KEY", generate_key_base64())
        out = io.StringIO()
        assert keys.main(["encrypt"], stdin=io.StringIO("x"), stdout=out) == 0
        assert out.getvalue().strip()

    def test_wrong_key_fails(self, capsys):
        token = CredentialCipher.from_base64_key(generate_key_base64()).encrypt("x")
        code = keys.main(["decrypt", "--key", generate_key_base64()], stdin=io.StringIO(token), stdout=io.StringIO())
        assert code == 1
        assert "error:" in capsys.readouterr().err

    def test_no_key_fails(self, monkeypatch, capsys):
        monkeypatch.delenv("ENCRYPTION_KEY", raising=False)
        assert keys.main(["encrypt"], stdin=io.StringIO("x"), stdout=io.StringIO()) == 1
