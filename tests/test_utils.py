"""Unit tests for configuration handling in utils.py."""
import pytest


class TestConfig:
    """Tests for Utils.read_config_section."""

    def test_defaults_without_file(self, tmp_path):
        """A missing config file yields the built-in defaults."""
        from sunmoon_tide.utils import DEFAULTS, Utils
        values = Utils(tmp_path / 'missing.conf').read_config_section('storage')
        assert values == DEFAULTS['storage']

    def test_file_overrides_defaults(self, tmp_path):
        """Values in the file replace defaults; other keys remain."""
        from sunmoon_tide.utils import Utils
        path = tmp_path / 'custom.conf'
        path.write_text('[storage]\nquota_mb = 5\n', encoding='utf-8')
        values = Utils(path).read_config_section('storage')
        assert values['quota_mb'] == '5'
        assert values['max_tile_age_days'] == '30'

    def test_environment_variable(self, tmp_path, monkeypatch):
        """SUNMOON_TIDE_CONFIG points at the config file."""
        from sunmoon_tide.utils import CONFIG_ENV_VAR, Utils
        path = tmp_path / 'env.conf'
        path.write_text('[urls]\ntile_base_url = https://tiles.test\n',
                        encoding='utf-8')
        monkeypatch.setenv(CONFIG_ENV_VAR, str(path))
        assert Utils().get_config_file() == path
        assert Utils().read_config_section('urls')['tile_base_url'] == 'https://tiles.test'

    def test_unknown_section_raises(self, tmp_path):
        """Sections absent from both file and defaults raise KeyError."""
        from sunmoon_tide.utils import Utils
        with pytest.raises(KeyError):
            Utils(tmp_path / 'missing.conf').read_config_section('nowhere')

    def test_client_reads_base_url(self, tmp_path, monkeypatch):
        """TileClient takes its server root from the config file."""
        import asyncio

        from sunmoon_tide.tiles.client import TileClient
        from sunmoon_tide.utils import CONFIG_ENV_VAR
        path = tmp_path / 'env.conf'
        path.write_text('[urls]\ntile_base_url = https://tiles.test/v1/\n',
                        encoding='utf-8')
        monkeypatch.setenv(CONFIG_ENV_VAR, str(path))

        async def run():
            client = TileClient()
            assert client.base_url == 'https://tiles.test/v1'
            await client.close()

        asyncio.run(run())
