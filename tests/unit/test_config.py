# -*- coding: utf-8 -*-
"""
Unit Tests for deltadeploy.config
"""

import pytest
from unittest.mock import patch

from deltadeploy.config import DeltaDeployConfig, DeployOptions, PollingConfig, TestLevel


class TestDeployOptions:

    @pytest.mark.unit
    def test_defaults(self):
        options = DeployOptions()

        assert options.check_only is False
        assert options.test_level == TestLevel.NO_TEST_RUN
        assert options.rollback_on_error is True
        assert options.single_package is True
        assert options.run_tests == []

    @pytest.mark.unit
    def test_test_level_string_is_coerced(self):
        options = DeployOptions(test_level="RunLocalTests")

        assert options.test_level is TestLevel.RUN_LOCAL_TESTS

    @pytest.mark.unit
    def test_invalid_test_level(self):
        with pytest.raises(ValueError):
            DeployOptions(test_level="RunEverything")

    @pytest.mark.unit
    def test_run_tests_only_for_specified_level(self):
        assert DeployOptions(test_level="RunLocalTests", specified_tests=["A"]).run_tests == []
        assert DeployOptions(test_level="RunSpecifiedTests", specified_tests=["A"]).run_tests == ["A"]

    @pytest.mark.unit
    def test_with_tests_deduplicates(self):
        options = DeployOptions(test_level="RunSpecifiedTests", specified_tests=["A"])

        merged = options.with_tests(["B", "A"])

        assert merged.specified_tests == ["A", "B"]
        assert options.specified_tests == ["A"]

    @pytest.mark.unit
    def test_to_dict(self):
        data = DeployOptions(check_only=True).to_dict()

        assert data["checkOnly"] is True
        assert data["testLevel"] == "NoTestRun"


class TestPollingConfig:

    @pytest.mark.unit
    def test_delay_ramp(self):
        polling = PollingConfig()

        assert [polling.delay_for(n) for n in range(8)] == [5, 10, 15, 20, 25, 30, 30, 30]


class TestDeltaDeployConfig:

    @pytest.mark.unit
    @pytest.mark.parametrize("domain,url", [
        ("test", "https://test.salesforce.com"),
        ("login", "https://login.salesforce.com"),
        ("empresa", "https://empresa.my.salesforce.com"),
    ])
    def test_login_url(self, domain, url):
        config = DeltaDeployConfig(domain=domain)

        assert config.login_url == url
        assert config.token_url == f"{url}/services/oauth2/token"

    @pytest.mark.unit
    def test_urls_need_instance(self):
        config = DeltaDeployConfig()
        assert config.metadata_url is None

        config.instance_url = "https://x.my.salesforce.com"
        assert config.metadata_url == "https://x.my.salesforce.com/services/Soap/m/60.0"
        assert config.rest_url == "https://x.my.salesforce.com/services/data/v60.0"

    @pytest.mark.unit
    def test_from_env(self):
        env = {
            "SALESFORCE_USERNAME": "ci@empresa.com",
            "SALESFORCE_CLIENT_ID": "3MVG9",
            "SALESFORCE_PRIVATE_KEY": "server.key",
            "SALESFORCE_DOMAIN": "login",
            "DELTADEPLOY_EXCLUDE": "Profile, Workflow,",
            "DELTADEPLOY_SOURCE_DIR": "src",
        }

        with patch.dict("os.environ", env, clear=True):
            config = DeltaDeployConfig.from_env()

        assert config.username == "ci@empresa.com"
        assert config.domain == "login"
        assert config.exclude_types == ["Profile", "Workflow"]
        assert config.source_dir == "src"
        assert config.api_version == "60.0"
        assert config.package_version == "58.0"
        assert not config.is_sandbox

    @pytest.mark.unit
    def test_validate_lists_missing_fields(self):
        with pytest.raises(ValueError) as exc_info:
            DeltaDeployConfig(username="u").validate()

        assert "client_id" in str(exc_info.value)
        assert "private_key_path" in str(exc_info.value)

    @pytest.mark.unit
    def test_to_dict_hides_token(self):
        config = DeltaDeployConfig(access_token="secret")

        data = config.to_dict()

        assert "secret" not in str(data)
        assert data["has_access_token"] is True
