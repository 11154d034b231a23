"""Tests for ProviderConfig credential resolution."""

from __future__ import annotations

from unittest.mock import MagicMock, Mock

import pytest

from aws_cloud_operator.builders.credentials import (
    get_global_region,
    parse_credentials_file,
    provider_partition,
    resolve_client_config,
    resolve_endpoint,
    resolve_region,
)
from aws_cloud_operator.constants import ANNOTATION_ENDPOINT_SERVICE_ID, ANNOTATION_ENDPOINT_URL
from aws_cloud_operator.errors import ProviderConfigError

CREDENTIALS = """[default]
aws_access_key_id = AKIDDEFAULT
aws_secret_access_key = default-secret

[ci]
aws_access_key_id = AKIDCI
aws_secret_access_key = ci-secret
aws_session_token = ci-token
"""


def _provider_config(**spec):
    return {"metadata": {"name": "default"}, "spec": spec}


def _secret_spec(profile=None, key=None):
    ref = {"namespace": "aws-cloud-operator", "name": "aws-creds"}
    if key:
        ref["key"] = key
    credentials = {"source": "Secret", "secretRef": ref}
    if profile:
        credentials["profile"] = profile
    return credentials


class TestParseCredentialsFile:
    """Test cases for shared-credentials parsing."""

    def test_default_profile(self):
        """Test the default profile is read."""
        assert parse_credentials_file(CREDENTIALS) == ("AKIDDEFAULT", "default-secret", None)

    def test_named_profile_with_session_token(self):
        """Test a named profile with a session token."""
        assert parse_credentials_file(CREDENTIALS, "ci") == ("AKIDCI", "ci-secret", "ci-token")

    def test_profile_matches_case_insensitively(self):
        """Test section names match regardless of case."""
        data = "[Default]\nAWS_ACCESS_KEY_ID = AK\naws_secret_access_key = SK\n"
        assert parse_credentials_file(data) == ("AK", "SK", None)

    def test_keys_without_section(self):
        """Test keys without a section header belong to the default profile."""
        data = "aws_access_key_id = AK\naws_secret_access_key = SK\n"
        assert parse_credentials_file(data) == ("AK", "SK", None)

    def test_missing_profile(self):
        """Test a missing profile is a ProviderConfig error."""
        with pytest.raises(ProviderConfigError, match="cannot get prod profile"):
            parse_credentials_file(CREDENTIALS, "prod")


class TestResolveRegion:
    """Test cases for region resolution."""

    def test_resource_region_wins(self):
        """Test the resource region overrides the ProviderConfig region."""
        assert resolve_region(_provider_config(region="us-east-1"), "eu-west-1") == "eu-west-1"

    def test_provider_config_region(self):
        """Test the ProviderConfig region is the fallback."""
        assert resolve_region(_provider_config(region="us-east-1")) == "us-east-1"

    def test_missing_region(self):
        """Test that a missing region is an error."""
        with pytest.raises(ProviderConfigError):
            resolve_region(_provider_config())

    def test_global_resource(self):
        """Test partition-global resources use the global pseudo-region."""
        config = _provider_config(credentials={"source": "IRSA", "partition": "aws-cn"})
        assert resolve_region(config, "eu-west-1", global_resource=True) == "aws-cn-global"
        assert get_global_region(None) == "aws-global"

    def test_partition_read_from_credentials(self):
        """Test only the credentials block selects the partition."""
        assert resolve_region(_provider_config(partition="aws-cn"), global_resource=True) == "aws-global"
        assert provider_partition({"credentials": {"partition": "aws-us-gov"}}) == "aws-us-gov"
        assert provider_partition({}) is None


class TestResolveEndpoint:
    """Test cases for endpoint overrides."""

    def test_annotation_override(self):
        """Test annotations take precedence over the ProviderConfig endpoint."""
        endpoint = resolve_endpoint(
            _provider_config(endpoint={"url": "http://pc"}),
            {ANNOTATION_ENDPOINT_URL: "http://annotated", ANNOTATION_ENDPOINT_SERVICE_ID: "s3"},
        )
        assert endpoint.url == "http://annotated"
        assert endpoint.services == ["s3"]

    def test_provider_config_endpoint(self):
        """Test the ProviderConfig endpoint is used without annotations."""
        endpoint = resolve_endpoint(
            _provider_config(endpoint={"url": "http://pc", "signingRegion": "us-east-1", "services": ["sts"]})
        )
        assert endpoint.url == "http://pc"
        assert endpoint.signing_region == "us-east-1"
        assert endpoint.services == ["sts"]

    def test_no_endpoint(self):
        """Test no override when nothing is configured."""
        assert resolve_endpoint(_provider_config()) is None


class TestResolveClientConfig:
    """Test cases for resolve_client_config."""

    def test_secret_source(self):
        """Test static credentials are read from the secret."""
        kube = Mock()
        kube.read_secret_data.return_value = {"credentials": CREDENTIALS}

        cfg = resolve_client_config(_provider_config(credentials=_secret_spec(profile="ci")), "us-east-1", kube)

        kube.read_secret_data.assert_called_once_with("aws-cloud-operator", "aws-creds")
        assert cfg.region == "us-east-1"
        assert cfg.access_key_id == "AKIDCI"
        assert cfg.session_token == "ci-token"

    def test_secret_missing_key(self):
        """Test a secret without the configured key."""
        kube = Mock()
        kube.read_secret_data.return_value = {"credentials": CREDENTIALS}

        with pytest.raises(ProviderConfigError, match="key 'other' not found"):
            resolve_client_config(_provider_config(credentials=_secret_spec(key="other")), "us-east-1", kube)

    def test_secret_not_found(self):
        """Test an unreadable secret is a ProviderConfig error."""
        kube = Mock()
        kube.read_secret_data.side_effect = ValueError("Secret 'aws-creds' not found")

        with pytest.raises(ProviderConfigError, match="cannot get credentials secret"):
            resolve_client_config(_provider_config(credentials=_secret_spec()), "us-east-1", kube)

    def test_ambient_source(self):
        """Test ambient sources carry no static credentials."""
        cfg = resolve_client_config(_provider_config(credentials={"source": "IRSA"}), "us-west-2", Mock())

        assert cfg.region == "us-west-2"
        assert not cfg.has_static_credentials

    def test_unsupported_source(self):
        """Test an unknown source is rejected."""
        with pytest.raises(ProviderConfigError, match="unsupported credentials source"):
            resolve_client_config(_provider_config(credentials={"source": "Filesystem"}), "us-east-1", Mock())

    def test_assume_role_chain(self):
        """Test each role in the chain is assumed with the previous credentials."""
        sts = MagicMock()
        sts.assume_role.side_effect = [
            {"AccessKeyId": "AK1", "SecretAccessKey": "SK1", "SessionToken": "T1"},
            {"AccessKeyId": "AK2", "SecretAccessKey": "SK2", "SessionToken": "T2"},
        ]
        sts_factory = Mock(return_value=sts)
        spec = {
            "credentials": {"source": "IRSA"},
            "assumeRoleChain": [
                {"roleARN": "arn:aws:iam::1:role/a"},
                {"roleARN": "arn:aws:iam::2:role/b", "externalID": "ext"},
            ],
        }

        cfg = resolve_client_config(_provider_config(**spec), "us-east-1", Mock(), sts_factory=sts_factory)

        assert cfg.access_key_id == "AK2"
        assert cfg.session_token == "T2"
        second_caller_cfg = sts_factory.call_args_list[1][0][0]
        assert second_caller_cfg.access_key_id == "AK1"
        sts.assume_role.assert_called_with("arn:aws:iam::2:role/b", "aws-cloud-operator", "ext")
