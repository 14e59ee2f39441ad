"""Tests for typed object views and manifest builders."""

from __future__ import annotations

import pytest
from conftest import credential_secret, gateway_body, gateway_class_body, route_body

from tunnelgate.cluster import manifests
from tunnelgate.cluster.objects import (
    ClassCredentials,
    Gateway,
    GatewayClass,
    HTTPRoute,
    secret_data,
)
from tunnelgate.core.exceptions import MissingFieldError, RouteSpecError
from tunnelgate.ingress.config import CONFIG_FILE_PATH


class TestGatewayClass:
    """Tests for GatewayClass.from_dict."""

    def test_parameters_ref(self):
        """The credential reference is read from parametersRef."""
        gateway_class = GatewayClass.from_dict(gateway_class_body(secret_namespace="ops"))

        assert gateway_class.parameters_ref.name == "cf-creds"
        assert gateway_class.parameters_ref.namespace == "ops"
        assert gateway_class.generation == 1

    def test_no_parameters_ref(self):
        """A class without parametersRef has no reference."""
        assert GatewayClass.from_dict(gateway_class_body(secret=None)).parameters_ref is None


class TestHTTPRoute:
    """Tests for HTTPRoute.from_dict."""

    def test_defaults_namespaces(self):
        """Parent and backend namespaces default to the route's namespace."""
        route = HTTPRoute.from_dict(route_body(gateway_namespace=None))

        assert route.gateway_ref.namespace == "apps"
        assert route.backend.namespace == "apps"
        assert route.owner_id == "apps/web"

    def test_first_backend_per_rule(self):
        """Only the first backend of each rule is kept."""
        body = route_body()
        body["spec"]["rules"] = [
            {"backendRefs": [{"name": "a", "port": 1}, {"name": "b", "port": 2}]},
            {"backendRefs": [{"name": "c", "port": 3}]},
        ]

        route = HTTPRoute.from_dict(body)

        assert [b.name for b in route.backend_refs] == ["a", "c"]
        assert route.backend.name == "a"

    def test_missing_parent(self):
        """A route without parentRefs has no gateway."""
        body = route_body()
        body["spec"]["parentRefs"] = []

        with pytest.raises(RouteSpecError):
            HTTPRoute.from_dict(body).gateway_ref

    def test_missing_port(self):
        """A backend without a port cannot be addressed."""
        with pytest.raises(RouteSpecError):
            HTTPRoute.from_dict(route_body(port=None)).backend


class TestClassCredentials:
    """Tests for credential secrets."""

    def test_from_secret(self):
        """Base64 data is decoded into the four fields."""
        creds = ClassCredentials.from_secret(credential_secret())

        assert creds.api_token == "token-abc"
        assert creds.account_id == "acct-123"
        creds.validate()

    def test_missing_field_named(self):
        """Validation names the first missing field."""
        creds = ClassCredentials.from_secret(credential_secret(domain=None))

        with pytest.raises(MissingFieldError) as exc_info:
            creds.validate()

        assert exc_info.value.field == "domain"
        assert str(exc_info.value) == "secret does not contain a domain key"

    def test_string_data_and_bad_base64(self):
        """stringData is read as-is and undecodable data reads as empty."""
        data = secret_data({"data": {"email": "%%%"}, "stringData": {"domain": " example.com "}})

        assert data == {"email": "", "domain": "example.com"}


class TestManifests:
    """Tests for the config map, secret and deployment builders."""

    @pytest.fixture
    def gateway(self) -> Gateway:
        return Gateway.from_dict(gateway_body())

    def test_owner_reference(self, gateway):
        """Every object is owned by its gateway."""
        config_map = manifests.build_config_map(gateway, "{}")

        ref = config_map["metadata"]["ownerReferences"][0]
        assert ref["kind"] == "Gateway"
        assert ref["uid"] == "uid-gw1"
        assert config_map["metadata"]["name"] == "gw1-config"
        assert config_map["metadata"]["labels"][manifests.MANAGED_BY_LABEL] == manifests.MANAGED_BY

    def test_rule_owners_round_trip(self, gateway):
        """The ownership annotation decodes to what was encoded."""
        config_map = manifests.build_config_map(gateway, "{}", {"a.com": "apps/web"})

        assert manifests.rule_owners(config_map) == {"a.com": "apps/web"}

    def test_rule_owners_garbage(self):
        """An unreadable ownership annotation reads as no owners."""
        body = {"metadata": {"annotations": {manifests.RULE_OWNERS_ANNOTATION: "[1, 2"}}}

        assert manifests.rule_owners(body) == {}

    def test_deployment(self, gateway):
        """The workload surges before it drops and probes readiness quickly."""
        deployment = manifests.build_deployment(gateway, "t-1", metrics_port=2000)

        spec = deployment["spec"]
        assert spec["replicas"] == 1
        assert spec["strategy"]["rollingUpdate"] == {"maxSurge": 1, "maxUnavailable": 0}
        container = spec["template"]["spec"]["containers"][0]
        assert container["args"] == [
            "tunnel",
            "--protocol", "auto",
            "--config", CONFIG_FILE_PATH,
            "--metrics", "0.0.0.0:2000",
            "run",
            "t-1",
        ]
        assert container["livenessProbe"]["httpGet"] == {"path": "/ready", "port": 2000}
        assert container["livenessProbe"]["failureThreshold"] == 1
        assert all(mount["readOnly"] for mount in container["volumeMounts"])

    def test_config_hash_changes_with_content(self):
        """Different configs give different hashes."""
        assert manifests.config_hash("a") != manifests.config_hash("b")
        assert manifests.config_hash("a") == manifests.config_hash("a")
