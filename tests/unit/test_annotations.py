# ABOUTME: Unit tests for the expose URL annotation recorder
# ABOUTME: Tests scheme inference, write suppression and non-fatal write failures

from unittest.mock import MagicMock

import pytest
from kubernetes import client

from conftest import api_error, make_service
from expose_controller.annotations import AnnotationRecorder, build_expose_url, infer_scheme
from expose_controller.model import EXPOSE_URL_ANNOTATION


def _ports(*names: str) -> list[client.V1ServicePort]:
    return [client.V1ServicePort(name=name, port=80 + i) for i, name in enumerate(names)]


@pytest.mark.unit
class TestInferScheme:
    """Tests for scheme selection."""

    def test_https_port_suffix(self):
        assert infer_scheme(make_service(ports=_ports("web")), "1.2.3.4:443") == "https"
        assert infer_scheme(make_service(ports=_ports("web")), "1.2.3.4:8443") == "https"

    def test_plain_port_suffix(self):
        assert infer_scheme(make_service(ports=_ports("web")), "1.2.3.4:8080") == "http"

    def test_port_named_https(self):
        """Test that a port named https wins over a plain host port."""
        service = make_service(ports=_ports("http", "https"))
        assert infer_scheme(service, "1.2.3.4:8080") == "https"

    def test_hostname_without_port(self):
        assert infer_scheme(make_service(), "foo.bar.example.com") == "http"

    def test_service_without_ports(self):
        assert infer_scheme(make_service(ports=[]), "foo.bar.example.com") == "http"

    def test_build_expose_url(self):
        assert build_expose_url(make_service(), "foo.bar.example.com") == "http://foo.bar.example.com"


@pytest.mark.unit
class TestAnnotationRecorder:
    """Tests for AnnotationRecorder."""

    def test_writes_new_url(self, core_api, audit_logger):
        """Test that a service without the annotation gets it."""
        recorder = AnnotationRecorder(core_api, audit_logger)
        service = make_service(name="foo", namespace="bar")

        assert recorder.record(service, "foo.bar.example.com") is True

        core_api.patch_namespaced_service.assert_called_once_with(
            name="foo",
            namespace="bar",
            body={"metadata": {"annotations": {EXPOSE_URL_ANNOTATION: "http://foo.bar.example.com"}}},
        )
        assert service.metadata.annotations[EXPOSE_URL_ANNOTATION] == "http://foo.bar.example.com"
        audit_logger.log.assert_called_once()

    def test_unchanged_url_is_not_written(self, core_api):
        """Test that an identical stored URL produces no API write."""
        recorder = AnnotationRecorder(core_api)
        service = make_service(
            name="foo",
            namespace="bar",
            annotations={EXPOSE_URL_ANNOTATION: "http://foo.bar.example.com"},
        )

        assert recorder.record(service, "foo.bar.example.com") is False
        core_api.patch_namespaced_service.assert_not_called()

    def test_host_changed_forces_write(self, core_api):
        """Test that a freshly created backend resource rewrites the annotation."""
        recorder = AnnotationRecorder(core_api)
        service = make_service(
            annotations={EXPOSE_URL_ANNOTATION: "http://web.default.example.com"},
        )

        assert recorder.record(service, "web.default.example.com", host_changed=True) is True
        core_api.patch_namespaced_service.assert_called_once()

    def test_stale_url_is_replaced(self, core_api):
        recorder = AnnotationRecorder(core_api)
        service = make_service(annotations={EXPOSE_URL_ANNOTATION: "http://web.default.old.com"})

        assert recorder.record(service, "web.default.example.com") is True
        body = core_api.patch_namespaced_service.call_args.kwargs["body"]
        assert body["metadata"]["annotations"][EXPOSE_URL_ANNOTATION] == "http://web.default.example.com"

    def test_write_failure_is_not_raised(self, audit_logger):
        """Test that a failed annotation write is logged and audited only."""
        core_api = MagicMock(spec=client.CoreV1Api)
        core_api.patch_namespaced_service.side_effect = api_error(409)
        recorder = AnnotationRecorder(core_api, audit_logger)
        service = make_service()

        assert recorder.record(service, "web.default.example.com") is False
        assert service.metadata.annotations is None
        audit_logger.log_error.assert_called_once()
        assert audit_logger.log_error.call_args.args[0] == "annotate"
