"""
tests/test_kube_store.py
─────────────────────────
KubeObjectStore over mocked CoreV1Api / AppsV1Api / CustomObjectsApi.

Test groups:
    Group 1 — Successful reads are translated
    Group 2 — 404 means absent
    Group 3 — Other API errors raise ObjectStoreError
    Group 4 — Tiered locality ConfigMap
    Group 5 — Client configuration
    Group 6 — Payloads the models reject
"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from kubernetes.client import models as k8s
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException

from affinity_injector.control_plane.injection_service import AffinityInjectionService
from affinity_injector.lookup.kube_store import KubeObjectStore
from affinity_injector.lookup.store import ObjectStoreError
from affinity_injector.shared.models import RuntimeKind

from builders import csi_pv, dataset_object, fuse_daemonset, make_pod, pvc


def _store(settings, core=None, apps=None, custom=None) -> KubeObjectStore:
    return KubeObjectStore(
        core_api=core or MagicMock(),
        apps_api=apps or MagicMock(),
        custom_api=custom or MagicMock(),
        settings=settings,
    )


def _config_map(text) -> k8s.V1ConfigMap:
    return k8s.V1ConfigMap(
        metadata=k8s.V1ObjectMeta(name="tiered-locality-config", namespace="fluid-system"),
        data={"tieredLocality": text},
    )


# ─────────────────────────────────────────────────────────────────────────────
# Group 1 — Successful reads
# ─────────────────────────────────────────────────────────────────────────────

class TestReads:
    def test_get_claim(self, settings):
        core = MagicMock()
        core.read_namespaced_persistent_volume_claim.return_value = pvc(
            "big-data", "done", "big-data-done", {"fluid.io/s-big-data-done": "true"}
        )
        claim = _store(settings, core=core).get_claim("big-data", "done")
        core.read_namespaced_persistent_volume_claim.assert_called_once_with(
            name="done", namespace="big-data"
        )
        assert claim.is_dataset_claim
        assert claim.volume_name == "big-data-done"

    def test_get_volume(self, settings):
        core = MagicMock()
        core.read_persistent_volume.return_value = csi_pv("big-data-done", "/p", "jindo")
        volume = _store(settings, core=core).get_volume("big-data-done")
        assert volume.mount_type == "jindo"

    def test_get_daemonset(self, settings):
        apps = MagicMock()
        apps.read_namespaced_daemon_set.return_value = fuse_daemonset("big-data", "done-jindofs-fuse")
        ds = _store(settings, apps=apps).get_daemonset("big-data", "done-jindofs-fuse")
        apps.read_namespaced_daemon_set.assert_called_once_with(
            name="done-jindofs-fuse", namespace="big-data"
        )
        assert ds.name == "done-jindofs-fuse"

    def test_get_dataset(self, settings):
        custom = MagicMock()
        custom.get_namespaced_custom_object.return_value = dataset_object(
            "big-data", "done", ["oss://b/done"], "Bound", ["jindo"]
        )
        ds = _store(settings, custom=custom).get_dataset("big-data", "done")
        custom.get_namespaced_custom_object.assert_called_once_with(
            group="data.fluid.io",
            version="v1alpha1",
            namespace="big-data",
            plural="datasets",
            name="done",
        )
        assert ds.runtime_kind == RuntimeKind.JINDO

    @pytest.mark.parametrize(
        "kind,plural",
        [
            (RuntimeKind.JINDO, "jindoruntimes"),
            (RuntimeKind.ALLUXIO, "alluxioruntimes"),
            (RuntimeKind.GOOSEFS, "goosefsruntimes"),
            (RuntimeKind.EFC, "efcruntimes"),
        ],
    )
    def test_get_runtime_uses_kind_plural(self, settings, kind, plural):
        custom = MagicMock()
        custom.get_namespaced_custom_object.return_value = {
            "metadata": {"name": "done", "namespace": "big-data"}
        }
        record = _store(settings, custom=custom).get_runtime("big-data", "done", kind)
        assert custom.get_namespaced_custom_object.call_args.kwargs["plural"] == plural
        assert record.kind == kind


# ─────────────────────────────────────────────────────────────────────────────
# Group 2 — 404 means absent
# ─────────────────────────────────────────────────────────────────────────────

class TestNotFound:
    def test_claim(self, settings):
        core = MagicMock()
        core.read_namespaced_persistent_volume_claim.side_effect = ApiException(status=404, reason="Not Found")
        assert _store(settings, core=core).get_claim("ns", "x") is None

    def test_dataset(self, settings):
        custom = MagicMock()
        custom.get_namespaced_custom_object.side_effect = ApiException(status=404, reason="Not Found")
        assert _store(settings, custom=custom).get_dataset("ns", "x") is None

    def test_daemonset(self, settings):
        apps = MagicMock()
        apps.read_namespaced_daemon_set.side_effect = ApiException(status=404, reason="Not Found")
        assert _store(settings, apps=apps).get_daemonset("ns", "x") is None


# ─────────────────────────────────────────────────────────────────────────────
# Group 3 — Other API errors
# ─────────────────────────────────────────────────────────────────────────────

class TestApiErrors:
    @pytest.mark.parametrize("status", [403, 500, 503])
    def test_volume_lookup_failure(self, settings, status):
        core = MagicMock()
        core.read_persistent_volume.side_effect = ApiException(status=status, reason="Nope")
        with pytest.raises(ObjectStoreError, match=str(status)) as exc_info:
            _store(settings, core=core).get_volume("big-data-done")
        assert "volume big-data-done" in exc_info.value.reason

    def test_failure_is_not_logged_as_an_error(self, settings, caplog):
        core = MagicMock()
        core.read_persistent_volume.side_effect = ApiException(status=500, reason="Internal")
        with caplog.at_level("DEBUG", logger="affinity_injector.lookup.kube_store"):
            with pytest.raises(ObjectStoreError):
                _store(settings, core=core).get_volume("big-data-done")
        records = [r for r in caplog.records if r.name == "affinity_injector.lookup.kube_store"]
        assert records
        assert all(r.levelname == "DEBUG" for r in records)

    def test_runtime_lookup_failure_names_the_kind(self, settings):
        custom = MagicMock()
        custom.get_namespaced_custom_object.side_effect = ApiException(status=500, reason="Internal")
        with pytest.raises(ObjectStoreError, match="JindoRuntime big-data/done"):
            _store(settings, custom=custom).get_runtime("big-data", "done", RuntimeKind.JINDO)


# ─────────────────────────────────────────────────────────────────────────────
# Group 4 — Tiered locality ConfigMap
# ─────────────────────────────────────────────────────────────────────────────

class TestTieredLocalityPolicy:
    def test_reads_configured_config_map(self, settings):
        core = MagicMock()
        core.read_namespaced_config_map.return_value = _config_map("required: [fluid.io/node]\n")
        policy = _store(settings, core=core).get_tiered_locality_policy()
        core.read_namespaced_config_map.assert_called_once_with(
            name="tiered-locality-config", namespace="fluid-system"
        )
        assert policy.required == ["fluid.io/node"]

    def test_absent_config_map_is_no_policy(self, settings):
        core = MagicMock()
        core.read_namespaced_config_map.side_effect = ApiException(status=404, reason="Not Found")
        assert _store(settings, core=core).get_tiered_locality_policy() is None

    def test_malformed_payload_is_a_lookup_failure(self, settings):
        core = MagicMock()
        core.read_namespaced_config_map.return_value = _config_map("- not\n- a mapping\n")
        with pytest.raises(ObjectStoreError, match="tiered-locality-config"):
            _store(settings, core=core).get_tiered_locality_policy()


# ─────────────────────────────────────────────────────────────────────────────
# Group 5 — Client configuration
# ─────────────────────────────────────────────────────────────────────────────

class TestFromEnvironment:
    def test_in_cluster_config_first(self, settings):
        with patch("affinity_injector.lookup.kube_store.k8s_config") as config, \
                patch("affinity_injector.lookup.kube_store.k8s_client"):
            KubeObjectStore.from_environment(settings)
        config.load_incluster_config.assert_called_once()
        config.load_kube_config.assert_not_called()

    def test_falls_back_to_kubeconfig(self, settings):
        with patch("affinity_injector.lookup.kube_store.k8s_config") as config, \
                patch("affinity_injector.lookup.kube_store.k8s_client"):
            config.load_incluster_config.side_effect = ConfigException("not in cluster")
            KubeObjectStore.from_environment(settings)
        config.load_kube_config.assert_called_once()


# ─────────────────────────────────────────────────────────────────────────────
# Group 6 — Payloads the models reject
# ─────────────────────────────────────────────────────────────────────────────

class TestMalformedPayloads:
    def test_null_runtime_namespace_is_tolerated(self, settings):
        custom = MagicMock()
        custom.get_namespaced_custom_object.return_value = {
            "metadata": {"name": "d", "namespace": "ns"},
            "status": {
                "phase": "Bound",
                "runtimes": [{"type": "jindo", "name": "d", "namespace": None}],
            },
        }
        ds = _store(settings, custom=custom).get_dataset("ns", "d")
        assert ds.runtimes[0].namespace == ""
        assert ds.runtime_kind == RuntimeKind.JINDO

    def test_wrongly_typed_dataset_field_is_a_lookup_failure(self, settings):
        custom = MagicMock()
        custom.get_namespaced_custom_object.return_value = {
            "metadata": {"name": "d", "namespace": "ns"},
            "spec": {"mounts": [{"mountPoint": ["oss://a", "oss://b"]}]},
        }
        with pytest.raises(ObjectStoreError, match="dataset ns/d"):
            _store(settings, custom=custom).get_dataset("ns", "d")

    def test_wrongly_typed_runtime_name_is_a_lookup_failure(self, settings):
        custom = MagicMock()
        custom.get_namespaced_custom_object.return_value = {
            "metadata": {"name": {"unexpected": "map"}, "namespace": "ns"}
        }
        with pytest.raises(ObjectStoreError, match="JindoRuntime ns/d"):
            _store(settings, custom=custom).get_runtime("ns", "d", RuntimeKind.JINDO)

    def test_review_rejects_instead_of_erroring(self, settings):
        core = MagicMock()
        core.read_namespaced_persistent_volume_claim.return_value = pvc(
            "ns", "d", "ns-d", {"fluid.io/s-ns-d": "true"}
        )
        core.read_namespaced_config_map.side_effect = ApiException(status=404, reason="Not Found")
        custom = MagicMock()
        custom.get_namespaced_custom_object.return_value = {
            "metadata": {"name": "d", "namespace": "ns"},
            "spec": {"mounts": [{"mountPoint": 7}]},
        }
        store = _store(settings, core=core, custom=custom)
        outcome = AffinityInjectionService(store, settings).review("ns", make_pod("d", namespace="ns"))
        assert outcome["status"] == "REJECTED"
        assert outcome["message"].startswith("LookupFailedError")
