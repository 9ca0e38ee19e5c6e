"""Tests for namespace and pod enumeration."""

import logging

from conftest import FakePodApi, pod_manifest

from terminator.config import ScanConfig
from terminator.pods import PodRef
from terminator.scan import iter_candidate_pods


def make_api():
    return FakePodApi(
        [
            pod_manifest("foo-1", namespace="a"),
            pod_manifest("bar-1", namespace="a"),
            pod_manifest("foo-2", namespace="b"),
            pod_manifest("foo-3", namespace="c"),
        ]
    )


def test_all_pods_when_unfiltered(logger):
    refs = list(iter_candidate_pods(make_api(), ScanConfig(), logger))
    assert len(refs) == 4


def test_namespace_filter_skips_other_namespaces(logger):
    api = make_api()
    refs = list(iter_candidate_pods(api, ScanConfig(namespaces={"a", "b"}), logger))
    assert {r.namespace for r in refs} == {"a", "b"}
    assert ("list_pods", "c") not in api.calls


def test_prefix_filter(logger):
    refs = list(iter_candidate_pods(make_api(), ScanConfig(pod_name_prefixes=("foo-",)), logger))
    assert PodRef("a", "foo-1") in refs
    assert PodRef("a", "bar-1") not in refs


def test_prefix_filter_is_case_sensitive(logger):
    refs = list(iter_candidate_pods(make_api(), ScanConfig(pod_name_prefixes=("FOO-",)), logger))
    assert refs == []


def test_namespace_list_failure_skips_cycle(logger, caplog):
    api = make_api()
    api.fail_list_namespaces = True
    with caplog.at_level(logging.ERROR):
        assert list(iter_candidate_pods(api, ScanConfig(), logger)) == []
    assert "Cannot list namespaces" in caplog.text
    assert not api.calls_to("list_pods")


def test_pod_list_failure_skips_only_that_namespace(logger, caplog):
    api = make_api()
    api.fail_list_pods = {"a"}
    with caplog.at_level(logging.ERROR):
        refs = list(iter_candidate_pods(api, ScanConfig(), logger))
    assert {r.namespace for r in refs} == {"b", "c"}
    assert "Cannot list pods in namespace 'a'" in caplog.text


def test_pods_are_listed_lazily(logger):
    api = make_api()
    refs = iter_candidate_pods(api, ScanConfig(), logger)
    next(refs)
    assert api.calls_to("list_pods") == [("list_pods", "a")]


def test_should_stop_checked_before_each_namespace(logger):
    api = make_api()
    refs = list(iter_candidate_pods(api, ScanConfig(), logger, should_stop=lambda: bool(api.calls_to("list_pods"))))
    assert api.calls_to("list_pods") == [("list_pods", "a")]
    assert {r.namespace for r in refs} == {"a"}
