"""Metric sources: where the evaluator gets its readings."""
import logging
import math
import threading
from typing import Protocol, runtime_checkable

import requests

from utils.http_client import HTTPClient, APIError

logger = logging.getLogger("alertengine.metrics")

NO_DATA = (0.0, False)


@runtime_checkable
class MetricSource(Protocol):
    def query(self, metric: str, labels: dict) -> tuple: ...


def _label_key(labels):
    return frozenset((labels or {}).items())


class StaticMetricSource:
    """In-memory readings, set explicitly. Backs tests and `replay`.

    A reading set with labels only answers queries with exactly those
    labels; one set without labels answers any query for the metric.
    """

    def __init__(self, values=None):
        self._values = {}
        self._lock = threading.Lock()
        for metric, value in (values or {}).items():
            self.set(metric, value)

    def set(self, metric, value, labels=None):
        with self._lock:
            if value is None:
                self._values.pop((metric, _label_key(labels)), None)
            else:
                self._values[(metric, _label_key(labels))] = float(value)

    def update(self, values):
        for metric, value in values.items():
            self.set(metric, value)

    def clear(self):
        with self._lock:
            self._values.clear()

    def query(self, metric, labels=None):
        with self._lock:
            value = self._values.get((metric, _label_key(labels)))
            if value is None:
                value = self._values.get((metric, frozenset()))
        if value is None or math.isnan(value):
            return NO_DATA
        return value, True


class PrometheusMetricSource:
    """Instant queries against the Prometheus HTTP API.

    The rule's metric name and selector become `metric{k="v",...}`; the
    first sample of the result vector is used. Empty results, NaN and any
    transport error all count as no data.
    """

    def __init__(self, base_url, timeout=10, max_retries=1, client=None):
        self.client = client or HTTPClient(base_url, timeout=timeout, max_retries=max_retries)

    @staticmethod
    def build_query(metric, labels=None):
        if not labels:
            return metric
        matchers = ",".join(
            '{}="{}"'.format(k, str(v).replace("\\", "\\\\").replace('"', '\\"'))
            for k, v in sorted(labels.items())
        )
        return f"{metric}{{{matchers}}}"

    def query(self, metric, labels=None):
        promql = self.build_query(metric, labels)
        try:
            body = self.client.get("/api/v1/query", params={"query": promql})
        except (APIError, requests.RequestException) as e:
            logger.warning(f"Prometheus query {promql} failed: {e}")
            return NO_DATA

        if not isinstance(body, dict) or body.get("status") != "success":
            error = body.get("error") if isinstance(body, dict) else body
            logger.warning(f"Prometheus query {promql} returned {error}")
            return NO_DATA

        data = body.get("data", {})
        result = data.get("result")
        try:
            if data.get("resultType") == "scalar":
                value = float(result[1])
            elif result:
                value = float(result[0]["value"][1])
            else:
                return NO_DATA
        except (KeyError, IndexError, TypeError, ValueError) as e:
            logger.warning(f"Unexpected Prometheus payload for {promql}: {e}")
            return NO_DATA

        if math.isnan(value):
            return NO_DATA
        if len(result) > 1 and data.get("resultType") == "vector":
            logger.debug(f"{promql} matched {len(result)} series; using the first")
        return value, True

    def close(self):
        self.client.close()


def build_metric_source(metrics_cfg):
    metrics_cfg = metrics_cfg or {}
    kind = metrics_cfg.get("source", "prometheus")
    if kind == "prometheus":
        prom = metrics_cfg.get("prometheus", {})
        return PrometheusMetricSource(prom.get("url", "http://localhost:9090"),
                                      timeout=prom.get("timeout", 10),
                                      max_retries=prom.get("max_retries", 1))
    if kind == "static":
        return StaticMetricSource(metrics_cfg.get("static", {}))
    raise ValueError(f"Unknown metrics.source: {kind!r}")
