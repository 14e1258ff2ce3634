"""
PromQL used by the analyzer.

Per-pod figures are averaged across the deployment's pods so that usage can
be compared against the per-pod request. CPU is expressed in millicores and
memory in MiB.
"""
import re

# Kubernetes object names (RFC 1123 labels/subdomains); keeps label matchers injection-free
_NAME_RE = re.compile(r'^[a-z0-9]([-a-z0-9.]{0,251}[a-z0-9])?$')

MEBIBYTE = 1024 * 1024


def validate_name(kind: str, value: str) -> str:
    if not value or not _NAME_RE.match(value):
        raise ValueError(f"invalid {kind} name: {value!r}")
    return value


def _pod_selector(namespace: str, deployment: str) -> str:
    validate_name("namespace", namespace)
    validate_name("deployment", deployment)
    return f'namespace="{namespace}",pod=~"{deployment}-.*"'


def _deployment_selector(namespace: str, deployment: str) -> str:
    validate_name("namespace", namespace)
    validate_name("deployment", deployment)
    return f'namespace="{namespace}",deployment="{deployment}"'


def _hpa_for(metric: str, namespace: str, deployment: str, extra: str = "") -> str:
    # HPA objects are matched through their scale target, not their own name
    matcher = f'namespace="{namespace}"' + (f",{extra}" if extra else "")
    return (
        f'max({metric}{{{matcher}}} '
        f'* on (namespace, horizontalpodautoscaler) group_left '
        f'kube_horizontalpodautoscaler_info{{{_hpa_target(namespace, deployment)}}})'
    )


def _hpa_target(namespace: str, deployment: str) -> str:
    validate_name("namespace", namespace)
    validate_name("deployment", deployment)
    return f'namespace="{namespace}",scaletargetref_kind="Deployment",scaletargetref_name="{deployment}"'


def cpu_usage(namespace: str, deployment: str) -> str:
    """Average CPU per pod, millicores"""
    sel = _pod_selector(namespace, deployment)
    return (
        f'avg(sum by (pod) (rate(container_cpu_usage_seconds_total{{{sel},container!="",container!="POD"}}[5m]))) * 1000'
    )


def memory_usage(namespace: str, deployment: str) -> str:
    """Average working-set memory per pod, MiB"""
    sel = _pod_selector(namespace, deployment)
    return (
        f'avg(sum by (pod) (container_memory_working_set_bytes{{{sel},container!="",container!="POD"}})) / ({MEBIBYTE})'
    )


def running_pods(namespace: str, deployment: str) -> str:
    return f'sum(kube_deployment_status_replicas_available{{{_deployment_selector(namespace, deployment)}}})'


def deployment_exists(namespace: str, deployment: str) -> str:
    """1 when kube-state-metrics knows the deployment, 0 otherwise"""
    return f'count(kube_deployment_created{{{_deployment_selector(namespace, deployment)}}}) or vector(0)'


def spec_replicas(namespace: str, deployment: str) -> str:
    return f'max(kube_deployment_spec_replicas{{{_deployment_selector(namespace, deployment)}}})'


def cpu_request(namespace: str, deployment: str) -> str:
    sel = _pod_selector(namespace, deployment)
    return f'max(sum by (pod) (kube_pod_container_resource_requests{{{sel},resource="cpu"}})) * 1000'


def cpu_limit(namespace: str, deployment: str) -> str:
    sel = _pod_selector(namespace, deployment)
    return f'max(sum by (pod) (kube_pod_container_resource_limits{{{sel},resource="cpu"}})) * 1000'


def memory_request(namespace: str, deployment: str) -> str:
    sel = _pod_selector(namespace, deployment)
    return f'max(sum by (pod) (kube_pod_container_resource_requests{{{sel},resource="memory"}})) / ({MEBIBYTE})'


def memory_limit(namespace: str, deployment: str) -> str:
    sel = _pod_selector(namespace, deployment)
    return f'max(sum by (pod) (kube_pod_container_resource_limits{{{sel},resource="memory"}})) / ({MEBIBYTE})'


def hpa_min_replicas(namespace: str, deployment: str) -> str:
    return _hpa_for('kube_horizontalpodautoscaler_spec_min_replicas', namespace, deployment)


def hpa_max_replicas(namespace: str, deployment: str) -> str:
    return _hpa_for('kube_horizontalpodautoscaler_spec_max_replicas', namespace, deployment)


def hpa_target_cpu(namespace: str, deployment: str) -> str:
    return _hpa_for(
        'kube_horizontalpodautoscaler_spec_target_metric', namespace, deployment,
        extra='metric_name="cpu",metric_target_type="utilization"'
    )


def pod_count_history(namespace: str, deployment: str) -> str:
    """Replica count over time (for range queries)"""
    return f'sum(kube_deployment_status_replicas{{{_deployment_selector(namespace, deployment)}}})'
