from typing import List

from models import Alert, WorkloadSnapshot

SEVERITY_WARNING = 'warning'

DEFAULT_CPU_THRESHOLD = 80.0
DEFAULT_MEMORY_THRESHOLD = 80.0


def generate_alerts(snapshot: WorkloadSnapshot,
                    cpu_threshold: float = DEFAULT_CPU_THRESHOLD,
                    memory_threshold: float = DEFAULT_MEMORY_THRESHOLD) -> List[Alert]:
    """Threshold alerts for the current snapshot.

    high_cpu / high_memory fire strictly above the threshold; max_pods fires
    when an autoscaled workload runs at its configured maximum.
    """
    alerts: List[Alert] = []

    cpu_pct = snapshot.cpu.utilization_percent
    if cpu_pct > cpu_threshold:
        alerts.append(Alert(
            type='high_cpu',
            severity=SEVERITY_WARNING,
            message=f"CPU utilization at {cpu_pct:.1f}% of request (threshold {cpu_threshold:g}%)",
            resource='cpu',
            current_value=cpu_pct,
            threshold=cpu_threshold,
        ))

    mem_pct = snapshot.memory.utilization_percent
    if mem_pct > memory_threshold:
        alerts.append(Alert(
            type='high_memory',
            severity=SEVERITY_WARNING,
            message=f"Memory utilization at {mem_pct:.1f}% of request (threshold {memory_threshold:g}%)",
            resource='memory',
            current_value=mem_pct,
            threshold=memory_threshold,
        ))

    pods = snapshot.pods
    if pods.max_replicas > 0 and pods.running >= pods.max_replicas:
        alerts.append(Alert(
            type='max_pods',
            severity=SEVERITY_WARNING,
            message=f"Running {pods.running} pods, at the configured maximum of {pods.max_replicas}",
            resource='pods',
            current_value=float(pods.running),
            threshold=float(pods.max_replicas),
        ))

    return alerts
