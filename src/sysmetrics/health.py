"""Health evaluation of a single snapshot."""

from sysmetrics.models import HealthAssessment, HealthIssue, HealthStatus, Snapshot

# Weights in score points; they sum to 100.
CPU_WEIGHT = 30.0
MEMORY_WEIGHT = 35.0
TEMPERATURE_WEIGHT = 20.0
BATTERY_WEIGHT = 15.0
MAX_TEMPERATURE = 80.0

HIGH_CPU_THRESHOLD = 85.0
HIGH_MEMORY_THRESHOLD = 85.0
HIGH_CPU_TEMPERATURE = 70.0
HIGH_BATTERY_TEMPERATURE = 45.0
LOW_BATTERY_THRESHOLD = 15
LOW_STORAGE_THRESHOLD = 90.0
POOR_PERFORMANCE_THRESHOLD = 90.0

RECOMMENDATIONS: dict[HealthIssue, tuple[str, ...]] = {
    HealthIssue.HIGH_CPU: (
        "Close unused applications to reduce CPU load",
        "Check for background processes consuming CPU",
    ),
    HealthIssue.HIGH_MEMORY: (
        "Clear application caches to free up memory",
        "Close memory-intensive applications",
    ),
    HealthIssue.HIGH_TEMPERATURE: (
        "Allow the device to cool down before heavy usage",
        "Improve airflow around the device if overheating persists",
    ),
    HealthIssue.LOW_BATTERY: (
        "Connect the device to a charger",
        "Enable battery saver mode",
    ),
    HealthIssue.THERMAL_THROTTLING: (
        "Reduce workload to prevent thermal throttling",
        "Move the device to a cooler environment",
    ),
    HealthIssue.LOW_STORAGE: (
        "Delete unused files and applications",
        "Move large media to external or cloud storage",
    ),
    HealthIssue.POOR_PERFORMANCE: (
        "Restart the device to clear system resources",
        "Reduce the number of concurrently running applications",
    ),
}


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def health_score(snapshot: Snapshot) -> float:
    """
    Weighted score in [0, 100].

    CPU 30%, memory 35%, CPU temperature 20% (normalized to 80°C) and
    battery level 15%. Lower usage and temperature score higher. A missing
    CPU temperature reading costs nothing.
    """
    cpu = (1.0 - snapshot.cpu.usage_percent / 100.0) * CPU_WEIGHT
    memory = (1.0 - snapshot.memory.usage_percent / 100.0) * MEMORY_WEIGHT
    cpu_temperature = snapshot.thermal.cpu_temperature or 0.0
    temperature = _clamp(cpu_temperature, 0.0, MAX_TEMPERATURE) / MAX_TEMPERATURE
    thermal = (1.0 - temperature) * TEMPERATURE_WEIGHT
    battery = (snapshot.power.level / 100.0) * BATTERY_WEIGHT
    return _clamp(cpu + memory + thermal + battery, 0.0, 100.0)


def status_for_score(score: float) -> HealthStatus:
    if score >= 80.0:
        return HealthStatus.EXCELLENT
    if score >= 60.0:
        return HealthStatus.GOOD
    if score >= 40.0:
        return HealthStatus.WARNING
    return HealthStatus.CRITICAL


def _above(value: float | None, threshold: float) -> bool:
    return value is not None and value > threshold


def detect_issues(snapshot: Snapshot) -> list[HealthIssue]:
    """Run every threshold check; several issues may be reported at once."""
    cpu = snapshot.cpu.usage_percent
    memory = snapshot.memory.usage_percent
    thermal = snapshot.thermal
    issues: list[HealthIssue] = []

    if cpu > HIGH_CPU_THRESHOLD:
        issues.append(HealthIssue.HIGH_CPU)
    if memory > HIGH_MEMORY_THRESHOLD:
        issues.append(HealthIssue.HIGH_MEMORY)
    if _above(thermal.cpu_temperature, HIGH_CPU_TEMPERATURE) or _above(
        thermal.battery_temperature, HIGH_BATTERY_TEMPERATURE
    ):
        issues.append(HealthIssue.HIGH_TEMPERATURE)
    if snapshot.power.level < LOW_BATTERY_THRESHOLD:
        issues.append(HealthIssue.LOW_BATTERY)
    if thermal.thermal_throttling:
        issues.append(HealthIssue.THERMAL_THROTTLING)
    if snapshot.storage.usage_percent > LOW_STORAGE_THRESHOLD:
        issues.append(HealthIssue.LOW_STORAGE)
    if cpu > POOR_PERFORMANCE_THRESHOLD and memory > POOR_PERFORMANCE_THRESHOLD:
        issues.append(HealthIssue.POOR_PERFORMANCE)

    return issues


def recommendations_for(issues: list[HealthIssue]) -> list[str]:
    recommendations: list[str] = []
    for issue in issues:
        recommendations.extend(RECOMMENDATIONS[issue])
    return recommendations


def evaluate(snapshot: Snapshot) -> HealthAssessment:
    """Derive a HealthAssessment from one snapshot. Pure and deterministic."""
    score = health_score(snapshot)
    issues = detect_issues(snapshot)
    return HealthAssessment(
        score=score,
        status=status_for_score(score),
        issues=tuple(issues),
        recommendations=tuple(recommendations_for(issues)),
        timestamp=snapshot.timestamp,
    )
