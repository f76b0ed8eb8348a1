"""
Execution metrics in Prometheus exposition format.

Counts executions by outcome and accumulates their durations. Serving the
text over HTTP is left to the embedding application.
"""

import time
from dataclasses import dataclass, field

from cmd_sandbox import __version__

RESULT_SUCCESS = "success"
RESULT_RUNTIME_ERROR = "runtime_error"
RESULT_TIMEOUT = "timeout"
RESULT_VALIDATION_ERROR = "validation_error"
RESULT_INFRASTRUCTURE_ERROR = "infrastructure_error"

RESULTS = (
    RESULT_SUCCESS,
    RESULT_RUNTIME_ERROR,
    RESULT_TIMEOUT,
    RESULT_VALIDATION_ERROR,
    RESULT_INFRASTRUCTURE_ERROR,
)


@dataclass
class MetricsCollector:
    """Simple in-process metrics collector."""

    # Counters by result
    executions: dict[str, int] = field(default_factory=lambda: {r: 0 for r in RESULTS})
    validations_total: int = 0
    validations_rejected: int = 0

    # Duration of completed executions
    duration_ms_total: int = 0
    duration_count: int = 0

    # Per-backend counter
    backend_counts: dict[str, int] = field(default_factory=dict)

    start_time: float = field(default_factory=time.time)

    def inc_validation(self, valid: bool) -> None:
        """Increment validation counters."""
        self.validations_total += 1
        if not valid:
            self.validations_rejected += 1

    def inc_execution(self, result: str) -> None:
        """Increment execution counter for one of RESULTS."""
        if result not in self.executions:
            raise ValueError(f"Unknown execution result: {result}")
        self.executions[result] += 1

    def observe_duration(self, backend: str, duration_ms: int) -> None:
        self.duration_ms_total += duration_ms
        self.duration_count += 1
        self.backend_counts[backend] = self.backend_counts.get(backend, 0) + 1

    def format_prometheus(self) -> str:
        """
        Format metrics in Prometheus exposition format.

        Returns:
            Metrics as text in Prometheus format
        """
        uptime = time.time() - self.start_time

        lines = [
            "# HELP cmd_sandbox_info Build information",
            "# TYPE cmd_sandbox_info gauge",
            f'cmd_sandbox_info{{version="{__version__}"}} 1',
            "",
            "# HELP cmd_sandbox_uptime_seconds Uptime in seconds",
            "# TYPE cmd_sandbox_uptime_seconds gauge",
            f"cmd_sandbox_uptime_seconds {uptime:.2f}",
            "",
            "# HELP cmd_sandbox_validations_total Validation calls",
            "# TYPE cmd_sandbox_validations_total counter",
            f"cmd_sandbox_validations_total {self.validations_total}",
            "",
            "# HELP cmd_sandbox_validations_rejected_total Validation calls with violations",
            "# TYPE cmd_sandbox_validations_rejected_total counter",
            f"cmd_sandbox_validations_rejected_total {self.validations_rejected}",
            "",
            "# HELP cmd_sandbox_executions_total Executions by result",
            "# TYPE cmd_sandbox_executions_total counter",
        ]
        for result in RESULTS:
            lines.append(f'cmd_sandbox_executions_total{{result="{result}"}} {self.executions[result]}')

        lines.extend([
            "",
            "# HELP cmd_sandbox_execution_duration_seconds Execution wall-clock duration",
            "# TYPE cmd_sandbox_execution_duration_seconds summary",
            f"cmd_sandbox_execution_duration_seconds_sum {self.duration_ms_total / 1000:.3f}",
            f"cmd_sandbox_execution_duration_seconds_count {self.duration_count}",
        ])

        if self.backend_counts:
            lines.extend([
                "",
                "# HELP cmd_sandbox_executions_by_backend Completed executions by backend",
                "# TYPE cmd_sandbox_executions_by_backend counter",
            ])
            for backend, count in sorted(self.backend_counts.items()):
                lines.append(f'cmd_sandbox_executions_by_backend{{backend="{backend}"}} {count}')

        return "\n".join(lines) + "\n"
