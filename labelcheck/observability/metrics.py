from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest

registry = CollectorRegistry(auto_describe=True)

# counters
stage_runs_total = Counter(
    "labelcheck_stage_runs_total",
    "total number of stage executions",
    ["stage", "outcome"],
    registry=registry,
)

provider_attempts_total = Counter(
    "labelcheck_ai_provider_attempts_total",
    "total number of language model provider attempts",
    ["provider", "outcome"],
    registry=registry,
)

tool_calls_total = Counter(
    "labelcheck_regulatory_tool_calls_total",
    "total number of regulatory tool calls",
    ["tool", "outcome"],
    registry=registry,
)

verdicts_total = Counter(
    "labelcheck_verdicts_total",
    "total number of compliance verdicts",
    ["status"],
    registry=registry,
)

# histograms
tool_call_duration_seconds = Histogram(
    "labelcheck_regulatory_tool_duration_seconds",
    "regulatory tool call duration in seconds",
    ["tool"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
    registry=registry,
)

pipeline_duration_seconds = Histogram(
    "labelcheck_pipeline_duration_seconds",
    "end to end pipeline duration in seconds",
    buckets=[1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0],
    registry=registry,
)

# gauges
active_runs = Gauge(
    "labelcheck_active_runs", "number of pipeline runs in progress", registry=registry
)


def export_metrics() -> bytes:
    """prometheus text exposition of all label-check metrics"""
    return generate_latest(registry)


def record_stage(stage: str, outcome: str) -> None:
    """record a stage execution"""
    stage_runs_total.labels(stage=stage, outcome=outcome).inc()


def record_provider_attempt(provider: str, outcome: str) -> None:
    """record a language model provider attempt"""
    provider_attempts_total.labels(provider=provider, outcome=outcome).inc()


def record_tool_call(tool: str, outcome: str, duration: float) -> None:
    """record a regulatory tool call"""
    tool_calls_total.labels(tool=tool, outcome=outcome).inc()
    tool_call_duration_seconds.labels(tool=tool).observe(duration)


def record_verdict(status: str, duration: float) -> None:
    """record a finished pipeline run"""
    verdicts_total.labels(status=status).inc()
    pipeline_duration_seconds.observe(duration)
