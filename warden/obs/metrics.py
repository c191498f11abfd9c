"""Central registry for Prometheus metrics used across the service."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

REQUEST_COUNTER = Counter(
	"warden_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"warden_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

OTP_REQUESTS = Counter(
	"warden_otp_requests_total",
	"Phone OTP issuance attempts by outcome",
	["result"],
)

OTP_VERIFICATIONS = Counter(
	"warden_otp_verifications_total",
	"Phone OTP verification attempts by outcome",
	["result"],
)

IP_SYNC_PAIRS = Counter(
	"warden_ip_sync_pairs_total",
	"(user, ip) pairs merged into the durable store",
)

IP_SYNC_USER_FAILURES = Counter(
	"warden_ip_sync_user_failures_total",
	"Per-user reconciliation failures",
	["stage"],
)

IP_GUARD_DECISIONS = Counter(
	"warden_ip_guard_decisions_total",
	"Blocked-IP checks by result and scope",
	["result", "scope"],
)

BACKGROUND_RUNS = Counter(
	"warden_jobs_runs_total",
	"Background job executions",
	["name", "result"],
)

BACKGROUND_DURATION = Histogram(
	"warden_jobs_duration_seconds",
	"Background job duration",
	["name"],
	buckets=(0.1, 0.5, 1.0, 2.0, 5.0, 15.0, 30.0, 60.0),
)

REDIS_UP = Gauge("warden_redis_up", "Redis readiness (1 up, 0 down)")
REDIS_LATENCY = Histogram("warden_redis_ping_seconds", "Redis ping latency")
POSTGRES_UP = Gauge("warden_postgres_up", "Postgres readiness (1 up, 0 down)")
POSTGRES_LATENCY = Histogram("warden_postgres_ping_seconds", "Postgres readiness query latency")


def observe_request(route: str, method: str, status: int, duration_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(duration_seconds)


def inc_otp_request(result: str) -> None:
	OTP_REQUESTS.labels(result=result).inc()


def inc_otp_verify(result: str) -> None:
	OTP_VERIFICATIONS.labels(result=result).inc()


def inc_ip_sync_pairs(count: int) -> None:
	if count > 0:
		IP_SYNC_PAIRS.inc(count)


def inc_ip_sync_user_failure(stage: str) -> None:
	IP_SYNC_USER_FAILURES.labels(stage=stage).inc()


def inc_ip_guard(result: str, scope: str) -> None:
	IP_GUARD_DECISIONS.labels(result=result, scope=scope).inc()


def mark_redis(ok: bool, *, latency_seconds: float | None = None) -> None:
	REDIS_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		REDIS_LATENCY.observe(latency_seconds)


def mark_postgres(ok: bool, *, latency_seconds: float | None = None) -> None:
	POSTGRES_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		POSTGRES_LATENCY.observe(latency_seconds)


def record_job_run(name: str, *, result: str, duration_seconds: float | None = None) -> None:
	BACKGROUND_RUNS.labels(name=name, result=result).inc()
	if duration_seconds is not None:
		BACKGROUND_DURATION.labels(name=name).observe(duration_seconds)
