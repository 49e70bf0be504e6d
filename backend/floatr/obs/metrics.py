"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram, Summary


REQUEST_COUNTER = Counter(
	"floatr_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"floatr_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

SOCKET_CLIENTS = Gauge(
	"floatr_socketio_clients",
	"Active Socket.IO clients per namespace",
	["namespace"],
)

SOCKET_EVENTS = Counter(
	"floatr_socketio_events_total",
	"Socket.IO events handled or emitted per namespace",
	["namespace", "event"],
)

SOCKET_GROUPS = Gauge(
	"floatr_socketio_match_groups",
	"Match groups with at least one live member",
)

DISCOVERY_QUERIES = Counter(
	"floatr_discovery_queries_total",
	"Nearby discovery queries served",
	["filtered"],
)

DISCOVERY_RESULTS = Summary(
	"floatr_discovery_results",
	"Candidates returned per discovery query",
)

POSITIONS_RECORDED = Counter(
	"floatr_positions_recorded_total",
	"Vessel positions appended",
)

POSITIONS_PRUNED = Counter(
	"floatr_positions_pruned_total",
	"Vessel positions removed by retention pruning",
)

ZONE_CHECKS = Counter(
	"floatr_zone_checks_total",
	"Zone lookups by kind and outcome",
	["kind", "hit"],
)

SWIPES = Counter(
	"floatr_swipes_total",
	"Swipe actions recorded",
	["action"],
)

SWIPE_REJECTS = Counter(
	"floatr_swipe_rejects_total",
	"Swipe attempts rejected",
	["reason"],
)

MATCHES_CREATED = Counter(
	"floatr_matches_created_total",
	"Mutual matches created",
)

MATCHES_EXPIRED = Counter(
	"floatr_matches_expired_total",
	"Pending matches expired by the maintenance job",
)

CHAT_ROOMS_CREATED = Counter(
	"floatr_chat_rooms_created_total",
	"Chat rooms lazily provisioned",
)

CHAT_SEND = Counter(
	"floatr_chat_messages_sent_total",
	"Chat messages persisted",
	["channel"],
)

CHAT_READ_UPDATES = Counter(
	"floatr_chat_read_updates_total",
	"Read receipts that changed a message's read set",
)

AUDIT_EMIT_FAILURES = Counter(
	"floatr_audit_emit_failures_total",
	"Audit or outbound events that could not be published",
	["stream"],
)

REDIS_UP = Gauge("floatr_redis_up", "Redis availability (1=up,0=down)")
REDIS_LATENCY = Summary("floatr_redis_latency_seconds", "Redis ping latency (seconds)")

POSTGRES_UP = Gauge("floatr_postgres_up", "Postgres availability (1=up,0=down)")
POSTGRES_LATENCY = Summary("floatr_postgres_latency_seconds", "Postgres ping latency (seconds)")

BACKGROUND_RUNS = Counter(
	"floatr_background_job_runs_total",
	"Background job executions",
	["name", "result"],
)

BACKGROUND_DURATION = Histogram(
	"floatr_background_job_duration_seconds",
	"Background job duration in seconds",
	["name"],
	buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0),
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def socket_connected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).inc()


def socket_disconnected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).dec()


def socket_event(namespace: str, event: str) -> None:
	SOCKET_EVENTS.labels(namespace=namespace, event=event).inc()


def set_socket_groups(count: int) -> None:
	SOCKET_GROUPS.set(count)


def inc_discovery_query(*, filtered: bool, results: int) -> None:
	DISCOVERY_QUERIES.labels(filtered="yes" if filtered else "no").inc()
	DISCOVERY_RESULTS.observe(results)


def inc_position_recorded() -> None:
	POSITIONS_RECORDED.inc()


def inc_positions_pruned(count: int) -> None:
	if count > 0:
		POSITIONS_PRUNED.inc(count)


def inc_zone_check(kind: str, hit: bool) -> None:
	ZONE_CHECKS.labels(kind=kind, hit="yes" if hit else "no").inc()


def inc_swipe(action: str) -> None:
	SWIPES.labels(action=action).inc()


def inc_swipe_reject(reason: str) -> None:
	SWIPE_REJECTS.labels(reason=reason).inc()


def inc_match_created() -> None:
	MATCHES_CREATED.inc()


def inc_matches_expired(count: int) -> None:
	if count > 0:
		MATCHES_EXPIRED.inc(count)


def inc_room_created() -> None:
	CHAT_ROOMS_CREATED.inc()


def inc_chat_send(channel: str = "rest") -> None:
	CHAT_SEND.labels(channel=channel).inc()


def inc_chat_read() -> None:
	CHAT_READ_UPDATES.inc()


def inc_audit_failure(stream: str) -> None:
	AUDIT_EMIT_FAILURES.labels(stream=stream).inc()


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
