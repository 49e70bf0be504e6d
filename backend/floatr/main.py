"""FastAPI application entrypoint."""

from __future__ import annotations

from contextlib import asynccontextmanager

import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from floatr.api import chat, discovery, ops, positions, swipes, zones
from floatr.api.errors import install_error_handlers
from floatr.api.middleware_request_id import RequestIdMiddleware
from floatr.domain.chat.gateway import RealtimeGateway
from floatr.domain.chat.service import get_chat_service
from floatr.domain.matching.service import get_engine
from floatr.infra import postgres
from floatr.infra.scheduler import JobScheduler
from floatr.obs import init as obs_init
from floatr.settings import settings


@asynccontextmanager
async def lifespan(app: FastAPI):
	await postgres.init_pool()
	scheduler: JobScheduler | None = None
	if settings.match_expiry_enabled:
		scheduler = JobScheduler()
		scheduler.start()
		scheduler.schedule_every(
			"match-expiry",
			get_engine().run_expiry_job,
			minutes=settings.match_expiry_interval_minutes,
		)
	app.state.scheduler = scheduler
	try:
		yield
	finally:
		if scheduler is not None:
			scheduler.shutdown()
		await postgres.close_pool()


app = FastAPI(title="Floatr Core", lifespan=lifespan)
install_error_handlers(app)

allow_origins = list(settings.cors_allow_origins)
if not allow_origins:
	allow_origins = ["http://localhost:3000"] if settings.is_dev() else ["https://app.floatr.example"]

# Starlette disallows wildcard '*' with allow_credentials=True.
if "*" in allow_origins:
	allow_origins = ["http://localhost:3000", "http://127.0.0.1:3000"] if settings.is_dev() else ["https://app.floatr.example"]

app.add_middleware(
	CORSMiddleware,
	allow_origins=allow_origins,
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)

chat_service = get_chat_service()
sio = socketio.AsyncServer(
	async_mode="asgi",
	cors_allowed_origins=allow_origins,
	ping_interval=settings.socket_ping_interval_seconds,
	ping_timeout=settings.socket_ping_timeout_seconds,
)
gateway = RealtimeGateway(chat_service)
sio.register_namespace(gateway)
chat_service.set_gateway(gateway)
app.state.gateway = gateway
app.state.chat_service = chat_service
socket_app = socketio.ASGIApp(sio, other_asgi_app=app)
obs_init(app)

# Ensure every request carries an X-Request-Id and make it available on request.state
app.add_middleware(RequestIdMiddleware)

app.include_router(discovery.router, tags=["discovery"])
app.include_router(positions.router, tags=["positions"])
app.include_router(zones.router, tags=["zones"])
app.include_router(swipes.router, tags=["matching"])
app.include_router(chat.router, tags=["chat"])
app.include_router(ops.router, tags=["ops"])
