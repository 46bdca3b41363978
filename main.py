from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.bootstrap import NotificationServices
from app.config import configure_logging, get_settings
from app.infrastructure import database
from app.interfaces.api.routes import register_routes


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Inicializa la base de datos y los servicios de notificación; los detiene al cerrar."""

    settings = get_settings()
    configure_logging(settings)
    database.initialize_database()
    services = NotificationServices.build(settings)
    services.start()
    app.state.notifications = services
    try:
        yield
    finally:
        await services.stop()
        app.state.notifications = None
        database.engine.dispose()


def create_app() -> FastAPI:
    """Crea y configura la aplicación principal de FastAPI."""

    app = FastAPI(title="Marketplace Notifications", lifespan=lifespan)

    # Autoriza peticiones desde el panel de administración en desarrollo.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_routes(app)
    return app


app = create_app()
