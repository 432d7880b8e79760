from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from .config import Settings, get_settings
from .routers import chat, conversation
from .services.completion import CompletionClient
from .services.conversation import ConversationController
from .services.speech import Available, Capability, build_speech_capabilities
import logging
import sys

# Configure root logging if not already configured by Uvicorn
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
if not logging.getLogger().handlers:
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT, stream=sys.stdout)

logger = logging.getLogger(__name__)

FRONTEND_ORIGINS = [
    "http://localhost:5173",  # vite dev server
    "http://127.0.0.1:5173",
    "http://localhost:4173",  # vite preview
    "http://127.0.0.1:4173",
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        yield
    finally:
        # Close SDK clients; shutdown errors must not mask anything more important
        closers = [app.state.completion_client]
        for cap in (app.state.conversation.recognizer, app.state.conversation.synthesizer):
            if isinstance(cap, Available) and cap.handle not in closers:
                closers.append(cap.handle)
        for obj in closers:
            aclose = getattr(obj, "aclose", None)
            if aclose is None:
                continue
            try:
                await aclose()
            except Exception:
                logger.exception("Error closing %s", type(obj).__name__)


def create_app(
    settings: Optional[Settings] = None,
    completion_client=None,
    recognizer: Optional[Capability] = None,
    synthesizer: Optional[Capability] = None,
) -> FastAPI:
    """
    Build the application. The settings object is resolved once here and passed
    by reference to the completion client and speech backends; collaborators
    can be injected (tests do).
    """
    settings = settings or get_settings()
    logging.getLogger("chat_ai").setLevel(settings.backend_log_level.upper())

    app = FastAPI(title="Simple Chat AI Backend", version="0.1.0", lifespan=lifespan)

    if settings.backend_allow_all_origins:
        logger.warning("CORS: Allowing ALL origins (BACKEND_ALLOW_ALL_ORIGINS=1) - dev only!")
        origins = ["*"]
    else:
        origins = FRONTEND_ORIGINS

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if completion_client is None:
        completion_client = CompletionClient(settings)
    default_recognizer, default_synthesizer = build_speech_capabilities(settings)

    app.state.settings = settings
    app.state.completion_client = completion_client
    # A fresh controller per process: the session starts empty
    app.state.conversation = ConversationController(
        completion_client,
        recognizer=recognizer if recognizer is not None else default_recognizer,
        synthesizer=synthesizer if synthesizer is not None else default_synthesizer,
        default_image_prompt=settings.default_image_prompt,
    )
    if not settings.has_api_key:
        logger.warning("OPENAI_API_KEY is not set; completion requests will fail until it is configured")

    app.include_router(chat.router, prefix="/api")
    app.include_router(conversation.router, prefix="/api")

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


app = create_app()
