#######################
# IMPORTS
#######################
import logging
from contextlib import asynccontextmanager

import httpx
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from edudesign.config import LOG_LEVEL, PipelineConfig
from edudesign.llm import TextGenerator

#######################
# CONFIG
#######################

load_dotenv()

logging.basicConfig(
    level=LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
)
logger = logging.getLogger("app")


#######################
# STARTUP
#######################
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    config = PipelineConfig.from_env()
    http_client = httpx.AsyncClient(limits=httpx.Limits(max_connections=100, max_keepalive_connections=20))
    app.state.config = config
    app.state.generator = TextGenerator(model=config.model, http_client=http_client)
    logger.info(f"Pipeline ready (model: {config.model}, policy: {config.failure_policy.value})")
    yield
    # Shutdown
    await app.state.generator.aclose()


app = FastAPI(lifespan=lifespan, root_path="/api")

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include endpoint routers
from edudesign.endpoints.parse import router as parse_router
from edudesign.endpoints.batch import router as batch_router

app.include_router(parse_router)
app.include_router(batch_router)
