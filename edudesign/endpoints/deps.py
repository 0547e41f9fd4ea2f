from fastapi import HTTPException, Request

from edudesign.config import PipelineConfig
from edudesign.orchestrator import Generator


def get_config(request: Request) -> PipelineConfig:
    return getattr(request.app.state, "config", None) or PipelineConfig.from_env()


def get_generator(request: Request) -> Generator:
    generator = getattr(request.app.state, "generator", None)
    if generator is None:
        raise HTTPException(status_code=503, detail="Text generator not configured")
    return generator
