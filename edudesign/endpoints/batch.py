#######################
# IMPORTS
#######################
import logging
from typing import Optional

from fastapi import Depends, HTTPException, APIRouter
from pydantic import BaseModel, Field

from edudesign.config import FailurePolicy, PipelineConfig
from edudesign.endpoints.deps import get_config, get_generator
from edudesign.errors import BatchError
from edudesign.models import Reply, Unit
from edudesign.orchestrator import Generator, Orchestrator

logger = logging.getLogger("app")

router = APIRouter()

#######################
# MODELS
#######################


class BatchRequest(BaseModel):
    units: list[Unit]
    policy: Optional[FailurePolicy] = Field(default=None, description="Overrides the configured failure policy")


class RepliesRequest(BaseModel):
    replies: list[Reply]


def orchestrator_for(
    stage: str,
    generator: Optional[Generator],
    policy: Optional[FailurePolicy],
    config: PipelineConfig,
) -> Orchestrator:
    try:
        return Orchestrator(generator, stage, policy=policy, config=config)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown stage '{stage}'")


#######################
# ENDPOINTS
#######################


@router.post("/batch/{stage}", tags=["Batch"])
async def run_batch_endpoint(
    stage: str,
    request: BatchRequest,
    config: PipelineConfig = Depends(get_config),
    generator: Generator = Depends(get_generator),
):
    """Generate and decode every unit concurrently; results are ordered by ordinal"""
    orchestrator = orchestrator_for(stage, generator, request.policy, config)

    logger.info(f"Received batch of {len(request.units)} unit(s) for {stage} ({orchestrator.policy.value})")
    try:
        return await orchestrator.run_batch(request.units)
    except BatchError as e:
        logger.error(f"Batch for {stage} aborted at ordinal {e.ordinal}: {e}")
        raise HTTPException(
            status_code=502,
            detail={"message": str(e), "ordinal": e.ordinal, "errors": [str(error) for error in e.errors]},
        )


@router.post("/batch/{stage}/replies", tags=["Batch"])
async def parse_replies_endpoint(stage: str, request: RepliesRequest, config: PipelineConfig = Depends(get_config)):
    """Decode replies that were generated elsewhere; results are ordered by ordinal"""
    orchestrator = orchestrator_for(stage, None, None, config)
    return orchestrator.parse_batch(request.replies)
