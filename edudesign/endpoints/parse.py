#######################
# IMPORTS
#######################
import logging

from fastapi import Depends, HTTPException, APIRouter
from pydantic import BaseModel, Field

from edudesign.config import PipelineConfig
from edudesign.decoders import Decoder, get_decoder
from edudesign.describe import describe_layout
from edudesign.endpoints.deps import get_config
from edudesign.models import PageContext, ParseResult
from edudesign.stages import STAGES

logger = logging.getLogger("app")

router = APIRouter()

#######################
# MODELS
#######################


class ParseRequest(BaseModel):
    reply: str = Field(description="Raw reply text of the language model")
    context: PageContext = Field(default_factory=PageContext)


class StageInfo(BaseModel):
    name: str
    protocol: str
    blocks: list[str]


def decoder_for(stage: str, config: PipelineConfig) -> Decoder:
    try:
        return get_decoder(stage, config)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown stage '{stage}'")


#######################
# ENDPOINTS
#######################


@router.get("/stages", response_model=list[StageInfo], tags=["Parse"])
async def list_stages_endpoint():
    """List the stages replies can be parsed for"""
    return [
        StageInfo(name=stage.name, protocol=stage.protocol, blocks=[spec.tag for spec in stage.blocks])
        for stage in STAGES.values()
    ]


@router.post("/parse/{stage}", tags=["Parse"])
async def parse_reply_endpoint(stage: str, request: ParseRequest, config: PipelineConfig = Depends(get_config)):
    """Decode one raw reply into validated entities and diagnostics"""
    decoder = decoder_for(stage, config)
    result: ParseResult = decoder.decode(request.reply, request.context)
    logger.info(f"Parsed {stage} reply for page {request.context.page_number} (fallback: {result.used_fallback})")
    return result


@router.post("/parse/layout/description", tags=["Parse"])
async def describe_layout_endpoint(request: ParseRequest, config: PipelineConfig = Depends(get_config)):
    """Decode a layout reply and describe it in prose"""
    result = decoder_for("layout", config).decode(request.reply, request.context)
    description = describe_layout(result, topic=request.context.topic)
    return {"description": description, "used_fallback": result.used_fallback}
