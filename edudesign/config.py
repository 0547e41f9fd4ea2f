#######################
# IMPORTS
#######################
import os
from enum import Enum

from dotenv import load_dotenv
from pydantic import BaseModel, Field

#######################
# CONFIG
#######################

# Load .env without overriding variables already set
load_dotenv()

FAST_MODEL = os.getenv("FAST_MODEL", "gpt-4.1-mini")
FAILURE_POLICY = os.getenv("FAILURE_POLICY", "fail_fast")
IMAGE_LIMIT = int(os.getenv("IMAGE_LIMIT", "2"))
BRAND_COLOR = os.getenv("BRAND_COLOR", "#004D99")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


class FailurePolicy(str, Enum):
    FAIL_FAST = "fail_fast"
    ISOLATE = "isolate"


class PipelineConfig(BaseModel):
    """
    Tunables of the parsing pipeline and the batch orchestrator.

    Bounds live here instead of in the schemas because different deployments
    (and record kinds) need different caps.
    """
    model: str = Field(default=FAST_MODEL, description="Model used by the text-generation collaborator")
    failure_policy: FailurePolicy = Field(default=FailurePolicy.FAIL_FAST)
    brand_color: str = Field(default=BRAND_COLOR, description="Last-resort color for invalid color values")
    limits: dict[str, int] = Field(
        default_factory=lambda: {"IMG": IMAGE_LIMIT},
        description="Maximum number of entities kept per record kind; extra entities are truncated",
    )

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        return cls(
            model=FAST_MODEL,
            failure_policy=FailurePolicy(FAILURE_POLICY),
            brand_color=BRAND_COLOR,
            limits={"IMG": IMAGE_LIMIT},
        )
