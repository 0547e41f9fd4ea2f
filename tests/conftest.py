import asyncio
from typing import Optional

import pytest

from edudesign.models import Generation

LAYOUT_REPLY = """Here is the wireframe for the page.
```text
BEGIN_S3_LAYOUT
VERSION=wire.v1
VIEWPORT_MODE=scrollable
FLOW=A:intro
PAGE_STYLE=pattern=zigzag,motif=dots,rhythm=tight,asymmetry=strong
IMG_BUDGET=2
SECTION, id=secA, role=intro, grid=1-12, height=auto, gapBelow=64, hint="Title, subtitle"
SECTION, id=secB, role=content, grid=8+4, height=auto, gapBelow=80, hint="Explanation with diagram"
END_S3_LAYOUT
BEGIN_S3_SLOTS
SLOT, id=secA-h1, section=secA, type=heading, variant=H1
SLOT, id=secB-left, section=secB, type=paragraph, variant=Body, gridSpan=left
SLOT, id=secB-right, section=secB, type=image, variant=diagram, gridSpan=right, slotRef=IMG1, width=520, height=320
SUMMARY, sections=2, slots=3, imageSlots=1
END_S3_SLOTS
```
"""


class FakeGenerator:
    """
    Stands in for the language model.

    Replies, delays and failures are looked up by prompt. ``completed`` lists
    the prompts whose call returned, in completion order.
    """

    def __init__(
        self,
        replies: dict[str, str],
        delays: Optional[dict[str, float]] = None,
        failures: Optional[dict[str, Exception]] = None,
    ):
        self.replies = replies
        self.delays = delays or {}
        self.failures = failures or {}
        self.completed: list[str] = []

    async def generate(self, prompt: str) -> Generation:
        await asyncio.sleep(self.delays.get(prompt, 0))
        if prompt in self.failures:
            raise self.failures[prompt]
        self.completed.append(prompt)
        return Generation(text=self.replies.get(prompt, ""))


def motion_reply(number: int) -> str:
    return f'{{"animationDescription": "anim {number}", "interactionDescription": "hover {number}"}}'


@pytest.fixture
def layout_reply() -> str:
    return LAYOUT_REPLY
