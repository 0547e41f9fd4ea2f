import asyncio
import logging
from typing import Iterable, Optional, Protocol

from edudesign.config import FailurePolicy, PipelineConfig
from edudesign.decoders import get_decoder
from edudesign.errors import BatchError, GenerationError
from edudesign.models import Generation, ParseResult, Reply, Unit

logger = logging.getLogger("orchestrator")


class Generator(Protocol):
    async def generate(self, prompt: str) -> Generation:
        ...


class Orchestrator:
    """
    Runs one stage over a batch of units concurrently.

    Each unit goes through ``generator.generate(prompt)`` and the stage
    decoder. Results always come back ordered by unit ordinal, whatever
    order the units complete in.

    Args:
        generator: Text-generation collaborator, injected by the caller.
        stage: Stage name, e.g. ``"layout"``. Unknown names raise KeyError.
        policy: ``fail_fast`` aborts the batch on the first generation error,
            ``isolate`` replaces the failing unit by its stage fallback.
            Defaults to ``config.failure_policy``.
        config: Pipeline bounds and defaults.
    """

    def __init__(
        self,
        generator: Optional[Generator],
        stage: str,
        policy: Optional[FailurePolicy] = None,
        config: Optional[PipelineConfig] = None,
    ):
        self.generator = generator
        self.stage = stage
        self.config = config or PipelineConfig()
        self.policy = FailurePolicy(policy or self.config.failure_policy)
        self.decoder = get_decoder(stage, self.config)

    async def _run_unit(self, unit: Unit) -> ParseResult:
        func_name = "_run_unit"
        logger.debug(f"[{func_name}] {self.stage} unit {unit.ordinal}: prompt '{unit.prompt[:100]}...'")
        try:
            generation = await self.generator.generate(unit.prompt)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[{func_name}] {self.stage} unit {unit.ordinal}: generation failed: {e}", exc_info=True)
            raise GenerationError(self.stage, unit.ordinal, e) from e

        result = self.decoder.decode(generation.text, unit.context)
        result.ordinal = unit.ordinal
        return result

    async def _run_isolated(self, unit: Unit) -> ParseResult:
        func_name = "_run_isolated"
        try:
            return await self._run_unit(unit)
        except GenerationError as e:
            logger.warning(f"[{func_name}] {self.stage} unit {unit.ordinal}: degrading to fallback")
            result = self.decoder.fallback(unit.context, "generation failed")
            result.ordinal = unit.ordinal
            result.error = str(e.cause)
            return result

    async def _run_fail_fast(self, units: list[Unit]) -> list[ParseResult]:
        func_name = "_run_fail_fast"
        tasks = [asyncio.create_task(self._run_unit(unit)) for unit in units]
        try:
            done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
            failed = [task for task in done if task.exception() is not None]
            if failed:
                logger.error(f"[{func_name}] {self.stage}: {len(failed)} unit(s) failed, cancelling {len(pending)} in flight")
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)
                errors = sorted((task.exception() for task in failed), key=lambda error: getattr(error, "ordinal", 0))
                raise BatchError(self.stage, errors) from errors[0]
            return [task.result() for task in tasks]
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()

    async def run_batch(self, units: Iterable[Unit]) -> list[ParseResult]:
        """
        Generate and decode every unit concurrently.

        Raises:
            BatchError: Under ``fail_fast``, when any generation fails.
        """
        func_name = "run_batch"
        units = list(units)
        if not units:
            return []
        if self.generator is None:
            raise ValueError("run_batch needs a generator; use parse_batch for received replies")

        logger.info(f"[{func_name}] {self.stage}: {len(units)} unit(s), policy {self.policy.value}")
        if self.policy == FailurePolicy.ISOLATE:
            results = await asyncio.gather(*(self._run_isolated(unit) for unit in units))
        else:
            results = await self._run_fail_fast(units)

        results = sorted(results, key=lambda result: result.ordinal)
        logger.info(f"[{func_name}] {self.stage}: {sum(result.used_fallback for result in results)} of {len(results)} unit(s) used a fallback")
        return results

    def parse_batch(self, replies: Iterable[Reply]) -> list[ParseResult]:
        """Decode replies that were already received, ordered by ordinal."""
        results = []
        for reply in sorted(replies, key=lambda reply: reply.ordinal):
            result = self.decoder.decode(reply.text, reply.context)
            result.ordinal = reply.ordinal
            results.append(result)
        return results
