"""
Resilient generation orchestrator.

Every operation runs through the same loop, parameterized by a RetryPolicy:

- the selected tier is tried first, then each tier of ``fallback_tiers``;
  a failure on a non-final tier is logged and the next tier is tried
  (NoImageProduced excepted: it always ends the operation);
- on the final tier, failures in ``retryable_classes`` invoke the credential
  hook and retry the identical request until ``max_attempts`` is used up;
- anything else is surfaced as an OperationError with a user-facing message.
  Any exception raised by the backend call, the result parser or the
  credential hook is classified; nothing else escapes the loop.
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, Optional, Tuple, TypeVar

from . import compiler
from .assembler import assemble_request
from .credentials import CredentialProvider
from .errors import (
    BackendCallError,
    ErrorClass,
    OperationError,
    classify_failure,
)
from .extractor import extract_image, extract_json
from .gemini import GeminiClient
from .selector import BackendSelection, OperationKind, Tier, select_backend
from .settings import CustomImage, GenerationConfig, Resolution, SourceImage

logger = logging.getLogger(__name__)

T = TypeVar("T")

@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 1
    retryable_classes: FrozenSet[ErrorClass] = frozenset()
    fallback_tiers: Tuple[Tier, ...] = ()
    quota_message: str = "Generation failed."
    generic_message: str = "Generation failed."
    # Surface the failure's own text instead of generic_message.
    use_failure_message: bool = False

    def message_for(self, error_class: ErrorClass, error: BaseException) -> str:
        if self.use_failure_message:
            text = error.message if isinstance(error, BackendCallError) else str(error)
            return text[:300] if text else self.generic_message
        if error_class == ErrorClass.QUOTA:
            return self.quota_message
        return self.generic_message


POLICIES: Dict[str, RetryPolicy] = {
    "ad_copy": RetryPolicy(
        quota_message="Ad copy generation failed.",
        generic_message="Ad copy generation failed.",
    ),
    "generate_3d": RetryPolicy(
        max_attempts=2,
        retryable_classes=frozenset({ErrorClass.AUTH_CREDENTIAL}),
        quota_message="Daily Studio quota exceeded. Please try again later or check your plan.",
        generic_message="Generation failed. Please check your credentials and connection.",
    ),
    "upscale": RetryPolicy(
        max_attempts=2,
        retryable_classes=frozenset({ErrorClass.AUTH_CREDENTIAL}),
        fallback_tiers=(Tier.FAST_DRAFT,),
        quota_message="Quota exceeded. Upscaling skipped.",
        generic_message="Upscale failed. Please ensure you have a valid Studio Key.",
    ),
    "try_on": RetryPolicy(
        quota_message="Failed to generate try-on image.",
        generic_message="Failed to generate try-on image.",
        use_failure_message=True,
    ),
}


class _TierFailed(Exception):
    def __init__(self, error: BaseException, error_class: ErrorClass):
        super().__init__(str(error))
        self.error = error
        self.error_class = error_class


class Orchestrator:
    """
    Runs the four studio operations against the generation backend.

    ``credentials`` is the reacquisition hook. Without it there is no
    pre-call credential check and auth failures are never retried.
    """

    def __init__(
        self,
        client: Optional[GeminiClient] = None,
        credentials: Optional[CredentialProvider] = None,
        policies: Optional[Dict[str, RetryPolicy]] = None,
    ):
        self.credentials = credentials
        self.client = client or GeminiClient(credentials)
        self.policies = dict(POLICIES)
        if policies:
            self.policies.update(policies)

    async def generate_ad_copy(self, image: SourceImage) -> Dict[str, Any]:
        def build(selection: BackendSelection) -> Dict[str, Any]:
            return assemble_request(
                image,
                None,
                compiler.AD_COPY_PROMPT,
                selection.shape,
                system_instruction=compiler.AD_COPY_SYSTEM_INSTRUCTION,
                response_schema=compiler.ad_copy_schema(),
            )

        return await self._run("ad_copy", select_backend("ad_copy"), build, extract_json)

    async def generate_3d(self, image: SourceImage, config: GenerationConfig) -> SourceImage:
        mode = config.presentation.mode
        instructions = compiler.compile_instructions(config, mode).text
        background = config.background.resolve()
        secondary = background.image if isinstance(background, CustomImage) else None

        def build(selection: BackendSelection) -> Dict[str, Any]:
            return assemble_request(image, secondary, instructions, selection.shape)

        return await self._run("generate_3d", select_backend("generate_3d", mode), build, extract_image)

    async def upscale(self, image: SourceImage, resolution: Resolution) -> SourceImage:
        def build(selection: BackendSelection) -> Dict[str, Any]:
            if selection.tier == Tier.HIGH_FIDELITY:
                text = compiler.upscale_instructions(resolution)
            else:
                text = compiler.ENHANCEMENT_INSTRUCTIONS
            return assemble_request(image, None, text, selection.shape)

        first = select_backend("upscale", resolution=resolution)
        return await self._run("upscale", first, build, extract_image, resolution=resolution)

    async def try_on(self, garment: SourceImage, model: SourceImage) -> SourceImage:
        def build(selection: BackendSelection) -> Dict[str, Any]:
            return assemble_request(garment, model, compiler.TRY_ON_INSTRUCTIONS, selection.shape)

        return await self._run("try_on", select_backend("try_on"), build, extract_image)

    async def _run(
        self,
        kind: OperationKind,
        first: BackendSelection,
        build: Callable[[BackendSelection], Dict[str, Any]],
        parse: Callable[[Dict[str, Any]], T],
        resolution: Optional[Resolution] = None,
    ) -> T:
        policy = self.policies[kind]
        chain = [first] + [select_backend(kind, tier=tier, resolution=resolution) for tier in policy.fallback_tiers]

        for index, selection in enumerate(chain):
            is_final = index == len(chain) - 1
            try:
                return await self._attempt_tier(kind, policy, selection, build, parse, allow_retry=is_final)
            except _TierFailed as failure:
                if is_final or failure.error_class == ErrorClass.NO_IMAGE_PRODUCED:
                    message = policy.message_for(failure.error_class, failure.error)
                    logger.error(f"{kind} failed [{failure.error_class.value}]: {failure.error}")
                    raise OperationError(failure.error_class, message, failure.error) from failure.error
                logger.warning(
                    f"{kind} on {selection.model} failed [{failure.error_class.value}]: {failure.error}. "
                    f"Falling back to {chain[index + 1].model}."
                )
        raise RuntimeError("empty tier chain")

    async def _attempt_tier(
        self,
        kind: OperationKind,
        policy: RetryPolicy,
        selection: BackendSelection,
        build: Callable[[BackendSelection], Dict[str, Any]],
        parse: Callable[[Dict[str, Any]], T],
        *,
        allow_retry: bool,
    ) -> T:
        try:
            await self._ensure_credential()
        except Exception as e:
            # A declined or broken credential prompt counts as an auth failure.
            logger.warning(f"{kind}: credential check failed: {e!r}")
            raise _TierFailed(e, ErrorClass.AUTH_CREDENTIAL)

        payload = build(selection)
        attempt = 0
        while True:
            attempt += 1
            logger.info(f"{kind}: attempt {attempt}/{policy.max_attempts} on {selection.model} ({selection.tier.value})")
            try:
                response = await self.client.generate_content(selection.model, payload)
                return parse(response)
            except Exception as e:
                error_class = classify_failure(e)
                logger.warning(f"{kind}: attempt {attempt} on {selection.model} failed [{error_class.value}]: {e}")
                can_retry = (
                    allow_retry
                    and self.credentials is not None
                    and error_class in policy.retryable_classes
                    and attempt < policy.max_attempts
                )
                if not can_retry:
                    raise _TierFailed(e, error_class)
                try:
                    logger.info(f"{kind}: requesting a new credential before retrying")
                    await self.credentials.request_credential()
                except Exception as hook_error:
                    logger.error(f"{kind}: credential reacquisition failed: {hook_error}")
                    raise _TierFailed(e, error_class)

    async def _ensure_credential(self) -> None:
        if self.credentials is None:
            return
        if not await self.credentials.has_credential():
            await self.credentials.request_credential()
