"""
Purpose: The single orchestration point for one model request.
validating -> building -> invoking -> parsing -> done, with `failed`
reachable from every state before done.

Key responsibilities:
- Validate task, payload, model id and credentials (ClientError).
- Build the prompt through the PromptFactory.
- Invoke the model with retry (UpstreamError when it gives up).
- Parse and sanitize the response; parse degradation is not an error.

The orchestrator never touches the session store: the caller appends the
returned result to the session.

Testing: Pure unit tests with fakes: a fake LLMClient behind the invoker,
a recording sleep. Verify validation, template selection and error mapping.
"""

from __future__ import annotations
from typing import Any, Callable, Mapping, Optional, Union

from .errors import ClientError, GenerationError, UpstreamError, remediation_message
from .interfaces import LLMClient, PromptFactory, SecurityGuard
from .logger import get_logger
from .model_config import estimate_tokens, get_model_by_id, is_supported
from .models import (
    MAX_QUESTIONS,
    BuiltPrompt,
    ClarifyContext,
    ClarifyResult,
    Credentials,
    GenerationRequest,
    LLMSettings,
    OptimizationResult,
    OptimizeContext,
    RefineContext,
    RequestState,
    TaskPhase,
)
from .prompts import DefaultPromptFactory
from .services.retry import DEFAULT_BASE_DELAY, DEFAULT_MAX_ATTEMPTS, RetryingInvoker
from .services.sanitizer import sanitize_suggestions
from .services.security import DefaultSecurity
from .utils.llm_json import ParsedFallback, ParsedOk, parse_response, to_str_list

logger = get_logger(__name__)

TaskResult = Union[OptimizationResult, ClarifyResult]
ClientFactory = Callable[[Credentials], LLMClient]

MISSING_PROMPT_NOTE = "Response did not include an optimized prompt."
TaskContext = Union[OptimizeContext, ClarifyContext, RefineContext]


class Orchestrator:
    def __init__(
        self,
        client_factory: ClientFactory,
        *,
        settings: Optional[LLMSettings] = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay: float = DEFAULT_BASE_DELAY,
        sleep: Optional[Callable[[float], None]] = None,
        prompts: Optional[PromptFactory] = None,
        security: Optional[SecurityGuard] = None,
    ):
        self.client_factory = client_factory
        self.settings = settings or LLMSettings()
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self._sleep = sleep
        self.prompts: PromptFactory = prompts or DefaultPromptFactory()
        self.security: SecurityGuard = security or DefaultSecurity()

    # ------------------------------------------------------------------
    # public entry point
    # ------------------------------------------------------------------
    def run_task(
        self,
        task: Union[TaskPhase, str],
        model_id: str,
        credentials: Union[Credentials, str, None],
        payload: Mapping[str, Any],
    ) -> TaskResult:
        """Run one task end to end. Raises ClientError or UpstreamError."""
        state = RequestState.VALIDATING
        self._trace(task, state)
        try:
            phase, model, creds, ctx = self._validate(task, model_id, credentials, payload)

            state = self._trace(phase, RequestState.BUILDING)
            built = self.prompts.build(phase, ctx)
            self._check_size(model, built)

            state = self._trace(phase, RequestState.INVOKING)
            raw = self._invoke(model, creds, built)

            state = self._trace(phase, RequestState.PARSING)
            result = self._parse(phase, raw)
        except (ClientError, UpstreamError) as e:
            self._trace(task, RequestState.FAILED, failed_in=state)
            e.failed_state = state
            raise

        self._trace(phase, RequestState.DONE)
        return result

    def optimize(self, model_id: str, credentials, **payload) -> OptimizationResult:
        return self.run_task(TaskPhase.OPTIMIZE, model_id, credentials, payload)

    def clarify(self, model_id: str, credentials, **payload) -> ClarifyResult:
        return self.run_task(TaskPhase.CLARIFY, model_id, credentials, payload)

    def refine(self, model_id: str, credentials, **payload) -> OptimizationResult:
        return self.run_task(TaskPhase.REFINE, model_id, credentials, payload)

    # ------------------------------------------------------------------
    # validating
    # ------------------------------------------------------------------
    def _validate(self, task, model_id, credentials, payload):
        try:
            phase = TaskPhase(task)
        except ValueError:
            raise ClientError(
                f"Unsupported task: {task!r}. Expected optimize, clarify or refine."
            ) from None

        model = (model_id or "").strip() if isinstance(model_id, str) else ""
        if not model:
            raise ClientError("Missing required field: model")
        if not is_supported(model):
            raise ClientError(f"Unsupported model: {model}")

        if isinstance(credentials, str):
            credentials = Credentials(api_key=credentials)
        if credentials is None or not (credentials.api_key or "").strip():
            raise ClientError("Missing required field: apiKey")

        if not isinstance(payload, Mapping):
            raise ClientError("Task payload must be an object")

        if phase == TaskPhase.OPTIMIZE:
            ctx = self._optimize_context(payload)
        elif phase == TaskPhase.CLARIFY:
            ctx = self._clarify_context(payload)
        else:
            ctx = self._refine_context(payload)
        return phase, model, credentials, ctx

    def _text(self, payload: Mapping[str, Any], key: str, *, required: bool) -> str:
        value = payload.get(key)
        if value is None or (isinstance(value, str) and not value.strip()):
            if required:
                raise ClientError(f"Missing required field: {key}")
            return ""
        if not isinstance(value, str):
            raise ClientError(f"Field {key} must be a string")
        self.security.validate_user_input(value, field=key)
        return self.security.sanitize_for_prompt(value)

    def _optimize_context(self, payload) -> OptimizeContext:
        prompt = self._text(payload, "prompt", required=False)
        previous = self._text(payload, "previous_prompt", required=False)
        instruction = self._text(payload, "refinement_instruction", required=False)
        if not prompt and not (previous and instruction):
            raise ClientError(
                "Missing required fields: prompt, or previous_prompt with refinement_instruction"
            )
        return OptimizeContext(
            prompt=prompt,
            previous_prompt=previous or None,
            refinement_instruction=instruction or None,
        )

    def _clarify_context(self, payload) -> ClarifyContext:
        return ClarifyContext(
            original_prompt=self._text(payload, "original_prompt", required=True),
            suggestion=self._text(payload, "suggestion", required=True),
            current_prompt=self._text(payload, "current_prompt", required=False) or None,
        )

    def _refine_context(self, payload) -> RefineContext:
        current = self._text(payload, "current_prompt", required=True)
        raw = payload.get("answers")
        if not isinstance(raw, (list, tuple)) or not raw:
            raise ClientError("Missing required field: answers")

        pairs: list[tuple[str, str]] = []
        for item in raw:
            if isinstance(item, Mapping):
                q, a = item.get("question"), item.get("answer")
            elif isinstance(item, (list, tuple)) and len(item) == 2:
                q, a = item
            else:
                raise ClientError("Each answer must be a (question, answer) pair")
            if not isinstance(q, str) or not q.strip():
                raise ClientError("Each answer needs a non-empty question")
            if a is not None and not isinstance(a, str):
                raise ClientError("Answers must be strings")
            pairs.append(
                (
                    self.security.sanitize_for_prompt(q),
                    self.security.sanitize_for_prompt(a or ""),
                )
            )
        if not any(a for _, a in pairs):
            raise ClientError("Please answer at least one question.")
        return RefineContext(current_prompt=current, answers=tuple(pairs))

    def _check_size(self, model: str, built: BuiltPrompt) -> None:
        info = get_model_by_id(model)
        if estimate_tokens(built.content) > info.max_tokens:
            raise ClientError(
                "The conversation is too long for this model. "
                "Shorten it or start a new session."
            )

    # ------------------------------------------------------------------
    # invoking
    # ------------------------------------------------------------------
    def _invoke(self, model: str, creds: Credentials, built: BuiltPrompt) -> str:
        request = GenerationRequest(
            model_id=model,
            content=built.content,
            output_constraint=built.output_schema,
            temperature=self.settings.temperature,
            top_p=self.settings.top_p,
            top_k=self.settings.top_k,
            max_output_tokens=min(
                self.settings.max_output_tokens, get_model_by_id(model).output_tokens
            ),
        )
        try:
            llm = self.client_factory(creds)
        except RuntimeError as e:
            raise ClientError(str(e)) from e

        kwargs = {"max_attempts": self.max_attempts, "base_delay": self.base_delay}
        if self._sleep is not None:
            kwargs["sleep"] = self._sleep
        invoker = RetryingInvoker(llm, **kwargs)
        try:
            return invoker.invoke(request)
        except GenerationError as e:
            raise UpstreamError(
                e.status,
                e.message,
                user_message=remediation_message(e.status, e.message),
                attempts=invoker.last_attempts,
            ) from e

    # ------------------------------------------------------------------
    # parsing
    # ------------------------------------------------------------------
    def _parse(self, phase: TaskPhase, raw: str) -> TaskResult:
        parsed = parse_response(raw)
        if isinstance(parsed, ParsedFallback):
            logger.warning("Structured parse failed for %s; using raw output", phase.value)

        if phase == TaskPhase.CLARIFY:
            return _clarify_result(parsed)
        return _optimization_result(parsed)

    def _trace(self, task, state: RequestState, *, failed_in: Optional[RequestState] = None):
        name = getattr(task, "value", task)
        if failed_in is not None:
            logger.debug("task=%s state=%s (from %s)", name, state.value, failed_in.value)
        else:
            logger.debug("task=%s state=%s", name, state.value)
        return state


def _optimization_result(parsed) -> OptimizationResult:
    if isinstance(parsed, ParsedOk):
        prompt = parsed.get("optimizedPrompt")
        explanations = to_str_list(parsed.get("explanations"))
        degraded = not isinstance(prompt, str) or not prompt.strip()
        if degraded:
            explanations.append(MISSING_PROMPT_NOTE)
        return OptimizationResult(
            optimized_prompt=prompt.strip() if isinstance(prompt, str) else "",
            explanations=explanations,
            suggestions=sanitize_suggestions(parsed.get("suggestions")),
            degraded=degraded,
        )
    return OptimizationResult(
        optimized_prompt=parsed.raw_text,
        explanations=[parsed.note],
        suggestions=[],
        degraded=True,
    )


def _clarify_result(parsed) -> ClarifyResult:
    if isinstance(parsed, ParsedOk):
        return ClarifyResult(questions=to_str_list(parsed.get("questions"))[:MAX_QUESTIONS])
    questions = [
        line.strip().lstrip("-*•0123456789.) ").strip()
        for line in parsed.raw_text.splitlines()
        if line.strip().endswith("?")
    ]
    return ClarifyResult(questions=[q for q in questions if q][:MAX_QUESTIONS], degraded=True)
