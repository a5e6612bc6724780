"""
Derivation engine for the AI System Finder.

Turns a natural language query into a validated ToolInvocation by asking the
completion backend for a tool call, in one pass (tool and parameters
together) or two passes (tool first, then its parameters). Each pass is an
explicit state machine:

    Attempting(n) -> Succeeded | Attempting(n + 1) | Exhausted

Attempts run strictly one after another, so at most one completion request
is outstanding. A failed attempt (unparseable text, unknown tool, missing or
ill-typed parameter, backend error) moves to the next attempt until
``num_derive_tries`` is reached.
"""

import json
import logging
import re
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from ..errors import (
    CompletionBackendError,
    DerivationCancelled,
    DerivationExhausted,
    InvocationError,
    MalformedCompletionResponse,
)
from ..llm.client import CompletionClient
from ..models.config import ResolvedConfig
from ..models.tools import DerivationAttempt, ToolInvocation
from .catalog import DEFAULT_CATALOG, ToolCatalog
from .context import QueryContextBuilder, render_prompt
from .validation import validate_call


logger = logging.getLogger(__name__)

TOOL_PASS = 1
PARAMETERS_PASS = 2

_FENCE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)


@dataclass(frozen=True)
class Attempting:
    """The pass is about to make attempt number ``attempt``."""
    attempt: int
    feedback: Optional[str] = None


@dataclass(frozen=True)
class Succeeded:
    """An attempt produced a valid result; terminal."""
    attempt: int
    result: Any


@dataclass(frozen=True)
class Exhausted:
    """The last allowed attempt failed; terminal."""
    attempt: int
    reason: str


PassState = Union[Attempting, Succeeded, Exhausted]


def parse_completion(text: str) -> Dict[str, Any]:
    """
    Extract the JSON object from completion text.

    Accepts bare JSON, JSON inside a Markdown code fence and JSON preceded
    or followed by prose; the first decodable object wins.

    Raises:
        MalformedCompletionResponse: If no JSON object can be found
    """
    if not isinstance(text, str) or not text.strip():
        raise MalformedCompletionResponse("Completion is empty")

    candidates = [text.strip()]
    candidates.extend(m.group(1).strip() for m in _FENCE.finditer(text))

    decoder = json.JSONDecoder()
    for candidate in candidates:
        try:
            value = json.loads(candidate)
            if isinstance(value, dict):
                return value
        except ValueError:
            pass
        start = candidate.find('{')
        while start != -1:
            try:
                value, _ = decoder.raw_decode(candidate, start)
                if isinstance(value, dict):
                    return value
            except ValueError:
                pass
            start = candidate.find('{', start + 1)

    raise MalformedCompletionResponse(f"No JSON object in completion: {text[:200]!r}")


def _decode_arguments(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return json.loads(value)
        except ValueError as e:
            raise MalformedCompletionResponse(f"Tool arguments are not JSON: {e}") from e
    return value


def extract_tool_call(payload: Dict[str, Any]) -> Tuple[Any, Any]:
    """
    Read ``(tool, parameters)`` from a completion payload.

    Besides the requested ``{"tool", "parameters"}`` shape, native function
    call shapes (``{"name", "arguments"}``, optionally under ``function``)
    are accepted.

    Raises:
        MalformedCompletionResponse: If the payload names no tool
    """
    if isinstance(payload.get('function'), dict):
        payload = payload['function']

    tool = payload.get('tool', payload.get('name', payload.get('tool_name')))
    if tool is None:
        raise MalformedCompletionResponse("Completion does not name a tool")
    if isinstance(tool, dict):
        tool = tool.get('name')
    if not isinstance(tool, str):
        raise MalformedCompletionResponse(f"Tool name must be a string, got {type(tool).__name__}")

    parameters = payload.get('parameters', payload.get('arguments', payload.get('params')))
    return tool.strip(), _decode_arguments(parameters)


def extract_parameters(payload: Dict[str, Any]) -> Any:
    """Read the parameters from a parameters pass payload."""
    for key in ('parameters', 'arguments', 'params'):
        if key in payload:
            return _decode_arguments(payload[key])
    if isinstance(payload.get('function'), dict):
        return extract_tool_call(payload)[1]
    if 'tool' in payload or 'name' in payload:
        return {}
    return payload


class DerivationEngine:
    """
    Derives a validated tool invocation from a natural language query.

    Args:
        client: Completion backend
        config: Configuration snapshot (pass mode, tries, prompt template)
        catalog: Tools that may be invoked
        context_builder: Builder of the grounding context
        cancel: Event that stops the derivation before its next attempt
    """

    def __init__(
        self,
        client: CompletionClient,
        config: ResolvedConfig,
        catalog: ToolCatalog = DEFAULT_CATALOG,
        context_builder: Optional[QueryContextBuilder] = None,
        cancel: Optional[threading.Event] = None,
    ):
        self.client = client
        self.config = config
        self.catalog = catalog
        self.context_builder = context_builder or QueryContextBuilder(catalog)
        self.cancel = cancel
        self.history: List[DerivationAttempt] = []
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def derive(self, query: str) -> ToolInvocation:
        """
        Derive the tool invocation for a query.

        Args:
            query: Natural language query

        Returns:
            A validated ToolInvocation

        Raises:
            DerivationExhausted: If a pass used all its attempts without success
            DerivationCancelled: If the cancel event was set between attempts
        """
        if not query or not query.strip():
            raise ValueError("Query cannot be empty")
        query = query.strip()
        self.history = []

        if self.config.double_pass_derive:
            tool_name = self._run_pass(
                TOOL_PASS,
                lambda feedback: self._prompt(self.context_builder.tool_selection_context(), query, feedback),
                self._interpret_tool_choice,
            )
            self.logger.info(f"Derived tool {tool_name}")
            context = self.context_builder.parameters_context(tool_name)
            invocation = self._run_pass(
                PARAMETERS_PASS,
                lambda feedback: self._prompt(context, query, feedback),
                lambda payload: self._interpret_parameters(tool_name, payload),
            )
        else:
            context = self.context_builder.full_context()
            invocation = self._run_pass(
                TOOL_PASS,
                lambda feedback: self._prompt(context, query, feedback),
                self._interpret_tool_call,
            )

        self.logger.info(f"Derived call {invocation.tool_name}({invocation.parameters})")
        return invocation

    def _prompt(self, context: str, query: str, feedback: Optional[str]) -> str:
        return render_prompt(self.config.llm.query_fmt, context, query, feedback)

    def _run_pass(
        self,
        pass_index: int,
        build_prompt: Callable[[Optional[str]], str],
        interpret: Callable[[Dict[str, Any]], Any],
    ) -> Any:
        state: PassState = Attempting(1)
        while isinstance(state, Attempting):
            if self.cancel is not None and self.cancel.is_set():
                self.logger.info(f"Derivation pass {pass_index} cancelled before attempt {state.attempt}")
                raise DerivationCancelled(pass_index, state.attempt - 1)
            state = self._step(pass_index, state, build_prompt, interpret)

        if isinstance(state, Exhausted):
            self.logger.error(f"Derivation pass {pass_index} exhausted after {state.attempt} attempt(s)")
            raise DerivationExhausted(pass_index, state.attempt, state.reason, list(self.history))
        return state.result

    def _step(
        self,
        pass_index: int,
        state: Attempting,
        build_prompt: Callable[[Optional[str]], str],
        interpret: Callable[[Dict[str, Any]], Any],
    ) -> PassState:
        """Make one attempt and return the next state of the pass."""
        self.logger.info(f"Derivation pass {pass_index}, attempt {state.attempt}/{self.config.num_derive_tries}")

        text = None
        try:
            text = self.client.complete(build_prompt(state.feedback))
            payload = parse_completion(text)
            result = interpret(payload)
        except (InvocationError, CompletionBackendError) as e:
            reason = f"{type(e).__name__}: {e}"
            self.history.append(DerivationAttempt(
                pass_index=pass_index, attempt_index=state.attempt, raw_text=text, failure=reason
            ))
            self.logger.warning(f"Derivation attempt {state.attempt} failed: {reason}")
            if state.attempt >= self.config.num_derive_tries:
                return Exhausted(state.attempt, reason)
            return Attempting(state.attempt + 1, reason)

        self.history.append(DerivationAttempt(
            pass_index=pass_index, attempt_index=state.attempt, raw_text=text, payload=payload
        ))
        return Succeeded(state.attempt, result)

    def _interpret_tool_call(self, payload: Dict[str, Any]) -> ToolInvocation:
        tool, parameters = extract_tool_call(payload)
        return validate_call(tool, parameters, self.catalog, self.context_builder.resolve_path)

    def _interpret_tool_choice(self, payload: Dict[str, Any]) -> str:
        tool, _ = extract_tool_call(payload)
        return self.catalog.lookup(tool).name

    def _interpret_parameters(self, tool_name: str, payload: Dict[str, Any]) -> ToolInvocation:
        parameters = extract_parameters(payload)
        return validate_call(tool_name, parameters, self.catalog, self.context_builder.resolve_path)
