"""
Python code execution for custom-code steps.

The step's ``code`` runs with a restricted builtins table. Resolved inputs are
available both as ``inputs`` and as top-level variables; whatever the code
assigns to ``result`` becomes the step output.
"""

from __future__ import annotations

import asyncio
import json
import math
from typing import Any, Dict, Mapping, Optional

from steprail.errors import StepRailError
from steprail.schema.models import CustomCodeStep, StepBase
from steprail.shared.config import config
from steprail.shared.logger import get_logger

logger = get_logger(__name__)


class CodeExecutionError(StepRailError):
    """Exception raised during code execution."""


SAFE_BUILTINS: Dict[str, Any] = {
    'abs': abs,
    'all': all,
    'any': any,
    'bool': bool,
    'dict': dict,
    'enumerate': enumerate,
    'filter': filter,
    'float': float,
    'int': int,
    'isinstance': isinstance,
    'len': len,
    'list': list,
    'map': map,
    'max': max,
    'min': min,
    'range': range,
    'reversed': reversed,
    'round': round,
    'set': set,
    'sorted': sorted,
    'str': str,
    'sum': sum,
    'tuple': tuple,
    'zip': zip,
    'print': print,  # Allow print for debugging
    'Exception': Exception,
    'KeyError': KeyError,
    'TypeError': TypeError,
    'ValueError': ValueError,
}


class CustomCodeHandler:
    """
    Executes custom-code steps off the event loop.

    NOTE: restricted builtins are not isolation. A timed-out snippet keeps its
    worker thread until it returns; only its result is discarded.
    """

    def __init__(self, timeout_seconds: Optional[float] = None, enabled: Optional[bool] = None) -> None:
        self.timeout_seconds = timeout_seconds or config.custom_code_timeout_seconds
        self.enabled = config.custom_code_enabled if enabled is None else enabled

    async def execute(self, step: StepBase, inputs: Mapping[str, Any], context: Any) -> Any:
        if not isinstance(step, CustomCodeStep):
            raise CodeExecutionError(f"Step '{step.id}' is not a custom-code step")
        if not self.enabled:
            raise CodeExecutionError("Custom code execution is disabled")

        code = step.code or ""
        if not code.strip():
            return None

        try:
            compiled = compile(code, f"<step {step.id}>", "exec")
        except SyntaxError as exc:
            raise CodeExecutionError(f"Syntax error: {exc.msg} (line {exc.lineno})") from exc

        namespace = self._namespace(inputs)
        loop = asyncio.get_running_loop()
        try:
            await asyncio.wait_for(
                loop.run_in_executor(None, exec, compiled, namespace),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            error_msg = f"Code execution timed out after {self.timeout_seconds} seconds"
            logger.error(error_msg)
            raise CodeExecutionError(error_msg) from None
        except Exception as exc:
            raise CodeExecutionError(f"{type(exc).__name__}: {exc}") from exc

        return namespace.get("result")

    @staticmethod
    def _namespace(inputs: Mapping[str, Any]) -> Dict[str, Any]:
        namespace: Dict[str, Any] = {
            '__builtins__': dict(SAFE_BUILTINS),
            '__name__': '__workflow__',
            'json': json,
            'math': math,
        }
        for name, value in inputs.items():
            if name.isidentifier() and not name.startswith('__'):
                namespace[name] = value
        namespace['inputs'] = dict(inputs)
        namespace['result'] = None
        return namespace


def validate_code_syntax(code: str) -> tuple[bool, Optional[str]]:
    """
    Validate code syntax without executing.

    Returns:
        Tuple of (is_valid, error_message)
    """
    try:
        compile(code or "", '<workflow>', 'exec')
        return True, None
    except SyntaxError as e:
        return False, f"Syntax error: {e.msg} (line {e.lineno})"
    except ValueError as e:
        return False, f"Validation error: {str(e)}"
