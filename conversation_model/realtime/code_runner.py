"""
Code Runner Module

Executes code turns requested by the backend in a separate interpreter
process. Output is returned to the conversation; failures raise
ExecutionError so the conversation records them as faulted.
"""

import asyncio
from typing import Optional

from conversation_model.config import CodeRunnerConfig, settings
from conversation_model.core.messages import CodeTurn
from conversation_model.errors import ExecutionError
from conversation_model.logger import get_logger

logger = get_logger(__name__)


class PythonCodeRunner:
    """
    Runs code blocks with an external interpreter.

    Usage:
        runner = PythonCodeRunner()
        output = await runner(CodeTurn("print(1 + 1)"), cancel)
    """

    def __init__(
        self,
        config: Optional[CodeRunnerConfig] = None,
        interpreter: Optional[str] = None,
        timeout_s: Optional[float] = None,
    ):
        self._config = config or settings.code
        self._interpreter = interpreter or self._config.interpreter
        self._timeout_s = timeout_s or self._config.timeout_s

    async def __call__(self, turn: CodeTurn, cancel: asyncio.Event) -> str:
        """
        Run a code turn.

        Args:
            turn: The code to run
            cancel: Kills the process when set

        Returns:
            Captured standard output, or '(no output)'

        Raises:
            ExecutionError: On non-zero exit, timeout or cancellation
        """
        logger.info(f"Running code block ({len(turn.code)} chars)")
        process = await asyncio.create_subprocess_exec(
            self._interpreter,
            "-c",
            turn.code,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )

        communicate = asyncio.ensure_future(process.communicate())
        cancelled = asyncio.ensure_future(cancel.wait())
        try:
            done, _ = await asyncio.wait(
                {communicate, cancelled},
                timeout=self._timeout_s,
                return_when=asyncio.FIRST_COMPLETED,
            )
            if communicate not in done:
                process.kill()
                await communicate
                reason = "cancelled" if cancelled in done else f"timed out after {self._timeout_s:g}s"
                raise ExecutionError(f"Code execution {reason}")
            stdout_bytes, stderr_bytes = communicate.result()
        finally:
            cancelled.cancel()
            if not communicate.done():
                process.kill()
                await asyncio.wait({communicate})

        stdout_text = (stdout_bytes or b"").decode("utf-8", errors="replace").strip()
        stderr_text = (stderr_bytes or b"").decode("utf-8", errors="replace").strip()
        if process.returncode != 0:
            message = stderr_text or stdout_text or f"exit={process.returncode}"
            raise ExecutionError(f"exit={process.returncode}: {message}")
        return stdout_text or "(no output)"


async def disabled_code_function(turn: CodeTurn, cancel: asyncio.Event) -> str:
    """Code callback used when execution is turned off."""
    raise ExecutionError("Code execution is disabled.")
