"""
Client side of the code execution collaborator.

The judge compiles and runs a submission once per test case. A question passes
only if every test case produces the expected output after whitespace/case
normalization. Network, compile and runtime failures are told apart in the
report but all of them mean passed=False.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

import httpx

from ..schemas.question_schema import TestCase
from .grading_service import normalize_text

logger = logging.getLogger(__name__)


class ExecutionErrorKind(str, enum.Enum):
    NONE = "none"
    NETWORK = "network"
    COMPILE = "compile"
    RUNTIME = "runtime"
    MISMATCH = "mismatch"


@dataclass(frozen=True)
class ExecutionResult:
    passed: bool
    report: str
    error_kind: ExecutionErrorKind = ExecutionErrorKind.NONE


class CodeExecutor(Protocol):
    async def execute(self, source_code: str, test_cases: Sequence[TestCase]) -> ExecutionResult:
        ...


def outputs_match(actual: Optional[str], expected: Optional[str]) -> bool:
    return normalize_text(actual) == normalize_text(expected)


class RemoteCodeExecutor:
    """
    Runs code on a remote judge over HTTP.

    Request:  POST {base_url}/execute  {"language", "source", "stdin"}
    Response: {"compile_error": str | null, "stdout": str, "stderr": str, "exit_code": int}
    """

    def __init__(
        self,
        base_url: str,
        language: str = "java",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.language = language
        self.timeout = timeout
        self._transport = transport

    async def execute(self, source_code: str, test_cases: Sequence[TestCase]) -> ExecutionResult:
        if not source_code or not source_code.strip():
            return ExecutionResult(False, "BUILD FAILED\n\nError: no source code submitted.", ExecutionErrorKind.COMPILE)
        if not test_cases:
            return ExecutionResult(False, "No test cases configured for this question.", ExecutionErrorKind.MISMATCH)

        lines = []
        failure = ExecutionErrorKind.NONE

        async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self._transport) as client:
            for i, tc in enumerate(test_cases, start=1):
                try:
                    resp = await client.post(
                        "/execute",
                        json={"language": self.language, "source": source_code, "stdin": tc.input},
                    )
                    resp.raise_for_status()
                    data = resp.json()
                except (httpx.HTTPError, ValueError) as e:
                    logger.warning("Code runner unreachable at %s: %s", self.base_url, e)
                    return ExecutionResult(
                        False,
                        f"NETWORK ERROR\n\nCould not reach the code runner: {e}",
                        ExecutionErrorKind.NETWORK,
                    )

                compile_error = data.get("compile_error")
                if compile_error:
                    return ExecutionResult(False, f"BUILD FAILED\n\n{compile_error}", ExecutionErrorKind.COMPILE)

                stdout = data.get("stdout") or ""
                exit_code = data.get("exit_code", 0)
                if exit_code != 0:
                    stderr = (data.get("stderr") or "").strip()
                    lines.append(f"Test Case {i}: Input [{tc.input}] -> RUNTIME ERROR (exit code {exit_code}) {stderr[:200]}".rstrip())
                    failure = ExecutionErrorKind.RUNTIME
                    continue

                matched = outputs_match(stdout, tc.output)
                verdict = "PASS" if matched else "FAIL"
                lines.append(f"Test Case {i}: Input [{tc.input}] -> Expected [{tc.output}] -> Actual [{stdout.strip()}] ({verdict})")
                if not matched and failure == ExecutionErrorKind.NONE:
                    failure = ExecutionErrorKind.MISMATCH

        passed = failure == ExecutionErrorKind.NONE
        passed_count = sum(1 for line in lines if line.endswith("(PASS)"))
        lines.append("")
        lines.append(f"Result: {passed_count}/{len(test_cases)} test cases passed")
        return ExecutionResult(passed, "BUILD SUCCESSFUL\n\n" + "\n".join(lines), failure)
