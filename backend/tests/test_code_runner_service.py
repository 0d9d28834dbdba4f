import asyncio
import json

import httpx

from uniexam.schemas.question_schema import TestCase
from uniexam.services.code_runner_service import ExecutionErrorKind, RemoteCodeExecutor, outputs_match

CASES = [TestCase(input="2 3", output="5"), TestCase(input="10 -4", output="6")]


def _sum_judge(request: httpx.Request) -> httpx.Response:
    body = json.loads(request.content)
    a, b = (int(x) for x in body["stdin"].split())
    return httpx.Response(200, json={"compile_error": None, "stdout": f"{a + b}\n", "stderr": "", "exit_code": 0})


def _run(handler, source="class Main {}", cases=CASES):
    executor = RemoteCodeExecutor("http://judge.test", transport=httpx.MockTransport(handler))
    return asyncio.run(executor.execute(source, cases))


def test_all_cases_pass():
    result = _run(_sum_judge)
    assert result.passed
    assert result.error_kind == ExecutionErrorKind.NONE
    assert result.report.startswith("BUILD SUCCESSFUL")
    assert "Test Case 1: Input [2 3] -> Expected [5] -> Actual [5] (PASS)" in result.report
    assert result.report.endswith("Result: 2/2 test cases passed")


def test_request_carries_language_source_and_stdin():
    seen = []

    def handler(request):
        seen.append(json.loads(request.content))
        return _sum_judge(request)

    _run(handler, source="public class Main {}")
    assert [s["stdin"] for s in seen] == ["2 3", "10 -4"]
    assert all(s["language"] == "java" and s["source"] == "public class Main {}" for s in seen)


def test_output_mismatch_fails():
    def handler(request):
        return httpx.Response(200, json={"stdout": "5", "exit_code": 0})

    result = _run(handler)
    assert not result.passed
    assert result.error_kind == ExecutionErrorKind.MISMATCH
    assert "(FAIL)" in result.report
    assert result.report.endswith("Result: 1/2 test cases passed")


def test_compile_error_reports_build_failed():
    def handler(request):
        return httpx.Response(200, json={"compile_error": "Main.java:1: error: ';' expected", "exit_code": 1})

    result = _run(handler)
    assert not result.passed
    assert result.error_kind == ExecutionErrorKind.COMPILE
    assert result.report.startswith("BUILD FAILED")
    assert "';' expected" in result.report


def test_runtime_error_is_reported_per_case():
    def handler(request):
        return httpx.Response(200, json={"stdout": "", "stderr": "Exception in thread main", "exit_code": 1})

    result = _run(handler)
    assert not result.passed
    assert result.error_kind == ExecutionErrorKind.RUNTIME
    assert "RUNTIME ERROR (exit code 1)" in result.report


def test_unreachable_judge_is_a_network_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    result = _run(handler)
    assert not result.passed
    assert result.error_kind == ExecutionErrorKind.NETWORK


def test_server_error_is_a_network_error():
    result = _run(lambda request: httpx.Response(503, text="overloaded"))
    assert result.error_kind == ExecutionErrorKind.NETWORK


def test_empty_source_and_missing_cases_skip_the_judge():
    calls = []

    def handler(request):
        calls.append(request)
        return _sum_judge(request)

    empty = _run(handler, source="   ")
    assert empty.error_kind == ExecutionErrorKind.COMPILE
    no_cases = _run(handler, cases=[])
    assert not no_cases.passed
    assert calls == []


def test_outputs_match_ignores_case_and_whitespace():
    assert outputs_match("Hello  World\n", "hello world")
    assert not outputs_match("5", "6")
