"""
Unit tests for the burst load generator.
"""

from __future__ import annotations

import asyncio
import json
import random

import httpx

from renderkit_relay.load_test import (
    SAMPLE_BLOCKS,
    LoadTestReport,
    build_request,
    run_load_test,
)
from renderkit_relay.signature import SignatureVerifier

SECRET = "load-secret"


class TestBuildRequest:
    """Tests for request construction."""

    def test_request_is_signed_and_randomized(self) -> None:
        rng = random.Random(7)
        body, headers = build_request(SECRET, rng)
        payload = json.loads(body)

        assert payload["block"] in {name for name, _ in SAMPLE_BLOCKS}
        assert 0 <= payload["props"]["_rand"] < 1
        SignatureVerifier(SECRET).verify_headers(headers, body)

    def test_consecutive_requests_differ(self) -> None:
        rng = random.Random(7)
        assert build_request(SECRET, rng)[0] != build_request(SECRET, rng)[0]


class TestRunLoadTest:
    """Tests for run_load_test."""

    def _run(self, status: int, reports: list[LoadTestReport]):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(status, json={"ok": status == 200})

        totals = asyncio.run(
            run_load_test(
                "http://relay.test",
                SECRET,
                duration=0.05,
                interval=0.01,
                report_every=0.0,
                on_report=reports.append,
                transport=httpx.MockTransport(handler),
                seed=1,
            )
        )
        return totals, seen

    def test_successful_run(self) -> None:
        reports: list[LoadTestReport] = []
        totals, seen = self._run(200, reports)

        assert totals.sent == len(seen) > 0
        assert totals.errors == 0
        assert reports
        assert sum(r.sent for r in reports) == totals.sent
        assert all(r.url.path == "/render" for r in seen)

    def test_errors_are_counted(self) -> None:
        totals, seen = self._run(500, [])
        assert totals.errors == totals.sent == len(seen)
        assert totals.first_error is not None
        assert totals.first_error.startswith("500")

    def test_report_format(self) -> None:
        assert str(LoadTestReport(sent=20, errors=1, rate=4.0)) == (
            "Sent: 20 | Errors: 1 | Rate: ~4.0 req/s"
        )
