from __future__ import annotations

import argparse
import sys

from connect_career.app.errors import ApiError, PipelineError
from connect_career.client.api import PipelineApiClient


def assert_true(condition: bool, message: str) -> None:
    if not condition:
        raise RuntimeError(message)


def main() -> int:
    parser = argparse.ArgumentParser(description="Smoke test for the Connect Career pipeline API.")
    parser.add_argument("--base-url", required=True)
    parser.add_argument("--auth-mode", choices=["enabled", "disabled"], default="enabled")
    parser.add_argument("--token", default="")
    parser.add_argument("--job-id", default="", help="Optional job whose pipeline should resolve.")
    args = parser.parse_args()

    token = args.token.strip() or None
    api = PipelineApiClient.from_base_url(args.base_url, token=token)
    try:
        health = api.health()
        assert_true(health.get("status") == "ok", "/health invalid payload")
        print("OK /health")

        ready = api.readiness()
        assert_true(ready.get("status") == "ready", "/health/ready invalid payload")
        print("OK /health/ready")

        body = api.metrics()
        assert_true("connect_career_requests_total" in body, "/metrics missing requests counter")
        print("OK /metrics")

        if args.job_id:
            try:
                pipeline = api.get_pipeline_by_job_id(args.job_id)
            except ApiError as exc:
                if args.auth_mode == "enabled" and not token and exc.status_code in {401, 403}:
                    print("OK /pipelines/jobs unauthorized")
                else:
                    raise
            else:
                assert_true(bool(pipeline.stages), "pipeline has no stages")
                print(f"OK /pipelines/jobs/{args.job_id} ({len(pipeline.stages)} stages)")
    except PipelineError as exc:
        raise RuntimeError(f"{exc.code}: {exc.message}") from exc
    finally:
        api.close()

    print("Smoke test passed.")
    return 0


if __name__ == "__main__":
    try:
        sys.exit(main())
    except Exception as exc:
        print(f"Smoke test failed: {exc}", file=sys.stderr)
        sys.exit(1)
