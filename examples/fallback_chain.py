"""
Fallback Chain

The primary target is rate limited on every attempt. The orchestrator
retries it with exponential backoff, then falls back to the first
alternate target, which is down, and then to the second, which answers.

## Verification

- primary is called max_attempts (3) times
- each fallback target is called exactly once
- the result reports the target that produced it

## Run with
```bash
PYTHONPATH=src python3 examples/fallback_chain.py
```
"""

import asyncio
import logging

from pagewhisper import (
    FlowConfig,
    FlowInput,
    FlowOrchestrator,
    FlowState,
    RateLimitError,
    RemoteRequest,
    RemoteResponse,
    RemoteStatusError,
    RetryConfig,
)

logging.basicConfig(level=logging.CRITICAL)

CALLS: dict[str, int] = {}


class FlakyClient:
    async def generate(self, request: RemoteRequest) -> RemoteResponse:
        CALLS[request.target] = CALLS.get(request.target, 0) + 1
        if request.target == "primary":
            raise RateLimitError(retry_after_ms=50, target=request.target)
        if request.target == "backup-1":
            raise RemoteStatusError("service unavailable", 503, request.target)
        return RemoteResponse(content="export const Card = () => null;", model=request.target)


def print_state(record):
    if record.state in (FlowState.CALLING_REMOTE, FlowState.RETRYING, FlowState.FALLBACK):
        details = record.details
        print(f"  {record.state}: target={details.target} eta_ms={details.eta_ms}")


async def main():
    config = (
        FlowConfig(primary_target="primary", retry=RetryConfig(initial_delay_ms=20, max_delay_ms=200))
        .with_fallbacks("backup-1", "backup-2")
        .without_cache()
    )
    outcome = await FlowOrchestrator(FlakyClient(), config=config).execute(
        FlowInput(source="<article class='card'></article>", options={"framework": "solid"}),
        on_state_change=print_state,
    )

    print(f"Final state: {outcome.final.state}")
    print(f"Served by: {outcome.result.target} after {outcome.result.attempts} attempts")
    print(f"Calls per target: {CALLS}")
    assert CALLS == {"primary": 3, "backup-1": 1, "backup-2": 1}


if __name__ == "__main__":
    asyncio.run(main())
