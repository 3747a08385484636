"""
Simple Flow

Runs the same component through a FlowOrchestrator twice. The first run
calls the remote client; the second is answered from the SQLite-backed
cache without a remote call.

## Run with
```bash
PYTHONPATH=src python3 examples/simple_flow.py
```
"""

import asyncio
import logging

from pagewhisper import (
    CacheStore,
    FlowConfig,
    FlowInput,
    FlowOrchestrator,
    RemoteRequest,
    RemoteResponse,
    TokenUsage,
)
from pagewhisper.storage import SqliteCacheStorage

logging.basicConfig(level=logging.CRITICAL)


class TemplateClient:
    """Stands in for a vendor API: wraps the markup in a component shell."""

    def __init__(self):
        self.calls = 0

    async def generate(self, request: RemoteRequest) -> RemoteResponse:
        self.calls += 1
        await asyncio.sleep(0.1)
        framework = request.options.target_framework
        return RemoteResponse(
            content=f"// {framework} component generated by {request.target}\n"
            "export default function Hero() { return null; }",
            model=request.target,
            usage=TokenUsage(prompt_tokens=len(request.prompt.user) // 4, completion_tokens=24),
        )


def print_state(record):
    print(f"  [{record.progress:3d}%] {record.state}: {record.message}")


async def main():
    storage = SqliteCacheStorage("data/simple_flow.db")
    await storage.connect()
    await storage.clear()

    store = CacheStore(storage, max_size=50, default_ttl=600)
    client = TemplateClient()
    config = FlowConfig(primary_target="gpt-4o")
    flow_input = FlowInput(
        source={"markup": "<section class='hero'><h1>Hi</h1></section>", "styles": ".hero{}"},
        options={"framework": "react", "language": "typescript"},
        context={"css_frameworks": ["tailwind"]},
    )

    for run in (1, 2):
        print(f"Run {run}")
        outcome = await FlowOrchestrator(client, config=config, cache_store=store).execute(
            flow_input, on_state_change=print_state
        )
        print(f"  from_cache={outcome.result.from_cache} attempts={outcome.result.attempts}")

    print(f"Remote calls: {client.calls}")
    print(f"Cache stats: {store.stats()}")
    await storage.close()


if __name__ == "__main__":
    asyncio.run(main())
