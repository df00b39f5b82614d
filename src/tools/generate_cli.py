import argparse
import asyncio
import dataclasses
import json
import logging
import sys

from dotenv import load_dotenv

from deutschdrill.config import load_settings
from deutschdrill.errors import DrillError
from deutschdrill.generator import generate
from deutschdrill.llm import build_llm
from deutschdrill.types import Domain, ErrorEvent


def _event_json(event) -> str:
    payload = dataclasses.asdict(event)
    return json.dumps(payload, ensure_ascii=False)


async def _run(settings, word: str, domain: Domain, count: int, stream: bool) -> int:
    client = build_llm(settings)
    failed = False
    async for event in generate(client, word, domain, exercise_count=count, stream=stream):
        print(_event_json(event), flush=True)
        failed = failed or isinstance(event, ErrorEvent)
    return 1 if failed else 0


def main(argv: list[str]) -> int:
    load_dotenv()
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
        stream=sys.stderr,
    )
    parser = argparse.ArgumentParser(description="Generate a table and exercises for one word, one JSON event per line.")
    parser.add_argument("word")
    parser.add_argument("--domain", choices=[d.value for d in Domain], default=Domain.VERB.value)
    parser.add_argument("--count", type=int, default=None)
    parser.add_argument("--blocking", action="store_true", default=False, help="fetch exercises in one response instead of streaming")
    args = parser.parse_args(argv)

    try:
        settings = load_settings(require_bot_token=False)
    except DrillError as exc:
        logging.getLogger(__name__).error("config_error: %s", exc)
        return 2
    count = args.count or settings.exercise_count
    stream = settings.stream_exercises and not args.blocking
    return asyncio.run(_run(settings, args.word, Domain(args.domain), count, stream))


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
