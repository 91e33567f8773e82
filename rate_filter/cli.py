"""CLI: reproduce un fichero de lecturas (JSON lines) a través del filtro."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Iterator, List, Optional, Sequence, TextIO

from common.config import get_settings

from .core.domain import Reading
from .errors import RateFilterError
from .filter import RateFilter

logger = logging.getLogger(__name__)


def iter_batches(stream: TextIO, batch_size: int) -> Iterator[List[Reading]]:
    """Agrupa las lecturas del stream en batches de `batch_size`."""
    batch: List[Reading] = []
    for lineno, line in enumerate(stream, start=1):
        line = line.strip()
        if not line:
            continue
        try:
            batch.append(Reading.from_dict(json.loads(line)))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("Skipping malformed reading at line %d: %s", lineno, e)
            continue
        if len(batch) >= batch_size:
            yield batch
            batch = []
    if batch:
        yield batch


def main(argv: Optional[Sequence[str]] = None) -> int:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )

    p = argparse.ArgumentParser(description="Rate filter replay (trigger/untrigger + averaging)")
    p.add_argument("--config", required=True, help="configuration category JSON file")
    p.add_argument("--input", default="-", help="readings as JSON lines ('-' = stdin)")
    p.add_argument("--batch-size", type=int, default=100)
    p.add_argument("--stats", action="store_true", help="print filter statistics to stderr")
    args = p.parse_args(argv)

    try:
        with open(args.config, encoding="utf-8") as fh:
            rate_filter = RateFilter.from_category(settings.filter_name, fh.read())

        source = sys.stdin if args.input == "-" else open(args.input, encoding="utf-8")
        try:
            for batch in iter_batches(source, max(1, args.batch_size)):
                out: List[Reading] = []
                rate_filter.ingest(batch, out)
                for reading in out:
                    sys.stdout.write(json.dumps(reading.to_dict()) + "\n")
        finally:
            if source is not sys.stdin:
                source.close()
    except (OSError, RateFilterError) as e:
        logger.error("Rate filter replay failed: %s", e)
        return 1

    if args.stats:
        sys.stderr.write(json.dumps(rate_filter.get_stats(), indent=2) + "\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
