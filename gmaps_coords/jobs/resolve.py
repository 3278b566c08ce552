"""CLI job that fills in missing coordinates for saved places and writes GeoJSON."""

import argparse
import dataclasses
import logging
from typing import Any, Callable, Dict, List, Optional

from gmaps_coords.core.assembler import apply_outcomes, summarize, to_feature_collection
from gmaps_coords.core.config import Settings, get_settings
from gmaps_coords.core.errors import ConfigurationError
from gmaps_coords.core.scheduler import ResolutionScheduler
from gmaps_coords.core.session_pool import SessionPool
from gmaps_coords.etl.readers import read_places
from gmaps_coords.etl.writer import ensure_writable, write_geojson

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"


def run_resolve_job(
    *,
    input_path: str,
    output_path: str,
    settings: Settings,
    pool_factory: Optional[Callable[[Settings], SessionPool]] = None,
) -> Dict[str, Any]:
    """Read places, resolve the ones without coordinates, and write every place back out.

    ``pool_factory`` defaults to ``SessionPool.connect``. Returns the status
    counts plus ``pool_exhausted``.
    """
    pool_factory = pool_factory or SessionPool.connect
    # Check the output before spending minutes on lookups.
    ensure_writable(output_path)

    try:
        records, members = read_places(input_path)
    except (OSError, ValueError) as exc:
        raise ConfigurationError(f"Cannot read input file {input_path}: {exc}") from exc

    pool_exhausted = False
    if any(record.needs_lookup for record in records):
        with pool_factory(settings) as pool:
            scheduler = ResolutionScheduler(
                pool,
                retry_ceiling=settings.retry_ceiling,
                parallelism=settings.parallelism,
            )
            outcomes = scheduler.run(records)
            pool_exhausted = scheduler.pool_exhausted
        apply_outcomes(records, outcomes)
    else:
        logger.info("Every place already has coordinates; no browser sessions needed")

    write_geojson(output_path, to_feature_collection(records, members))

    summary: Dict[str, Any] = summarize(records)
    logger.info(
        "Completed run: total=%d resolved=%d failed=%d",
        summary["total"],
        summary["resolved"],
        summary["failed"],
    )
    summary["pool_exhausted"] = pool_exhausted
    return summary


def build_parser(settings: Optional[Settings] = None) -> argparse.ArgumentParser:
    settings = settings or get_settings()
    parser = argparse.ArgumentParser(
        prog="gmaps-coords",
        description=(
            "Read saved places exported from Google Maps (CSV or GeoJSON) and write GeoJSON with "
            "coordinates looked up through WebDriver sessions. Start one WebDriver server "
            "(e.g. geckodriver) per parallel session on consecutive ports first."
        ),
    )
    parser.add_argument(
        "-i",
        "--input",
        dest="input_path",
        required=True,
        metavar="FILE",
        help="Input file; '.csv' is read as CSV, anything else as GeoJSON",
    )
    parser.add_argument(
        "-o",
        "--output",
        dest="output_path",
        required=True,
        metavar="FILE",
        help="Output GeoJSON file",
    )
    parser.add_argument(
        "-p",
        "--port",
        dest="base_port",
        type=int,
        default=settings.base_port,
        help="Port of the first WebDriver server; slot N uses port + N",
    )
    parser.add_argument(
        "-j",
        "--parallelism",
        dest="parallelism",
        type=int,
        default=settings.parallelism,
        help="Number of concurrent browser sessions",
    )
    parser.add_argument(
        "--retries",
        dest="retry_ceiling",
        type=int,
        default=settings.retry_ceiling,
        help="Extra attempts for lookups that time out or lose their session",
    )
    parser.add_argument(
        "--timeout",
        dest="lookup_timeout",
        type=float,
        default=settings.lookup_timeout,
        help="Seconds to wait for the map to report coordinates per attempt",
    )
    parser.add_argument(
        "--no-headless",
        dest="headless",
        action="store_false",
        default=settings.headless,
        help="Show the browser while coordinates are looked up",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def settings_from_args(settings: Settings, args: argparse.Namespace) -> Settings:
    if args.parallelism < 1:
        raise ConfigurationError("--parallelism must be at least 1")
    if args.retry_ceiling < 0:
        raise ConfigurationError("--retries must not be negative")
    if args.lookup_timeout <= 0:
        raise ConfigurationError("--timeout must be positive")
    if args.base_port < 1 or args.base_port + args.parallelism - 1 > 65535:
        raise ConfigurationError("--port and --parallelism must describe ports within 1..65535")
    return dataclasses.replace(
        settings,
        base_port=args.base_port,
        parallelism=args.parallelism,
        retry_ceiling=args.retry_ceiling,
        lookup_timeout=args.lookup_timeout,
        headless=args.headless,
    )


def main(argv: Optional[List[str]] = None) -> None:
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    try:
        settings = get_settings()
        args = build_parser(settings).parse_args(argv)
        if args.verbose:
            logging.getLogger().setLevel(logging.DEBUG)
        settings = settings_from_args(settings, args)
        summary = run_resolve_job(
            input_path=args.input_path,
            output_path=args.output_path,
            settings=settings,
        )
    except ConfigurationError as exc:
        logger.error("Configuration error: %s", exc)
        raise SystemExit(2) from exc
    except KeyboardInterrupt as exc:
        logger.error("Interrupted; no output written")
        raise SystemExit(130) from exc
    except Exception as exc:  # pragma: no cover - CLI fallback
        logger.error("Coordinate resolution failed: %s", exc, exc_info=True)
        raise SystemExit(1) from exc

    logger.debug("Summary: %s", summary)
    if summary["pool_exhausted"]:
        logger.error("All WebDriver sessions were lost during the run; some places were not attempted")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
