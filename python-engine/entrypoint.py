"""Field assessment command line.

Usage:
    field-engine assess --photo field.jpg --crop wheat --lat 45.1 --lon 19.8
    field-engine assess ... --json          # Print the state as JSON
    field-engine decode TOKEN               # Decode a share token
    field-engine crops                      # List supported crops
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError

from assessment import AssessmentResult, AssessmentState, FieldAssessor
from config import EngineConfig, get_engine_config
from forecast_provider import ForecastProvider, OpenMeteoClient, SqlForecastCache
from geolocation import parse_and_validate_geolocation
from index_processor import SCORE_STRATEGIES, get_score_strategy
from intervention_selector import default_selector
from photo_loader import load_pixel_buffer, photo_data_uri
from state_codec import DecodeError

logger = logging.getLogger(__name__)


def build_assessor(config: EngineConfig) -> FieldAssessor:
    """Wire real dependencies from configuration.

    Args:
        config: Resolved engine settings.
    """
    if config.cache_url.startswith("sqlite:///"):
        Path(config.cache_url[len("sqlite:///"):]).parent.mkdir(
            parents=True, exist_ok=True,
        )
    engine = create_engine(config.cache_url)
    provider = ForecastProvider(
        client=OpenMeteoClient(config.forecast_url, config.forecast_timeout),
        cache=SqlForecastCache(engine),
    )
    return FieldAssessor(
        forecast_provider=provider,
        selector=default_selector(config.interventions_path or None),
        score_strategy=get_score_strategy(config.score_strategy),
    )


def format_card(result: AssessmentResult, share_url: str) -> str:
    """Plain-text rendering of a field action card."""
    state = result.state
    forecast = result.forecast.summary
    lines = [
        f"Crop:      {state.crop_type}",
        f"Location:  {state.lat:.4f}, {state.lon:.4f}",
        f"Score:     {state.score}/100",
        f"Forecast:  {forecast.precipitation_mm:.1f} mm, "
        f"{forecast.temp_min}..{forecast.temp_max} C ({forecast.source})",
        "",
        *state.risk_summary.splitlines(),
        "",
    ]
    for number, item in enumerate(state.interventions, start=1):
        lines.append(f"{number}. {item.action} ({item.timing})")
    lines += ["", f"Share: {share_url}"]
    return "\n".join(lines)


def _run_assess(args: argparse.Namespace, config: EngineConfig) -> None:
    location = parse_and_validate_geolocation(args.lat, args.lon)
    if not location.valid:
        logger.error("Invalid location: %s", location.message)
        sys.exit(1)

    try:
        pixels = load_pixel_buffer(args.photo, config.photo_size)
        photo_ref = photo_data_uri(args.photo, config.photo_size) if args.embed_photo else ""
    except OSError as exc:
        logger.error("Could not read photo %s: %s", args.photo, exc)
        sys.exit(1)

    try:
        assessor = build_assessor(config)
    except (OSError, ValueError, SQLAlchemyError) as exc:
        logger.error("Could not configure assessment: %s", exc)
        sys.exit(1)

    result = assessor.assess(pixels, args.crop, location.lat, location.lon, photo_ref)
    share_url = result.state.share_url(config.share_base_url)

    if args.json:
        print(json.dumps({
            "state": result.state.to_dict(),
            "riskLevel": result.risk_level.value,
            "forecast": result.forecast.summary.to_dict(),
            "token": result.state.to_token(),
        }, indent=2))
    else:
        print(format_card(result, share_url))


def _run_decode(args: argparse.Namespace) -> None:
    try:
        state = AssessmentState.from_token(args.token)
    except (DecodeError, ValueError) as exc:
        logger.error("Discarding share token: %s", exc)
        sys.exit(1)
    print(json.dumps(state.to_dict(), indent=2))


def _run_crops(config: EngineConfig) -> None:
    try:
        selector = default_selector(config.interventions_path or None)
    except (OSError, ValueError) as exc:
        logger.error("Could not read intervention table: %s", exc)
        sys.exit(1)
    print("\n".join(selector.crops))


def main(argv: list[str] | None = None) -> None:
    """Parse arguments and dispatch to the requested command."""
    config = get_engine_config()
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    parser = argparse.ArgumentParser(description="Field health assessment")
    sub = parser.add_subparsers(dest="command", required=True)

    assess = sub.add_parser("assess", help="Assess a field photo")
    assess.add_argument("--photo", required=True, help="Path to the field photo")
    assess.add_argument("--crop", required=True, help="Crop type, e.g. wheat")
    assess.add_argument("--lat", required=True, help="Latitude in degrees")
    assess.add_argument("--lon", required=True, help="Longitude in degrees")
    assess.add_argument(
        "--score-strategy", default=None,
        choices=sorted(SCORE_STRATEGIES),
        help="Override FIELD_ENGINE_SCORE_STRATEGY",
    )
    assess.add_argument(
        "--embed-photo", action="store_true",
        help="Embed a thumbnail of the photo in the share token",
    )
    assess.add_argument("--json", action="store_true", help="Print JSON output")

    decode = sub.add_parser("decode", help="Decode a share token")
    decode.add_argument("token")

    sub.add_parser("crops", help="List supported crop types")

    args = parser.parse_args(argv)

    if args.command == "assess":
        if args.score_strategy:
            config = replace(config, score_strategy=args.score_strategy)
        _run_assess(args, config)
    elif args.command == "decode":
        _run_decode(args)
    else:
        _run_crops(config)


if __name__ == "__main__":
    main()
