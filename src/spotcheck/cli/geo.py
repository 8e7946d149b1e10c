"""
CLI: ``spotcheck geo`` — distance and check-in verification.
"""

from __future__ import annotations

import typer

from spotcheck.cli.utils import coordinate_arg, fail, output
from spotcheck.geo.geodesy import (
    InvalidCoordinateError,
    bearing,
    distance,
    format_distance,
    validate_and_normalize,
)
from spotcheck.geo.verification import LocationVerifier

app = typer.Typer(no_args_is_help=True)


@app.command("distance")
def distance_cmd(
    origin: str = typer.Argument(..., help="Start as LAT,LON"),
    destination: str = typer.Argument(..., help="End as LAT,LON"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Great-circle distance and initial bearing between two points."""
    try:
        a = validate_and_normalize(coordinate_arg(origin))
        b = validate_and_normalize(coordinate_arg(destination))
    except InvalidCoordinateError as e:
        fail("; ".join(e.errors))

    meters = distance(a, b)
    output(
        {
            "meters": round(meters, 2),
            "formatted": format_distance(meters),
            "bearing": round(bearing(a, b), 1),
        },
        as_json=json_out,
        title="Distance",
    )


@app.command("verify")
def verify_cmd(
    user: str = typer.Option(..., "--user", "-u", help="Player position as LAT,LON"),
    target: str = typer.Option(..., "--target", "-t", help="Challenge position as LAT,LON"),
    accuracy: float | None = typer.Option(None, "--accuracy", "-a", help="Fix accuracy in meters"),
    radius: float | None = typer.Option(None, "--radius", "-r", help="Check-in radius in meters"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Verify a check-in against a challenge location."""
    from spotcheck.core.settings import get_settings

    verifier = LocationVerifier(get_settings().verification_radius_meters)
    try:
        verdict = verifier.verify(coordinate_arg(user, accuracy), coordinate_arg(target), radius)
    except ValueError as e:
        fail(str(e))
    output(verdict, as_json=json_out, title="Verification")
    if not verdict.is_valid:
        raise typer.Exit(code=2)
