"""Build the static extract served to the tracker from a GTFS Sweden zip.

Usage:
    python -m sl_tracker.tools.build_extract --zip data/raw/sweden.zip --out public/data

Outputs (under --out):
- manifest.json            route summaries
- stops.json               every stop used by the agency's trips
- trip-to-route.json       tripId -> {routeId, headsign}
- route-directions.json    routeId -> {directionId: most frequent headsign}
- lines/<routeId>.json     geometry, trip ids and stops of one route
"""

import argparse
import logging
import sys
import zipfile
from pathlib import Path

import orjson
import pandas as pd

logger = logging.getLogger(__name__)

SL_AGENCY_ID = "505000000000000001"


def _read_csv(zf: zipfile.ZipFile, name: str, usecols: list[str] | None = None) -> pd.DataFrame:
    if name not in zf.namelist():
        raise FileNotFoundError(f"Required file {name} missing from archive")
    with zf.open(name) as fh:
        return pd.read_csv(fh, dtype=str, keep_default_na=False, usecols=usecols)


def _write_json(path: Path, data) -> None:
    path.write_bytes(orjson.dumps(data))


def load_agency_tables(zip_path: Path, agency_id: str) -> dict[str, pd.DataFrame]:
    """Read the GTFS tables and keep only rows reachable from the agency's routes."""
    with zipfile.ZipFile(zip_path) as zf:
        routes = _read_csv(zf, "routes.txt")
        trips = _read_csv(zf, "trips.txt")
        stop_times = _read_csv(
            zf, "stop_times.txt", usecols=["trip_id", "stop_id", "stop_sequence"],
        )
        stops = _read_csv(zf, "stops.txt", usecols=["stop_id", "stop_name", "stop_lat", "stop_lon"])
        shapes = (
            _read_csv(zf, "shapes.txt")
            if "shapes.txt" in zf.namelist()
            else pd.DataFrame(columns=["shape_id", "shape_pt_lat", "shape_pt_lon", "shape_pt_sequence"])
        )

    keep_routes = routes[routes["agency_id"] == agency_id].copy()
    keep_trips = trips[trips["route_id"].isin(keep_routes["route_id"])].copy()
    for col in ("trip_headsign", "direction_id", "shape_id"):
        if col not in keep_trips.columns:
            keep_trips[col] = ""

    st = stop_times[stop_times["trip_id"].isin(keep_trips["trip_id"])].copy()
    st["stop_sequence"] = pd.to_numeric(st["stop_sequence"], errors="coerce")

    keep_stops = stops[stops["stop_id"].isin(st["stop_id"].unique())].copy()
    for col in ("stop_lat", "stop_lon"):
        keep_stops[col] = pd.to_numeric(keep_stops[col], errors="coerce")
    keep_stops = keep_stops.dropna(subset=["stop_lat", "stop_lon"])

    keep_shape_ids = [s for s in keep_trips["shape_id"].unique() if s]
    keep_shapes = shapes[shapes["shape_id"].isin(keep_shape_ids)].copy()
    for col in ("shape_pt_lat", "shape_pt_lon", "shape_pt_sequence"):
        keep_shapes[col] = pd.to_numeric(keep_shapes[col], errors="coerce")

    logger.info(
        "Agency %s: %d routes, %d trips, %d stops, %d shapes",
        agency_id, len(keep_routes), len(keep_trips), len(keep_stops), len(keep_shape_ids),
    )
    return {
        "routes": keep_routes,
        "trips": keep_trips,
        "stop_times": st,
        "stops": keep_stops,
        "shapes": keep_shapes,
    }


def build_trip_map(trips: pd.DataFrame) -> dict[str, dict]:
    return {
        row.trip_id: {"routeId": row.route_id, "headsign": row.trip_headsign}
        for row in trips.itertuples(index=False)
    }


def build_route_directions(trips: pd.DataFrame) -> dict[str, dict[str, str]]:
    """Most frequent non-empty headsign per route and direction."""
    named = trips[(trips["trip_headsign"] != "") & (trips["direction_id"] != "")]
    if named.empty:
        return {}
    counts = (
        named.groupby(["route_id", "direction_id", "trip_headsign"])
        .size()
        .reset_index(name="n")
        .sort_values(["route_id", "direction_id", "n", "trip_headsign"],
                     ascending=[True, True, False, True])
        .drop_duplicates(["route_id", "direction_id"])
    )
    directions: dict[str, dict[str, str]] = {}
    for row in counts.itertuples(index=False):
        directions.setdefault(row.route_id, {})[row.direction_id] = row.trip_headsign
    return directions


def build_lines(tables: dict[str, pd.DataFrame]) -> tuple[list[dict], dict[str, dict]]:
    """Per-route line files plus manifest entries.

    The trip with the most stop times represents the route; routes whose
    representative trip has fewer than two known stops are skipped.
    """
    routes, trips = tables["routes"], tables["trips"]
    stop_times, shapes = tables["stop_times"], tables["shapes"]
    stops_by_id = {
        row.stop_id: {"id": row.stop_id, "name": row.stop_name,
                      "lat": float(row.stop_lat), "lng": float(row.stop_lon)}
        for row in tables["stops"].itertuples(index=False)
    }

    stop_counts = stop_times.groupby("trip_id").size()
    trips = trips.assign(n_stops=trips["trip_id"].map(stop_counts).fillna(0))
    trip_ids_by_route = trips.groupby("route_id")["trip_id"].apply(list)
    # First trip wins ties, like a stable max
    best_trips = (
        trips[trips["n_stops"] > 0]
        .sort_values("n_stops", ascending=False, kind="stable")
        .drop_duplicates("route_id")
        .set_index("route_id")
    )

    manifest = []
    lines = {}
    for route in routes.itertuples(index=False):
        if route.route_id not in best_trips.index:
            continue
        best = best_trips.loc[route.route_id]
        trip_stops = stop_times[stop_times["trip_id"] == best["trip_id"]].sort_values("stop_sequence")
        stops = [stops_by_id[s] for s in trip_stops["stop_id"] if s in stops_by_id]
        if len(stops) < 2:
            continue

        shape = shapes[shapes["shape_id"] == best["shape_id"]].sort_values("shape_pt_sequence")
        path = [[float(r.shape_pt_lat), float(r.shape_pt_lon)] for r in shape.itertuples(index=False)]
        if not path:
            path = [[s["lat"], s["lng"]] for s in stops]

        description = getattr(route, "route_long_name", "")
        lines[route.route_id] = {
            "id": route.route_id,
            "line": route.route_short_name,
            "description": description,
            "trip_ids": trip_ids_by_route.get(route.route_id, []),
            "path": path,
            "stops": stops,
        }
        manifest.append({
            "id": route.route_id,
            "line": route.route_short_name,
            "description": description,
            "from": stops[0]["name"],
            "to": stops[-1]["name"],
        })
    return manifest, lines


def build_extract(zip_path: Path, out_dir: Path, agency_id: str = SL_AGENCY_ID) -> int:
    """Write the full extract; returns the number of line files written."""
    tables = load_agency_tables(zip_path, agency_id)

    lines_dir = out_dir / "lines"
    lines_dir.mkdir(parents=True, exist_ok=True)

    _write_json(out_dir / "trip-to-route.json", build_trip_map(tables["trips"]))
    _write_json(out_dir / "stops.json", [
        {"id": r.stop_id, "name": r.stop_name, "lat": float(r.stop_lat), "lng": float(r.stop_lon)}
        for r in tables["stops"].itertuples(index=False)
    ])
    _write_json(out_dir / "route-directions.json", build_route_directions(tables["trips"]))

    manifest, lines = build_lines(tables)
    for route_id, line in lines.items():
        _write_json(lines_dir / f"{route_id}.json", line)
    _write_json(out_dir / "manifest.json", manifest)

    logger.info("Wrote %d line files and manifest.json to %s", len(lines), out_dir)
    return len(lines)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Build the static extract from a GTFS zip")
    parser.add_argument("--zip", required=True, type=Path, help="GTFS Sweden zip file")
    parser.add_argument("--out", required=True, type=Path, help="Output directory")
    parser.add_argument("--agency", default=SL_AGENCY_ID, help="Agency id to keep")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )

    if not args.zip.is_file():
        logger.error("GTFS zip not found at %s", args.zip)
        return 1
    try:
        build_extract(args.zip, args.out, args.agency)
    except (FileNotFoundError, KeyError, ValueError, zipfile.BadZipFile) as e:
        logger.error("Extract build failed: %s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
