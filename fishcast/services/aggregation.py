from __future__ import annotations

import math
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence

import pandas as pd

from fishcast.config import get_settings
from fishcast.exceptions import InvalidInputError
from fishcast.schemas.conditions import DayContext, EnvironmentalSample
from fishcast.schemas.forecast import DaySummary, Forecast, ScoredSample, WindowSummary
from fishcast.services.scoring import get_species, score_samples
from fishcast.services.tides import TideState


NUMERIC_FIELDS = [
    "temperature",
    "humidity",
    "precipitation",
    "pressure",
    "cloud_cover",
    "wind_speed",
    "wind_gusts",
]


def _clean_value(value):
    if value is None:
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if pd.isna(value):
        return None
    return float(value)


def _to_datetime(value) -> datetime:
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    return value


def _samples_frame(day_samples: Sequence[ScoredSample]) -> pd.DataFrame:
    records = []
    for scored in day_samples:
        payload = {name: getattr(scored.sample, name) for name in NUMERIC_FIELDS}
        payload["timestamp"] = scored.sample.timestamp
        payload["score"] = scored.score
        payload["description"] = scored.description
        records.append(payload)

    df = pd.DataFrame(records)
    for col in NUMERIC_FIELDS + ["score"]:
        df[col] = pd.to_numeric(df[col], errors="coerce")
    return df


def _representative(descriptions: pd.Series) -> str:
    """Most frequent description; ties go to the one seen first."""
    counts = descriptions.value_counts()
    top = counts.max()
    return next(d for d in descriptions if counts[d] == top)


def _infer_cadence(day_samples: Sequence[ScoredSample]) -> timedelta:
    stamps = pd.Series([s.sample.timestamp for s in day_samples])
    if len(stamps) < 2:
        return timedelta(minutes=get_settings().sample_cadence_minutes)
    return pd.to_datetime(stamps, utc=True).diff().dropna().median().to_pytimedelta()


def aggregate(
    day_samples: Sequence[ScoredSample],
    window_size: Optional[int] = None,
    min_samples: Optional[int] = None,
    cadence: Optional[timedelta] = None,
) -> List[WindowSummary]:
    """
    Group consecutive samples into non-overlapping windows of ``window_size``.

    A trailing window with fewer than ``min_samples`` samples is dropped.
    The window score is the mean of its per-sample scores.
    """
    settings = get_settings()
    window_size = settings.window_size_samples if window_size is None else window_size
    if window_size < 1:
        raise InvalidInputError("window_size must be at least 1")
    min_samples = min(settings.min_window_samples if min_samples is None else min_samples, window_size)

    if not day_samples:
        return []

    ordered = sorted(day_samples, key=lambda s: s.sample.timestamp)
    step = cadence or _infer_cadence(ordered)

    df = _samples_frame(ordered)
    df["window"] = df.index // window_size

    grouped = df.groupby("window", sort=True)
    summary = grouped.agg(
        start=("timestamp", "first"),
        last=("timestamp", "last"),
        sample_count=("score", "size"),
        score=("score", "mean"),
        **{col: (col, "mean") for col in NUMERIC_FIELDS},
    )
    descriptions = grouped["description"].agg(_representative)

    windows: List[WindowSummary] = []
    for window_id, row in summary.iterrows():
        if row["sample_count"] < min_samples:
            continue
        start = _to_datetime(row["start"])
        windows.append(
            WindowSummary(
                start=start,
                end=_to_datetime(row["last"]) + step,
                sample_count=int(row["sample_count"]),
                score=round(float(row["score"]), 2),
                description=str(descriptions.loc[window_id]),
                **{col: _clean_value(row[col]) for col in NUMERIC_FIELDS},
            )
        )
    return windows


def best_window(windows: Iterable[WindowSummary]) -> Optional[WindowSummary]:
    """Highest mean score; the earliest window wins ties."""
    best: Optional[WindowSummary] = None
    for window in windows:
        if best is None or window.score > best.score:
            best = window
    return best


def summarise_days(
    scored: Sequence[ScoredSample],
    days: Iterable[DayContext] = (),
    window_size: Optional[int] = None,
    min_samples: Optional[int] = None,
    horizon_days: Optional[int] = None,
) -> List[DaySummary]:
    """
    One DaySummary per local date, capped at the horizon. A day without a
    full-enough window keeps an empty window list (no data, not a zero score).
    """
    horizon_days = horizon_days or get_settings().horizon_days
    context_by_date: Dict[date, DayContext] = {d.date: d for d in days}

    samples_by_date: Dict[date, List[ScoredSample]] = {}
    for item in sorted(scored, key=lambda s: s.sample.timestamp):
        samples_by_date.setdefault(item.sample.timestamp.date(), []).append(item)

    dates = sorted(set(samples_by_date) | set(context_by_date))[:horizon_days]

    summaries: List[DaySummary] = []
    for day in dates:
        day_samples = samples_by_date.get(day, [])
        windows = aggregate(day_samples, window_size, min_samples) if day_samples else []
        context = context_by_date.get(day)
        summaries.append(
            DaySummary(
                date=day,
                sunrise=context.sunrise if context else None,
                sunset=context.sunset if context else None,
                best_window=best_window(windows),
                windows=windows,
                samples=day_samples,
            )
        )
    return summaries


def rank_days(days: Iterable[DaySummary]) -> List[DaySummary]:
    """Best window score descending, earlier date first on ties; empty days are left out."""
    with_data = [d for d in days if d.best_window is not None]
    return sorted(with_data, key=lambda d: (-d.best_window.score, d.date))


def build_forecast(
    samples: Sequence[EnvironmentalSample],
    days: Sequence[DayContext],
    tide: Optional[TideState] = None,
    species: Optional[str] = None,
    window_size: Optional[int] = None,
) -> Forecast:
    profile = get_species(species or get_settings().default_species)
    scored = score_samples(samples, days, tide, profile.name)
    summaries = summarise_days(scored, days, window_size)
    ranked = rank_days(summaries)

    return Forecast(
        species=profile.name,
        days=summaries,
        ranking=[d.date for d in ranked],
        best_day=ranked[0].date if ranked else None,
        best_window=ranked[0].best_window if ranked else None,
    )
