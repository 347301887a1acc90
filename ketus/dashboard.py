"""Derived dashboard values. Everything here is a pure function of the log list."""

PLACEHOLDER = "--"


def _date_key(log: dict) -> str:
    return str(log.get("date") or "")


def chronological(logs: list[dict]) -> list[dict]:
    return sorted(logs, key=_date_key)


def latest_log(logs: list[dict]) -> dict | None:
    ordered = chronological(logs)
    return ordered[-1] if ordered else None


def weight_delta(logs: list[dict]) -> float | None:
    ordered = chronological(logs)
    if len(ordered) < 2:
        return None
    return round(float(ordered[-1]["weight"]) - float(ordered[-2]["weight"]), 3)


def format_delta(delta: float | None) -> str | None:
    if delta is None:
        return None
    if round(delta, 1) == 0:
        return "0.0"
    return f"{'+' if delta > 0 else ''}{delta:.1f}"


def _display_number(value) -> str:
    if value in (None, "") or value == 0:
        return PLACEHOLDER
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def stat_cards(logs: list[dict]) -> dict:
    latest = latest_log(logs) or {}
    delta = weight_delta(logs)
    shown = round(delta, 1) if delta is not None else None
    if shown is None:
        direction = None
    elif shown < 0:
        direction = "down"
    elif shown > 0:
        direction = "up"
    else:
        direction = "flat"

    return {
        "weight": _display_number(latest.get("weight")),
        "wellBeing": _display_number(latest.get("wellBeing")),
        "sleepQuality": _display_number(latest.get("sleepQuality")),
        "weightDelta": format_delta(delta),
        "weightDeltaDirection": direction,
    }


def chart_series(logs: list[dict]) -> dict:
    ordered = chronological(logs)
    weights = [float(log.get("weight") or 0) for log in ordered]
    return {
        "labels": [_date_key(log) for log in ordered],
        "weight": weights,
        "wellBeing": [log.get("wellBeing") for log in ordered],
        "sleepQuality": [log.get("sleepQuality") for log in ordered],
        "weightDomain": [min(weights) - 1, max(weights) + 1] if weights else None,
        "scoreDomain": [0, 10],
    }


def history_rows(logs: list[dict]) -> list[dict]:
    return [
        {
            "id": log.get("id"),
            "date": _date_key(log),
            "weight": _display_number(log.get("weight")),
            "progressNote": log.get("progressNote") or "",
        }
        for log in reversed(chronological(logs))
    ]


def latest_note(logs: list[dict]) -> str | None:
    latest = latest_log(logs)
    return latest.get("progressNote") if latest else None


def display_name(profile: dict | None) -> str:
    if not profile:
        return ""
    parts = [(profile.get(key) or "").strip() for key in ("first_name", "last_name")]
    return " ".join(part for part in parts if part)


def build_dashboard_context(logs: list[dict], profile: dict | None) -> dict:
    return {
        "stats": stat_cards(logs),
        "chart": chart_series(logs),
        "history": history_rows(logs),
        "latest_note": latest_note(logs),
        "display_name": display_name(profile),
        "is_premium": bool(profile and profile.get("is_premium")),
    }
